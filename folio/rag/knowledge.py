"""Facts about the site owner that seed the knowledge base."""

PORTFOLIO_FACTS = [
    "My name is Manuela. I am a Full Stack Developer with 5 years of experience.",
    "I specialize in Agentic AI, AI/ML and Python AI integration.",
    "Project Alpha: A fine-tuned language model for generating SQL queries from natural language questions.",
    "Project Beta: A Production-Ready Multi-Agent System for Intelligent Crypto Market Sentiment Analysis",
    "I am currently open to freelance work and consulting roles.",
    "Contact me via LinkedIn.",
]
