"""Portfolio assistant: retrieval-augmented chat over a small knowledge base."""

__version__ = "0.1.0"
