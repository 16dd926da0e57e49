"""Grounded prompt construction for the portfolio assistant."""
from typing import Dict, List, Sequence

from folio.models import Message
from folio.rag.retriever import RetrievalResult

SYSTEM_PROMPT_TEMPLATE = """You are an AI assistant for {owner}'s portfolio.
You act as a professional representative.
Use the following pieces of context to answer the user's question.
Only answer from the context below.
If the answer is not in the context, politely say you don't have that information.

CONTEXT:
{context}"""


def build_context(results: Sequence[RetrievalResult]) -> str:
    """Join snippet contents in ranked order, separated by a blank line."""
    return "\n\n".join(result.content for result in results)


def build_system_prompt(context: str, owner: str) -> str:
    return SYSTEM_PROMPT_TEMPLATE.format(owner=owner, context=context)


def assemble_messages(
    results: Sequence[RetrievalResult],
    conversation: Sequence[Message],
    owner: str,
) -> List[Dict[str, str]]:
    """Build the message list sent to the chat model.

    Client-supplied system messages are dropped; the grounded system prompt
    comes first, followed by the remaining turns in their original order.
    """
    system_content = build_system_prompt(build_context(results), owner)

    return [{"role": "system", "content": system_content}] + [
        message.to_llm() for message in conversation if message.role != "system"
    ]
