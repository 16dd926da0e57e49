#!/usr/bin/env python
"""Chat with a running portfolio assistant from the terminal.

Usage:
    python scripts/ask.py                            # Interactive session
    python scripts/ask.py "What is Manuela's experience?"
    python scripts/ask.py --url http://localhost:5000
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from folio.client import ChatClient, Conversation


async def ask(client: ChatClient, conversation: Conversation, question: str) -> None:
    printed = []

    def on_fragment(fragment: str) -> None:
        printed.append(fragment)
        print(fragment, end="", flush=True)

    print("assistant> ", end="", flush=True)
    reply = await client.send(conversation, question, on_fragment=on_fragment)

    # Error replies and interruption notices are never streamed
    print(reply.content[len("".join(printed)):])


async def main():
    parser = argparse.ArgumentParser(description="Chat with the portfolio assistant")
    parser.add_argument("question", nargs="?", help="Ask a single question and exit")
    parser.add_argument("--url", default="http://localhost:5000", help="Server base URL")
    args = parser.parse_args()

    client = ChatClient(base_url=args.url)
    conversation = Conversation()

    if args.question:
        await ask(client, conversation, args.question)
        return

    print("Ask me about Manuela's projects, skills, or experience. Ctrl+D to quit.\n")
    while True:
        try:
            question = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            break

        if question:
            await ask(client, conversation, question)


if __name__ == "__main__":
    asyncio.run(main())
