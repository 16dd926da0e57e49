#!/usr/bin/env python
"""Seed the portfolio knowledge base into the configured vector store.

Usage:
    python scripts/seed.py              # Append every fact
    python scripts/seed.py --rebuild    # Clear the store first
    python scripts/seed.py --verbose    # Show detailed progress
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from folio.config import Settings
from folio.errors import AssistantError
from folio.pipeline import build_llm_client, build_vector_store
from folio.rag.ingest import IngestPipeline

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, text: str):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {text[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()  # New line for verbose mode

    def finish(self, stats: dict, settings: Settings):
        """Finish progress reporting."""
        print("\n")  # New line after progress bar
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Seeding Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📝 Facts inserted:       {stats['facts_processed']}")
        print(f"  ❌ Facts failed:         {stats['facts_failed']}")
        print(f"  🧮 Embeddings generated: {stats['embeddings_generated']}")
        print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")

        if stats["facts_failed"] > 0:
            print(f"⚠️  Warning: {stats['facts_failed']} fact(s) failed to insert.")
            print("   Check logs for details.\n")

        if stats["facts_processed"] > 0:
            if settings.vector_store == "faiss":
                print(f"✅ Index ready at: {settings.data_dir}/vectors.index\n")
            else:
                print(f"✅ Rows stored in: {settings.supabase_url} ({settings.supabase_table})\n")


async def main():
    """Main entry point for the seed script."""
    parser = argparse.ArgumentParser(
        description="Seed the portfolio knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/seed.py              # Append every fact
  python scripts/seed.py --rebuild    # Clear the store first
  python scripts/seed.py --verbose    # Show detailed progress
        """,
    )

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Delete existing rows before seeding",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()

    progress = ProgressReporter(verbose=args.verbose)

    try:
        settings = Settings.from_env().check(for_seeding=True)

        print("\n📋 Configuration:")
        print(f"   Vector store:     {settings.vector_store}")
        print(f"   Embedding model:  {settings.embedding_model}")
        print(f"   Dimension:        {settings.embedding_dimension}")

        if args.rebuild:
            print("\n⚠️  Rebuild mode: Will delete every stored fact!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)

        action = "Rebuilding" if args.rebuild else "Seeding"
        progress.start(f"{action} Knowledge Base")

        pipeline = IngestPipeline(
            embedder=build_llm_client(settings),
            vector_store=build_vector_store(settings, write=True),
        )

        stats = await pipeline.ingest_all(
            rebuild=args.rebuild,
            progress_callback=progress.update,
        )

        progress.finish(stats, settings)

        if stats["facts_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Seeding cancelled by user.\n")
        sys.exit(1)

    except AssistantError as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("seed_script_failed", error=str(e), error_kind=e.kind.value)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
