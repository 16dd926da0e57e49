#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and upstream services."""
import sys
import asyncio
from pathlib import Path

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

async def main():
    print_section("Portfolio Assistant - Setup Validation")

    errors = []
    warnings = []

    # 1. Python version check
    print_section("1. Python Environment")
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print_info(f"Python version: {python_version}")
    if sys.version_info >= (3, 10):
        print_success("Python version >= 3.10")
    else:
        print_error("Python version < 3.10 (required)")
        errors.append("Python version too old")

    # 2. Import core dependencies
    print_section("2. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("hypercorn", "Hypercorn ASGI server"),
        ("httpx", "HTTP client"),
        ("faiss", "FAISS vector store"),
        ("numpy", "Vector math"),
        ("pydantic", "Data validation"),
        ("dotenv", "Environment loading"),
        ("structlog", "Structured logging"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 3. Test configuration
    print_section("3. Configuration")

    try:
        # Add parent directory to path to import folio
        sys.path.insert(0, str(Path(__file__).parent.parent))
        from folio.config import Settings, describe
        from folio.pipeline import build_llm_client, build_vector_store

        settings = Settings.from_env()
        print_success("Config loaded successfully")
        for key, value in describe(settings).items():
            print_info(f"  {key}: {value}")

        problems = settings.problems()
        if problems:
            for problem in problems:
                print_error(problem)
                errors.append(problem)
            return errors, warnings

        print_success("All required settings present")

    except Exception as e:
        print_error(f"Failed to load config: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    # 4. Embedding API
    print_section("4. OpenAI Embeddings")

    embedding = None
    try:
        embedding = await build_llm_client(settings).embed("test")
        print_success(f"Embedding API working (dimension: {len(embedding)})")

        if len(embedding) == settings.embedding_dimension:
            print_success(f"Embedding dimension matches EMBEDDING_DIMENSION ({settings.embedding_dimension})")
        else:
            print_error(
                f"Embedding dimension {len(embedding)} != EMBEDDING_DIMENSION {settings.embedding_dimension}"
            )
            errors.append("Embedding dimension mismatch")

    except Exception as e:
        print_error(f"Embedding API test failed: {e}")
        errors.append(f"Embedding API failed: {e}")

    # 5. Vector store
    print_section("5. Vector Store")

    try:
        store = build_vector_store(settings)
        count = await store.count()
        print_success(f"{settings.vector_store} store reachable ({count} rows)")
        if count == 0:
            print_warning("Knowledge base is empty. Run: python scripts/seed.py")
            warnings.append("Empty knowledge base")

        if embedding is not None and len(embedding) == settings.embedding_dimension:
            rows = await store.match_documents(embedding, settings.match_threshold, settings.match_count)
            print_success(f"Similarity search working ({len(rows)} match(es) for 'test')")

    except Exception as e:
        print_error(f"Vector store check failed: {e}")
        errors.append(f"Vector store error: {e}")

    # 6. Summary
    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
        print_info("\n  Start the server: python scripts/run_server.py")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
