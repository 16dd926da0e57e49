"""Application configuration with sensible defaults."""
import os
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from folio.errors import ConfigurationError

# Paths
BASE_DIR = Path(__file__).parent.parent
load_dotenv(BASE_DIR / ".env")

# Unparseable numeric values, reported by Settings.problems()
ENV_ERRORS: List[str] = []


def _env_number(name: str, default: str, cast: Callable = float):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError:
        ENV_ERRORS.append(f"{name} must be a number, got {raw!r}")
        return cast(default)


DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# OpenAI configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-4o")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
EMBEDDING_DIMENSION = _env_number("EMBEDDING_DIMENSION", "1536", int)  # text-embedding-3-small

# Vector store: "supabase" (hosted) or "faiss" (local index under DATA_DIR)
VECTOR_STORE = os.getenv("VECTOR_STORE", "supabase")
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")  # seeding only
SUPABASE_TABLE = os.getenv("SUPABASE_TABLE", "documents")
SUPABASE_MATCH_FUNCTION = os.getenv("SUPABASE_MATCH_FUNCTION", "match_documents")

# RAG parameters
MATCH_THRESHOLD = _env_number("MATCH_THRESHOLD", "0.5")
MATCH_COUNT = _env_number("MATCH_COUNT", "3", int)
DEGRADE_ON_RETRIEVAL_ERROR = os.getenv("DEGRADE_ON_RETRIEVAL_ERROR", "false").lower() in {"1", "true", "yes"}

# Upstream calls (seconds; for streams this bounds each read)
UPSTREAM_TIMEOUT = _env_number("UPSTREAM_TIMEOUT", "30.0")

# HTTP
CORS_ALLOW_ORIGIN = os.getenv("CORS_ALLOW_ORIGIN", "*")

# Persona
OWNER_NAME = os.getenv("OWNER_NAME", "Manuela")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def _is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


class Settings(BaseModel):
    """Snapshot of the configuration handed to the chat pipeline.

    Construction never fails on missing credentials so the app can boot and
    report the problem per request; call :meth:`check` before contacting any
    upstream service.
    """

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-4o"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimension: int = 1536

    vector_store: str = "supabase"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    supabase_table: str = "documents"
    supabase_match_function: str = "match_documents"
    data_dir: Path = DATA_DIR

    match_threshold: float = 0.5
    match_count: int = 3
    degrade_on_retrieval_error: bool = False
    upstream_timeout: float = 30.0

    cors_allow_origin: str = "*"
    owner_name: str = "Manuela"
    env_errors: List[str] = Field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the module-level values above."""
        return cls(
            openai_api_key=OPENAI_API_KEY,
            openai_base_url=OPENAI_BASE_URL,
            chat_model=CHAT_MODEL,
            embedding_model=EMBEDDING_MODEL,
            embedding_dimension=EMBEDDING_DIMENSION,
            vector_store=VECTOR_STORE,
            supabase_url=SUPABASE_URL,
            supabase_anon_key=SUPABASE_ANON_KEY,
            supabase_service_role_key=SUPABASE_SERVICE_ROLE_KEY,
            supabase_table=SUPABASE_TABLE,
            supabase_match_function=SUPABASE_MATCH_FUNCTION,
            data_dir=DATA_DIR,
            match_threshold=MATCH_THRESHOLD,
            match_count=MATCH_COUNT,
            degrade_on_retrieval_error=DEGRADE_ON_RETRIEVAL_ERROR,
            upstream_timeout=UPSTREAM_TIMEOUT,
            cors_allow_origin=CORS_ALLOW_ORIGIN,
            owner_name=OWNER_NAME,
            env_errors=list(ENV_ERRORS),
        )

    def problems(self, for_seeding: bool = False) -> List[str]:
        """List every missing or malformed setting.

        Args:
            for_seeding: Also require write credentials for the vector store

        Returns:
            Human-readable problem descriptions (empty when valid)
        """
        problems = list(self.env_errors)

        if not self.openai_api_key.strip():
            problems.append("OPENAI_API_KEY is not set")
        if not _is_http_url(self.openai_base_url):
            problems.append("OPENAI_BASE_URL must be an http(s) URL")
        if not self.chat_model or not self.embedding_model:
            problems.append("CHAT_MODEL and EMBEDDING_MODEL must not be empty")
        if self.embedding_dimension <= 0:
            problems.append("EMBEDDING_DIMENSION must be positive")

        if self.vector_store not in ("supabase", "faiss"):
            problems.append("VECTOR_STORE must be 'supabase' or 'faiss'")
        if self.vector_store == "supabase":
            if not self.supabase_url:
                problems.append("SUPABASE_URL is not set")
            elif not _is_http_url(self.supabase_url):
                problems.append("SUPABASE_URL must be an http(s) URL")
            if not self.supabase_anon_key.strip():
                problems.append("SUPABASE_ANON_KEY is not set")
            if for_seeding and not self.supabase_service_role_key.strip():
                problems.append("SUPABASE_SERVICE_ROLE_KEY is required for seeding")

        if not 0.0 <= self.match_threshold <= 1.0:
            problems.append("MATCH_THRESHOLD must be between 0 and 1")
        if self.match_count < 1:
            problems.append("MATCH_COUNT must be at least 1")
        if self.upstream_timeout <= 0:
            problems.append("UPSTREAM_TIMEOUT must be positive")

        return problems

    def check(self, for_seeding: bool = False) -> "Settings":
        """Raise ConfigurationError if any required setting is missing or malformed."""
        problems = self.problems(for_seeding=for_seeding)
        if problems:
            raise ConfigurationError("; ".join(problems))
        return self


def load_settings(check: bool = False) -> Settings:
    """Load settings from the environment, optionally validating them."""
    settings = Settings.from_env()
    if check:
        settings.check()
    return settings


def describe(settings: Optional[Settings] = None) -> dict:
    """Non-secret view of the settings, safe to log."""
    settings = settings or Settings.from_env()
    return {
        "chat_model": settings.chat_model,
        "embedding_model": settings.embedding_model,
        "embedding_dimension": settings.embedding_dimension,
        "vector_store": settings.vector_store,
        "match_threshold": settings.match_threshold,
        "match_count": settings.match_count,
        "openai_api_key_set": bool(settings.openai_api_key),
        "supabase_url": settings.supabase_url or None,
    }
