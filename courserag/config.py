"""Application configuration with sensible defaults."""
import os
from pathlib import Path


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


# Paths
BASE_DIR = Path(__file__).parent.parent
DOCS_DIR = Path(os.getenv("DOCS_DIR", str(BASE_DIR / "docs")))
DOC_MODULES = _csv(os.getenv("DOC_MODULES", ""))  # empty = every subdirectory

# Service
APP_ENV = os.getenv("APP_ENV", "production")
DEBUG = APP_ENV == "development"
PORT = int(os.getenv("PORT", "3001"))
CORS_ORIGINS = _csv(
    os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:8000,http://localhost:3001",
    )
)

# Vector store (Qdrant). Unset URL falls back to the in-process FAISS store.
QDRANT_URL = os.getenv("QDRANT_URL")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "course_content")
VECTOR_DIMENSION = int(os.getenv("VECTOR_DIMENSION", "1024"))  # embed-english-v3.0
VECTOR_DISTANCE = os.getenv("VECTOR_DISTANCE", "Cosine")
FAISS_INDEX_DIR = Path(os.environ["FAISS_INDEX_DIR"]) if os.getenv("FAISS_INDEX_DIR") else None

# Embeddings (Cohere). Unset key falls back to pseudo embeddings.
COHERE_API_KEY = os.getenv("COHERE_API_KEY")
COHERE_BASE_URL = os.getenv("COHERE_BASE_URL", "https://api.cohere.com")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "embed-english-v3.0")
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "10"))
ALLOW_PSEUDO_EMBEDDINGS = os.getenv(
    "ALLOW_PSEUDO_EMBEDDINGS", "true" if DEBUG else "false"
).lower() in ("1", "true", "yes")

# Generation (OpenAI-compatible chat completions, OpenRouter by default)
GENERATION_API_KEY = os.getenv("OPENROUTER_API_KEY")
GENERATION_BASE_URL = os.getenv("GENERATION_BASE_URL", "https://openrouter.ai/api/v1")
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "meta-llama/llama-3.2-3b-instruct")
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.3"))
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "800"))
GENERATION_TOP_P = float(os.getenv("GENERATION_TOP_P", "0.95"))

# Document store (MongoDB). Unset or unreachable runs in mock mode.
MONGODB_URL = os.getenv("MONGODB_URL")
MONGODB_DATABASE = os.getenv("MONGODB_DATABASE")

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
RETRIEVAL_STRATEGY = os.getenv("RETRIEVAL_STRATEGY", "auto")  # auto | vector | keyword
KEYWORD_SCAN_LIMIT = int(os.getenv("KEYWORD_SCAN_LIMIT", "100"))
MAX_CONTEXT_CHARS = int(os.getenv("MAX_CONTEXT_CHARS", "6000"))
UPSERT_BATCH_SIZE = int(os.getenv("UPSERT_BATCH_SIZE", "10"))

# External calls
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "10.0"))
RETRY_ATTEMPTS = int(os.getenv("RETRY_ATTEMPTS", "3"))
RETRY_INITIAL_WAIT = float(os.getenv("RETRY_INITIAL_WAIT", "0.5"))
RETRY_MAX_WAIT = float(os.getenv("RETRY_MAX_WAIT", "8.0"))

# Web ingestion
SITEMAP_URL = os.getenv("SITEMAP_URL")
SITEMAP_MAX_URLS = int(os.getenv("SITEMAP_MAX_URLS", "50"))
INGEST_DELAY_SECONDS = float(os.getenv("INGEST_DELAY_SECONDS", "1.0"))
MAX_PAGE_CHARS = int(os.getenv("MAX_PAGE_CHARS", "10000"))
USER_AGENT = os.getenv(
    "USER_AGENT", "Mozilla/5.0 (compatible; CourseRagBot/1.0)"
)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
