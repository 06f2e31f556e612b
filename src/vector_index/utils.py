import logging
import os
import hashlib
from typing import List, Optional, Sequence, TypeVar
from dotenv import load_dotenv


# Load environment variables
load_dotenv()

T = TypeVar("T")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Byte ceiling for text stored in record metadata
MAX_METADATA_TEXT_BYTES = 36000


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None):
    """
    Set up basic logging configuration.

    Args:
        level: Log level name; falls back to Config.LOG_LEVEL
        log_file: Optional path of a file that also receives the log records
    """
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    level_name = (level or Config.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers
    )


def get_environment_variable(var_name: str, default: str = None) -> str:
    """Get environment variable with optional default."""
    value = os.getenv(var_name, default)
    if value is None:
        raise ConfigurationError(f"Environment variable {var_name} is required but not set")
    return value


class Config:
    """Configuration class to manage vector index settings."""

    # Provider selection
    VECTOR_DB_PROVIDER: str = os.getenv('VECTOR_DB_PROVIDER', 'pinecone')
    EMBEDDING_PROVIDER: str = os.getenv('EMBEDDING_PROVIDER', 'openai')

    # OpenAI settings
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    OPENAI_EMBEDDING_MODEL: str = os.getenv('OPENAI_EMBEDDING_MODEL', 'text-embedding-3-small')

    # Cohere settings
    COHERE_API_KEY: str = os.getenv('COHERE_API_KEY', '')
    COHERE_MODEL: str = os.getenv('COHERE_MODEL', 'embed-english-v3.0')

    # Pinecone settings
    PINECONE_API_KEY: str = os.getenv('PINECONE_API_KEY', '')
    PINECONE_INDEX: str = os.getenv('PINECONE_INDEX', 'default-index')
    PINECONE_CLOUD: str = os.getenv('PINECONE_CLOUD', 'aws')
    PINECONE_REGION: str = os.getenv('PINECONE_REGION', 'us-east-1')

    # Qdrant settings
    QDRANT_URL: str = os.getenv('QDRANT_URL', '')
    QDRANT_API_KEY: str = os.getenv('QDRANT_API_KEY', '')

    # Index settings
    VECTOR_NAMESPACE: str = os.getenv('VECTOR_NAMESPACE', 'default')
    EMBEDDING_DIMENSIONS: int = int(os.getenv('EMBEDDING_DIMENSIONS', '1536'))

    # Chunking settings
    CHUNK_SIZE: int = int(os.getenv('CHUNK_SIZE', '500'))
    CHUNK_OVERLAP: int = int(os.getenv('CHUNK_OVERLAP', '20'))

    # Write and query settings
    UPSERT_BATCH_SIZE: int = int(os.getenv('UPSERT_BATCH_SIZE', '100'))
    MAX_CONCURRENT_UPSERTS: int = int(os.getenv('MAX_CONCURRENT_UPSERTS', '5'))
    TOP_K: int = int(os.getenv('TOP_K', '5'))
    MIN_SCORE: float = float(os.getenv('MIN_SCORE', '0.5'))

    # Timing settings (seconds)
    INDEX_READY_POLL_INTERVAL: float = float(os.getenv('INDEX_READY_POLL_INTERVAL', '5.0'))
    INDEX_READY_TIMEOUT: float = float(os.getenv('INDEX_READY_TIMEOUT', '300.0'))
    EMBEDDING_TIMEOUT: float = float(os.getenv('EMBEDDING_TIMEOUT', '60.0'))
    INDEX_TIMEOUT: float = float(os.getenv('INDEX_TIMEOUT', '30.0'))

    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO')


class VectorIndexError(Exception):
    """Base exception for the vector indexing layer."""
    pass


class ConfigurationError(VectorIndexError):
    """Exception raised for invalid or missing configuration. Not retryable."""
    pass


class FilterError(ConfigurationError):
    """Exception raised when a query or delete filter is malformed."""
    pass


class ChunkingError(VectorIndexError):
    """Exception raised when text chunking operations fail."""
    pass


class EmbeddingError(VectorIndexError):
    """Exception raised when embedding generation operations fail."""
    pass


class VectorDbError(VectorIndexError):
    """Exception raised when vector index operations fail."""
    pass


class IndexNotReadyError(VectorDbError):
    """Exception raised when an index does not report ready within the allowed wait."""
    pass


class PartialUpsertError(VectorDbError):
    """Exception raised when some upsert batches failed while others were written."""

    def __init__(self, message: str, errors: Sequence[BaseException] = (), failed_batches: Sequence[int] = ()):
        super().__init__(message)
        self.errors = list(errors)
        self.failed_batches = list(failed_batches)


_REQUIRED_KEYS = {
    'pinecone': ['PINECONE_API_KEY'],
    'qdrant': ['QDRANT_URL'],
    'openai': ['OPENAI_API_KEY'],
    'cohere': ['COHERE_API_KEY'],
}


def validate_config() -> bool:
    """
    Validate the configuration and ensure required environment variables are set.

    Returns:
        True if configuration is valid, raises exception if invalid
    """
    for provider in (Config.VECTOR_DB_PROVIDER.lower(), Config.EMBEDDING_PROVIDER.lower()):
        if provider not in _REQUIRED_KEYS:
            raise ConfigurationError(f"Unsupported provider: {provider}")

    missing_vars = []
    for provider in (Config.VECTOR_DB_PROVIDER.lower(), Config.EMBEDDING_PROVIDER.lower()):
        for var in _REQUIRED_KEYS[provider]:
            if not getattr(Config, var, ''):
                missing_vars.append(var)

    if missing_vars:
        raise ConfigurationError(f"Missing required environment variables: {', '.join(missing_vars)}")

    if Config.CHUNK_SIZE <= 0:
        raise ConfigurationError(f"CHUNK_SIZE must be positive, got {Config.CHUNK_SIZE}")

    if Config.CHUNK_OVERLAP < 0 or Config.CHUNK_OVERLAP >= Config.CHUNK_SIZE:
        raise ConfigurationError(f"CHUNK_OVERLAP must be between 0 and CHUNK_SIZE-1, got {Config.CHUNK_OVERLAP}")

    if not 0.0 <= Config.MIN_SCORE <= 1.0:
        raise ConfigurationError(f"MIN_SCORE must be between 0 and 1, got {Config.MIN_SCORE}")

    if Config.INDEX_READY_POLL_INTERVAL <= 0 or Config.INDEX_READY_TIMEOUT <= 0 or Config.INDEX_TIMEOUT <= 0:
        raise ConfigurationError("INDEX_READY_POLL_INTERVAL, INDEX_READY_TIMEOUT and INDEX_TIMEOUT must be positive")

    return True


def truncate_string_by_bytes(text: str, max_bytes: int) -> str:
    """
    Truncate a string to the longest prefix whose UTF-8 encoding fits in max_bytes.

    Slicing happens on code points, so a multi-byte character is never cut in half.

    Args:
        text: The string to truncate
        max_bytes: The maximum byte length

    Returns:
        The truncated string
    """
    if max_bytes <= 0:
        return ""
    if len(text.encode('utf-8')) <= max_bytes:
        return text

    # Binary search for the longest prefix that fits within max_bytes
    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if len(text[:mid].encode('utf-8')) <= max_bytes:
            low = mid
        else:
            high = mid - 1

    return text[:low]


def hash_text(text: str, salt: str = "") -> str:
    """
    Create the MD5 fingerprint used as a record id.

    Args:
        text: The string to hash
        salt: Owner identifier appended to the text before hashing

    Returns:
        Hex digest of text + salt
    """
    return hashlib.md5((text + (salt or "")).encode('utf-8')).hexdigest()


def chunk_array(items: Sequence[T], size: int) -> List[List[T]]:
    """Split a sequence into consecutive lists of at most `size` items."""
    if size <= 0:
        raise ValueError(f"size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]
