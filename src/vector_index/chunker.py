import logging
from typing import List
from langchain_text_splitters import RecursiveCharacterTextSplitter
from .models import Chunk
from .utils import Config, ChunkingError, hash_text

logger = logging.getLogger(__name__)

# Paragraph, line and word boundaries, then hard character cuts
SEPARATORS = ["\n\n", "\n", " ", ""]


def _validate_chunking_params(chunk_size: int, overlap: int) -> None:
    """
    Validate parameters for text chunking.

    Args:
        chunk_size: The chunk size to validate
        overlap: The overlap to validate

    Raises:
        ChunkingError: If validation fails
    """
    if not isinstance(chunk_size, int) or chunk_size <= 0:
        raise ChunkingError("chunk_size must be a positive integer")

    if not isinstance(overlap, int) or overlap < 0:
        raise ChunkingError("chunk_overlap must be a non-negative integer")

    if overlap >= chunk_size:
        raise ChunkingError("chunk_overlap must be less than chunk_size")


def create_text_splitter(chunk_size: int = Config.CHUNK_SIZE,
                         chunk_overlap: int = Config.CHUNK_OVERLAP) -> RecursiveCharacterTextSplitter:
    """Build the recursive splitter used for every document."""
    _validate_chunking_params(chunk_size, chunk_overlap)
    return RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        separators=SEPARATORS,
        length_function=len,
        is_separator_regex=False,
    )


def split_text(text: str, chunk_size: int = 500, chunk_overlap: int = 20) -> List[str]:
    """Split text into overlapping segments of at most chunk_size characters."""
    splitter = create_text_splitter(chunk_size, chunk_overlap)
    if not text or not text.strip():
        return []
    return splitter.split_text(text)


def split_document(text: str, chunk_size: int = 500, chunk_overlap: int = 20, salt: str = "") -> List[Chunk]:
    """
    Split a document into chunks, each carrying its content hash.

    Args:
        text: The text to split
        chunk_size: Maximum size of each chunk in characters
        chunk_overlap: Overlap between consecutive chunks in characters
        salt: Owner identifier mixed into every chunk hash

    Returns:
        List of Chunk objects in document order
    """
    if text is not None and not isinstance(text, str):
        raise ChunkingError("text must be a string")

    pieces = split_text(text or "", chunk_size, chunk_overlap)
    if not pieces:
        logger.debug("Nothing to chunk: text is empty")
        return []

    chunks = [Chunk(content=piece, metadata={'hash': hash_text(piece, salt)}) for piece in pieces]

    logger.debug(f"Split text of length {len(text)} into {len(chunks)} chunks "
                 f"(chunk_size={chunk_size}, chunk_overlap={chunk_overlap})")
    return chunks
