import hashlib
import logging

import pytest
from unittest.mock import patch

from vector_index.utils import (
    Config,
    ConfigurationError,
    chunk_array,
    hash_text,
    setup_logging,
    truncate_string_by_bytes,
    validate_config,
)


def test_truncate_keeps_short_text():
    """Test that text within the byte limit is returned unchanged."""
    assert truncate_string_by_bytes("hello", 10) == "hello"
    assert truncate_string_by_bytes("hello", 5) == "hello"


def test_truncate_ascii_text():
    """Test truncation of single-byte text."""
    assert truncate_string_by_bytes("hello world", 5) == "hello"


def test_truncate_never_splits_multibyte_characters():
    """Test that a multi-byte character is dropped rather than cut."""
    text = "héllo"  # e-acute is two bytes
    assert truncate_string_by_bytes(text, 2) == "h"
    assert truncate_string_by_bytes(text, 3) == "hé"

    emoji = "ab\U0001F600cd"  # four-byte emoji
    assert truncate_string_by_bytes(emoji, 5) == "ab"
    assert truncate_string_by_bytes(emoji, 6) == "ab\U0001F600"


def test_truncate_result_is_longest_fitting_prefix():
    """Test prefix, byte bound and maximality of the truncated result."""
    text = "日本語 text üöä " * 20
    for max_bytes in (1, 7, 50, 101):
        result = truncate_string_by_bytes(text, max_bytes)
        assert text.startswith(result)
        assert len(result.encode('utf-8')) <= max_bytes
        assert len(text[:len(result) + 1].encode('utf-8')) > max_bytes


def test_truncate_non_positive_limit():
    """Test that a zero or negative limit yields an empty string."""
    assert truncate_string_by_bytes("hello", 0) == ""
    assert truncate_string_by_bytes("hello", -3) == ""


def test_hash_text_is_md5_of_text_and_salt():
    """Test hash_text is deterministic and salted by suffix."""
    expected = hashlib.md5("chunk contentagent-1".encode('utf-8')).hexdigest()
    assert hash_text("chunk content", "agent-1") == expected
    assert hash_text("chunk content", "agent-1") == hash_text("chunk content", "agent-1")


def test_hash_text_distinguishes_texts_and_salts():
    """Test that different texts or salts give different hashes."""
    assert hash_text("first") != hash_text("second")
    assert hash_text("same", "a") != hash_text("same", "b")
    assert hash_text("same") == hash_text("same", "")


def test_chunk_array():
    """Test splitting a list into fixed-size pieces."""
    assert chunk_array([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunk_array([], 3) == []
    with pytest.raises(ValueError):
        chunk_array([1], 0)


def test_validate_config_reports_missing_keys():
    """Test validate_config names the missing credentials."""
    with patch.object(Config, 'VECTOR_DB_PROVIDER', 'pinecone'), \
            patch.object(Config, 'EMBEDDING_PROVIDER', 'openai'), \
            patch.object(Config, 'PINECONE_API_KEY', ''), \
            patch.object(Config, 'OPENAI_API_KEY', 'sk-test'):
        with pytest.raises(ConfigurationError, match="PINECONE_API_KEY"):
            validate_config()


def test_validate_config_rejects_unknown_provider():
    """Test validate_config rejects an unregistered provider."""
    with patch.object(Config, 'VECTOR_DB_PROVIDER', 'faiss'):
        with pytest.raises(ConfigurationError):
            validate_config()


def test_validate_config_success():
    """Test validate_config with a complete qdrant/cohere configuration."""
    with patch.object(Config, 'VECTOR_DB_PROVIDER', 'qdrant'), \
            patch.object(Config, 'EMBEDDING_PROVIDER', 'cohere'), \
            patch.object(Config, 'QDRANT_URL', 'http://localhost:6333'), \
            patch.object(Config, 'COHERE_API_KEY', 'co-test'), \
            patch.object(Config, 'CHUNK_SIZE', 500), \
            patch.object(Config, 'CHUNK_OVERLAP', 20), \
            patch.object(Config, 'MIN_SCORE', 0.5), \
            patch.object(Config, 'INDEX_READY_POLL_INTERVAL', 5.0), \
            patch.object(Config, 'INDEX_READY_TIMEOUT', 300.0), \
            patch.object(Config, 'INDEX_TIMEOUT', 30.0):
        assert validate_config() is True


def test_validate_config_rejects_non_positive_index_timeout():
    """Test validate_config refuses an INDEX_TIMEOUT of zero."""
    with patch.object(Config, 'VECTOR_DB_PROVIDER', 'qdrant'), \
            patch.object(Config, 'EMBEDDING_PROVIDER', 'cohere'), \
            patch.object(Config, 'QDRANT_URL', 'http://localhost:6333'), \
            patch.object(Config, 'COHERE_API_KEY', 'co-test'), \
            patch.object(Config, 'INDEX_TIMEOUT', 0.0):
        with pytest.raises(ConfigurationError, match='INDEX_TIMEOUT'):
            validate_config()


def test_setup_logging_uses_level_name():
    """Test setup_logging passes the requested level to basicConfig."""
    with patch('vector_index.utils.logging.basicConfig') as mock_basic_config:
        setup_logging("debug")

        kwargs = mock_basic_config.call_args.kwargs
        assert kwargs['level'] == logging.DEBUG
        assert kwargs['format'] == '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
