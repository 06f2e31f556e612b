"""
Application-facing helpers over the default vector index client
Knowledge context retrieval for bots, document removal and single-record lookups.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .models import Metadata, VectorDbFilter, VectorDbResponse
from .utils import Config, VectorIndexError
from .vector_db import VectorDbService
from .vector_db_factory import get_vector_db

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"


async def _resolve(vector_db: Optional[VectorDbService]) -> VectorDbService:
    return vector_db if vector_db is not None else await get_vector_db()


async def store_text(text: str, metadata: Optional[Metadata] = None,
                     vector_db: Optional[VectorDbService] = None) -> VectorDbResponse:
    """
    Store a text with a timestamp added to its metadata.

    Args:
        text: The text to chunk, embed and store
        metadata: Metadata stored with every chunk
        vector_db: Client to use; defaults to the shared client

    Returns:
        The upsert envelope
    """
    vector_db = await _resolve(vector_db)
    stored_metadata = {
        **(metadata or {}),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
    return await vector_db.upsert(stored_metadata, text)


async def search_text(query: str, filter: Optional[VectorDbFilter] = None, top_k: int = Config.TOP_K,
                      vector_db: Optional[VectorDbService] = None) -> VectorDbResponse:
    """
    Search for chunks similar to query.

    Returns:
        Envelope with data {"results": [QueryResult, ...]}; failures are reported in the envelope
    """
    try:
        vector_db = await _resolve(vector_db)
        results = await vector_db.query(filter or {}, query, top_k)
        return VectorDbResponse(success=True, data={'results': results})
    except VectorIndexError as e:
        logger.error(f"Error searching vector index: {str(e)}")
        return VectorDbResponse(success=False, error=e)


async def retrieve_knowledge_context(bot_id: str, query: str, limit: int = Config.TOP_K,
                                     vector_db: Optional[VectorDbService] = None) -> VectorDbResponse:
    """
    Retrieve the knowledge chunks relevant to a question for one bot.

    Args:
        bot_id: Bot whose knowledge base is searched
        query: The user's question
        limit: Maximum number of chunks
        vector_db: Client to use; defaults to the shared client

    Returns:
        Envelope with data {"usedDocuments", "contextualInfo", "hasKnowledgeContext"}
    """
    response = await search_text(query, {'botId': bot_id}, limit, vector_db)
    if not response.success:
        return response

    results = response.data['results']
    used_documents = [
        {
            'id': result.id,
            'documentId': result.metadata.get('documentId'),
            'score': result.score,
        }
        for result in results
    ]
    contextual_info = CONTEXT_SEPARATOR.join(result.chunk for result in results if result.chunk)

    logger.info(f"Retrieved {len(results)} knowledge chunks for bot {bot_id}")
    return VectorDbResponse(success=True, data={
        'usedDocuments': used_documents,
        'contextualInfo': contextual_info,
        'hasKnowledgeContext': bool(contextual_info),
    })


async def get_vector_record_by_id(record_id: str,
                                  vector_db: Optional[VectorDbService] = None) -> Optional[Dict[str, Any]]:
    """Return the record stored under record_id, or None if it does not exist."""
    vector_db = await _resolve(vector_db)
    response = await vector_db.fetch_records_by_ids([record_id])
    if not response.success:
        logger.error(f"Error fetching vector record {record_id}: {response.error_message}")
        return None

    records = response.data['records']
    return records[0] if records else None


async def delete_document(document_id: str,
                          vector_db: Optional[VectorDbService] = None) -> VectorDbResponse:
    # Every chunk of a document carries its documentId
    vector_db = await _resolve(vector_db)
    return await vector_db.delete_by_filter({'documentId': document_id})
