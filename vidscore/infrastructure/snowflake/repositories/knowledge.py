"""
Knowledge repository for RAG (Retrieval-Augmented Generation).

This module handles semantic search over the video marketing knowledge base.
Uses Snowflake Cortex embeddings for similarity search.
"""

import json
import logging

from vidscore.core.analysis.errors import PersistenceError
from vidscore.core.analysis.models import KnowledgeDocument, SearchResult

from ..client import SnowflakeConnection

logger = logging.getLogger(__name__)

MAX_SEARCH_LIMIT = 20

# Cortex ships one embedding function per vector size
_SUPPORTED_DIMENSIONS = (768, 1024)


def clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_SEARCH_LIMIT))


class KnowledgeRepository:
    """
    Repository for the video marketing knowledge base.

    Uses Snowflake Cortex for semantic search:
    1. Convert query text to an embedding with EMBED_TEXT_<dimension>
    2. Rank documents by cosine similarity
    3. Return the top matches

    Embeddings are computed inside Snowflake on write and on query, so
    no embedding API is called from Python.
    """

    def __init__(
        self,
        connection: SnowflakeConnection,
        embedding_model: str = "e5-base-v2",
        embedding_dimension: int = 768,
    ) -> None:
        if embedding_dimension not in _SUPPORTED_DIMENSIONS:
            raise ValueError(f"Unsupported embedding dimension: {embedding_dimension}")
        self._conn = connection
        self._model = embedding_model
        self._embed_fn = f"SNOWFLAKE.CORTEX.EMBED_TEXT_{embedding_dimension}"

    def search(self, query: str, limit: int = 4) -> list[SearchResult]:
        """
        Find documents semantically similar to the query.

        Limit is clamped to 1..20. Errors are logged and produce an empty
        list so a knowledge base outage never breaks the caller.
        """
        limit = clamp_limit(limit)
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                SELECT
                    document_id,
                    title,
                    content,
                    metadata,
                    VECTOR_COSINE_SIMILARITY(
                        embedding,
                        {self._embed_fn}(%s, %s)
                    ) AS score
                FROM knowledge_base
                WHERE embedding IS NOT NULL
                ORDER BY score DESC
                LIMIT %s
            """, (self._model, query, limit))

            results = [
                SearchResult(
                    document_id=row[0],
                    title=row[1],
                    content=row[2],
                    metadata=_load_metadata(row[3]),
                    score=float(row[4]) if row[4] else 0.0,
                )
                for row in cursor.fetchall()
            ]

            logger.info(
                "Knowledge search completed",
                extra={"query_length": len(query), "results_count": len(results)}
            )

            return results

        except Exception as e:
            logger.error(
                "Knowledge search failed",
                extra={"query": query[:100], "error": str(e)}
            )
            return []

        finally:
            cursor.close()

    def index_document(self, document: KnowledgeDocument) -> str:
        """
        Insert or replace a document and its embedding. Returns the id.

        MERGE keeps re-indexing the same id idempotent.
        """
        cursor = self._conn.cursor()

        try:
            cursor.execute(f"""
                MERGE INTO knowledge_base t
                USING (
                    SELECT
                        %s AS document_id,
                        %s AS title,
                        %s AS content,
                        PARSE_JSON(%s) AS metadata
                ) s
                ON t.document_id = s.document_id
                WHEN MATCHED THEN UPDATE SET
                    title = s.title,
                    content = s.content,
                    metadata = s.metadata,
                    embedding = {self._embed_fn}(%s, s.content),
                    updated_at = CURRENT_TIMESTAMP()
                WHEN NOT MATCHED THEN INSERT (
                    document_id, title, content, metadata, embedding, created_at, updated_at
                ) VALUES (
                    s.document_id, s.title, s.content, s.metadata,
                    {self._embed_fn}(%s, s.content),
                    CURRENT_TIMESTAMP(), CURRENT_TIMESTAMP()
                )
            """, (
                document.id,
                document.title,
                document.content,
                json.dumps(document.metadata),
                self._model,
                self._model,
            ))
            self._conn.commit()

        except Exception as e:
            logger.error(
                "Failed to index document",
                extra={"document_id": document.id, "error": str(e)}
            )
            raise PersistenceError(f"Failed to index document: {e}") from e
        finally:
            cursor.close()

        logger.info("Indexed knowledge document", extra={"document_id": document.id})
        return document.id


def _load_metadata(raw) -> dict:
    if not raw:
        return {}
    if isinstance(raw, str):
        return json.loads(raw)
    return dict(raw)
