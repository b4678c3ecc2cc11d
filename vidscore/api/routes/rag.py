"""
Knowledge base (RAG) endpoints.

Search ranks stored marketing advice by embedding similarity to a query.
Index inserts or replaces a document; the embedding is computed in
Snowflake as part of the write.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.analysis.errors import PersistenceError
from ...core.analysis.models import KnowledgeDocument
from ..dependencies import KnowledgeRepositoryDep, SettingsDep

logger = logging.getLogger(__name__)

router = APIRouter()


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000, description="Natural language query")
    limit: Optional[int] = Field(None, description="Maximum results, clamped to 1-20")


class SearchResultItem(BaseModel):
    id: str
    title: str
    content: str
    metadata: dict[str, Any] = {}
    score: float


class SearchData(BaseModel):
    results: list[SearchResultItem]


class SearchResponse(BaseModel):
    success: bool = True
    data: SearchData


class IndexRequest(BaseModel):
    """Document to add. Reusing an id replaces the stored document."""
    id: Optional[str] = Field(None, description="Document id; generated when omitted")
    title: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class IndexData(BaseModel):
    id: str


class IndexResponse(BaseModel):
    success: bool = True
    data: IndexData


@router.post(
    "/search",
    response_model=SearchResponse,
    status_code=status.HTTP_200_OK,
    summary="Semantic search over the knowledge base",
)
async def search(
    request: SearchRequest,
    repository: KnowledgeRepositoryDep,
    settings: SettingsDep,
) -> SearchResponse:
    limit = request.limit if request.limit is not None else settings.rag_default_limit
    results = repository.search(request.query, limit)

    return SearchResponse(data=SearchData(results=[
        SearchResultItem(
            id=result.document_id,
            title=result.title,
            content=result.content,
            metadata=result.metadata,
            score=result.score,
        )
        for result in results
    ]))


@router.post(
    "/index",
    response_model=IndexResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add or replace a knowledge base document",
)
async def index_document(
    request: IndexRequest,
    repository: KnowledgeRepositoryDep,
) -> IndexResponse:
    fields = {"title": request.title, "content": request.content, "metadata": request.metadata}
    if request.id:
        fields["id"] = request.id

    try:
        document = KnowledgeDocument(**fields)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    try:
        document_id = repository.index_document(document)
    except PersistenceError as e:
        logger.error("Document indexing failed", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to index document"
        )

    return IndexResponse(data=IndexData(id=document_id))
