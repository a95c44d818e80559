"""
Hybrid search: model interpretation first, keyword matching as the fallback.

Matching rules:
  - interpreter returned ids → exactly those documents, newest first
  - otherwise → any search term found (case-insensitive substring) in the
    keywords, description, document type or display name, newest first
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import AnalysisError, ConfigurationError, ValidationError
from ..models.cost import CostRecord
from ..models.document import Document
from . import documents
from .analysis import AnalysisClient, DocumentSummary, QueryInterpretation, RequiredDocument
from .costs import OPERATION_SEARCH, record_cost
from .llm import TokenUsage

logger = logging.getLogger(__name__)

MIN_TERM_LENGTH = 3


@dataclass(frozen=True)
class SearchInterpretation:
    topic: str
    search_terms: list[str]
    matching_document_ids: list[int]
    required_documents: list[RequiredDocument] = field(default_factory=list)
    degraded: bool = False
    suggestions: list[str] = field(default_factory=list)
    model: str = ""
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class EnrichedRequirement:
    name: str
    document_id: Optional[int]
    how_to_get: Optional[str]
    has_document: bool

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "documentId": self.document_id,
            "howToGet": self.how_to_get,
            "hasDocument": self.has_document,
        }


@dataclass
class SearchOutcome:
    interpretation: SearchInterpretation
    results: list[Document]
    required: list[EnrichedRequirement]
    cost: Optional[CostRecord] = None

    def to_dict(self) -> dict:
        return {
            "topic": self.interpretation.topic,
            "documents": [r.to_dict() for r in self.required],
            "matchingDocumentIds": [d.id for d in self.results],
            "searchResults": [d.to_dict() for d in self.results],
            "degraded": self.interpretation.degraded,
            "suggestions": self.interpretation.suggestions,
        }


# ── Interpretation ───────────────────────────────────────────────────

def degraded_interpretation(query: str, reason: Optional[AnalysisError] = None) -> SearchInterpretation:
    """Local fallback: split the query into words of at least three characters."""
    terms = [t for t in query.lower().split() if len(t) >= MIN_TERM_LENGTH]
    suggestions = ["Try more specific words, such as the document type or country"]
    if isinstance(reason, ConfigurationError):
        suggestions.insert(0, "Configure the API key to enable intelligent search")
    return SearchInterpretation(
        topic=query,
        search_terms=terms,
        matching_document_ids=[],
        degraded=True,
        suggestions=suggestions,
    )


async def interpret(client: AnalysisClient, query: str, corpus: list[DocumentSummary]) -> SearchInterpretation:
    """Never raises for analysis failures; degrades to local term matching instead."""
    try:
        result: QueryInterpretation = await client.interpret_query(query, corpus)
    except AnalysisError as e:
        logger.warning("Search interpretation failed, using local matching: %s", e)
        return degraded_interpretation(query, e)

    return SearchInterpretation(
        topic=result.topic,
        search_terms=result.search_terms,
        matching_document_ids=result.matching_document_ids,
        required_documents=result.required_documents,
        model=result.model,
        usage=result.usage,
    )


# ── Matching ─────────────────────────────────────────────────────────

def _haystack(doc: Document) -> list[str]:
    fields = [doc.ai_description, doc.ai_document_type, doc.display_name, *(doc.ai_keywords or [])]
    return [f.lower() for f in fields if isinstance(f, str) and f]


def matches_any(doc: Document, terms: list[str]) -> bool:
    haystack = _haystack(doc)
    return any(term in value for term in terms for value in haystack)


async def resolve_matches(db: AsyncSession, interpretation: SearchInterpretation) -> list[Document]:
    if interpretation.matching_document_ids:
        return await documents.get_many(db, interpretation.matching_document_ids)

    terms = [t.lower().strip() for t in interpretation.search_terms if t and t.strip()]
    if not terms:
        return []
    return [d for d in await documents.list_all(db) if matches_any(d, terms)]


def enrich_required(required: list[RequiredDocument], resolved_ids: set[int]) -> list[EnrichedRequirement]:
    return [
        EnrichedRequirement(
            name=r.name,
            document_id=r.document_id,
            how_to_get=r.how_to_get,
            has_document=r.document_id is not None and r.document_id in resolved_ids,
        )
        for r in required
    ]


# ── Entry point ──────────────────────────────────────────────────────

async def search(db: AsyncSession, client: AnalysisClient, query: str) -> SearchOutcome:
    query = (query or "").strip()
    if not query:
        raise ValidationError("Query is required")

    corpus = await documents.summaries(db)
    interpretation = await interpret(client, query, corpus)
    results = await resolve_matches(db, interpretation)
    required = enrich_required(interpretation.required_documents, {d.id for d in results})

    cost = None
    if interpretation.usage is not None:
        cost = await record_cost(
            db,
            OPERATION_SEARCH,
            interpretation.usage,
            interpretation.model,
            details={"query": query, "result_count": len(results)},
        )

    logger.info(
        "Search '%s': %d result(s), %d required document(s)%s",
        query, len(results), len(required), " [degraded]" if interpretation.degraded else "",
    )
    return SearchOutcome(interpretation=interpretation, results=results, required=required, cost=cost)
