"""
Analysis client: the capability the pipelines need from the vision model.

Two operations:
  - describe(content, mime_type)       → ImageAnalysis
  - interpret_query(query, corpus)     → QueryInterpretation

Model output is decoded and validated here, at the boundary. Anything that
does not fit the expected shape becomes MalformedResponseError; callers only
ever see typed results or an AnalysisError. Token usage rides along on each
result so the caller decides whether to record cost.
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..core.errors import MalformedResponseError
from . import llm
from .keywords import GENERIC_IMAGE_TYPE
from .llm import TokenUsage

logger = logging.getLogger(__name__)


# ── Domain results ───────────────────────────────────────────────────

@dataclass(frozen=True)
class DocumentSummary:
    """What the interpreter is told about each stored document."""
    id: int
    document_type: Optional[str]
    keywords: list[str]
    description: str

    def to_prompt_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.document_type,
            "keywords": self.keywords,
            "description": self.description,
        }


@dataclass(frozen=True)
class ImageAnalysis:
    document_type: str
    description: str
    keywords: list[str]
    model: str
    country: Optional[str] = None
    typical_use: str = ""
    is_document: bool = False
    usage: Optional[TokenUsage] = None


@dataclass(frozen=True)
class RequiredDocument:
    name: str
    document_id: Optional[int] = None
    how_to_get: Optional[str] = None


@dataclass(frozen=True)
class QueryInterpretation:
    topic: str
    search_terms: list[str]
    matching_document_ids: list[int]
    required_documents: list[RequiredDocument] = field(default_factory=list)
    model: str = ""
    usage: Optional[TokenUsage] = None


class AnalysisClient(Protocol):
    async def describe(self, content: bytes, mime_type: str) -> ImageAnalysis:
        ...

    async def interpret_query(self, query: str, corpus: list[DocumentSummary]) -> QueryInterpretation:
        ...


# ── Wire schemas ─────────────────────────────────────────────────────

def _optional_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    text = str(v).strip()
    return text or None


def _as_int(v: Any) -> Optional[int]:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str) and v.strip().isdigit():
        return int(v.strip())
    return None


class ImageAnalysisPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_document: bool = Field(default=False, alias="isDocument")
    document_type: Optional[str] = Field(default=None, alias="documentType")
    description: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    country: Optional[str] = None
    typical_use: Optional[str] = Field(default=None, alias="typicalUse")

    @field_validator("is_document", mode="before")
    @classmethod
    def _truthy(cls, v):
        return bool(v)

    @field_validator("document_type", "description", "country", "typical_use", mode="before")
    @classmethod
    def _strip(cls, v):
        return _optional_str(v)

    @field_validator("keywords", mode="before")
    @classmethod
    def _keyword_list(cls, v):
        """A lone string becomes a one-item list; null becomes empty."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [str(k) for k in v if k is not None]
        return v


class RequiredDocumentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[int] = Field(default=None, validation_alias=AliasChoices("id", "documentId"))
    name: str = ""
    how_to_get: Optional[str] = Field(default=None, alias="howToGet")

    @field_validator("id", mode="before")
    @classmethod
    def _id(cls, v):
        return _as_int(v)

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return _optional_str(v) or ""

    @field_validator("how_to_get", mode="before")
    @classmethod
    def _how(cls, v):
        return _optional_str(v)


class SearchInterpretationPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    topic: Optional[str] = None
    interpretation: Optional[str] = None
    search_terms: Optional[list[str]] = Field(default=None, alias="searchTerms")
    matching_ids: list[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("matchingDocIds", "matchingDocumentIds"),
    )
    documents: list[RequiredDocumentPayload] = Field(
        default_factory=list,
        validation_alias=AliasChoices("documents", "requiredDocuments"),
    )

    @field_validator("topic", "interpretation", mode="before")
    @classmethod
    def _strip(cls, v):
        return _optional_str(v)

    @field_validator("search_terms", mode="before")
    @classmethod
    def _terms(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list):
            return [str(t).strip() for t in v if t is not None and str(t).strip()]
        return v

    @field_validator("matching_ids", mode="before")
    @classmethod
    def _ids(cls, v):
        """Keep integer-like ids, drop everything else."""
        if v is None:
            return []
        if not isinstance(v, list):
            v = [v]
        ids = [_as_int(x) for x in v]
        return [i for i in ids if i is not None]

    @field_validator("documents", mode="before")
    @classmethod
    def _docs(cls, v):
        if v is None:
            return []
        if isinstance(v, list):
            return [d for d in v if isinstance(d, dict)]
        return v


# ── Decoding ─────────────────────────────────────────────────────────

def strip_code_fences(text: str) -> str:
    """Remove ```json / ``` wrappers the model sometimes adds."""
    if text is not None and not isinstance(text, str):
        raise MalformedResponseError(f"Model response is {type(text).__name__}, expected text")
    clean = (text or "").strip()
    if clean.startswith("```json"):
        clean = clean[7:]
    if clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    return clean.strip()


def decode_json_object(text: str) -> dict:
    clean = strip_code_fences(text)
    try:
        data = json.loads(clean)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Model response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def parse_image_analysis(text: str, model: str = "", usage: Optional[TokenUsage] = None) -> ImageAnalysis:
    try:
        payload = ImageAnalysisPayload.model_validate(decode_json_object(text))
    except ValidationError as e:
        raise MalformedResponseError(f"Image analysis has an unexpected shape: {e}") from e

    document_type = payload.document_type or GENERIC_IMAGE_TYPE
    keywords = [k for k in payload.keywords if k.strip()]
    # No keywords at all: the document type is better than nothing
    if not keywords and payload.document_type and payload.document_type != GENERIC_IMAGE_TYPE:
        keywords = [payload.document_type.lower()]

    return ImageAnalysis(
        document_type=document_type,
        description=payload.description or "",
        keywords=keywords,
        country=payload.country,
        typical_use=payload.typical_use or "",
        is_document=payload.is_document,
        model=model,
        usage=usage,
    )


def parse_query_interpretation(
    text: str,
    query: str,
    model: str = "",
    usage: Optional[TokenUsage] = None,
) -> QueryInterpretation:
    try:
        payload = SearchInterpretationPayload.model_validate(decode_json_object(text))
    except ValidationError as e:
        raise MalformedResponseError(f"Search interpretation has an unexpected shape: {e}") from e

    # dict.fromkeys keeps first-seen order
    ids = list(dict.fromkeys(payload.matching_ids))
    required = [
        RequiredDocument(name=d.name, document_id=d.id, how_to_get=d.how_to_get)
        for d in payload.documents
        if d.name
    ]
    return QueryInterpretation(
        topic=payload.topic or payload.interpretation or query,
        search_terms=payload.search_terms if payload.search_terms is not None else [query],
        matching_document_ids=ids,
        required_documents=required,
        model=model,
        usage=usage,
    )


# ── Prompts ──────────────────────────────────────────────────────────

DESCRIBE_PROMPT = """Analise este documento (imagem ou PDF) e extraia informações detalhadas.

Responda APENAS com JSON válido, sem markdown e sem explicações.

Se for um documento, identifique o tipo com precisão (passaporte, carteira de identidade / RG,
comprovante de residência / morada, contrato, certidão, diploma, carteira de trabalho, NIF,
título de residência, autorização de residência, extrato bancário, recibo, etc.).
Para passaportes use sempre "passaporte" como documentType e inclua "passaporte" nas keywords.

Gere PELO MENOS 20 keywords: nome completo do documento, sinônimos, processo e contexto de uso,
país, instituição emissora visível, características visíveis (foto, assinatura, carimbo, selo),
formato (digital, escaneado, original) e validade se visível.
Não inclua instruções de como obter o documento nas keywords.

Se NÃO for um documento, gere pelo menos 20 keywords descrevendo objetos, cores, pessoas,
lugares, contexto e estilo da imagem.

Formato obrigatório:
{
  "isDocument": true/false,
  "documentType": "tipo do documento em português ou 'imagem geral'",
  "description": "descrição detalhada sem dados pessoais sensíveis",
  "keywords": ["keyword1", "keyword2", "..."],
  "country": "país do documento ou null",
  "typicalUse": "para que este documento é tipicamente usado"
}"""

INTERPRET_PROMPT = """Você é um assistente de busca para uma galeria de imagens e documentos.

O usuário está buscando: "{query}"

Documentos disponíveis no sistema:
{corpus}

Responda APENAS com JSON, sem markdown:
{{
  "topic": "tema principal da busca, sem prefixos",
  "searchTerms": ["termos", "para", "buscar"],
  "matchingDocIds": [ids dos documentos que correspondem à busca; pode ser vazio],
  "documents": [
    {{
      "id": id do documento se existir no sistema ou null,
      "name": "nome do documento",
      "howToGet": "instruções curtas de como conseguir este documento"
    }}
  ]
}}

"documents" deve listar TODOS os documentos necessários para o tema, mesmo que o usuário
não tenha nenhum deles. Use "id" somente para documentos presentes na lista acima."""


# ── Gemini implementation ────────────────────────────────────────────

class GeminiAnalysisClient:
    """AnalysisClient backed by Gemini through services.llm."""

    def __init__(self, model: Optional[str] = None):
        self.model = model

    async def describe(self, content: bytes, mime_type: str) -> ImageAnalysis:
        data_url = f"data:{mime_type};base64,{base64.b64encode(content).decode('utf-8')}"
        logger.info("Analyzing file: %s, %.2f KB", mime_type, len(content) / 1024)

        result = await llm.chat_with_vision(
            prompt=DESCRIBE_PROMPT,
            image_urls=[data_url],
            model=self.model,
        )
        analysis = parse_image_analysis(result.content, model=result.model, usage=result.usage)
        logger.info(
            "Analysis parsed: type=%s keywords=%d", analysis.document_type, len(analysis.keywords)
        )
        return analysis

    async def interpret_query(self, query: str, corpus: list[DocumentSummary]) -> QueryInterpretation:
        prompt = INTERPRET_PROMPT.format(
            query=query.replace('"', "'"),
            corpus=json.dumps([d.to_prompt_dict() for d in corpus], ensure_ascii=False, indent=2),
        )
        result = await llm.chat_simple(prompt, model=self.model)
        return parse_query_interpretation(result.content, query, model=result.model, usage=result.usage)


def get_analysis_client() -> AnalysisClient:
    return GeminiAnalysisClient()
