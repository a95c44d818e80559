from contextlib import asynccontextmanager
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from docgallery.core import database
from docgallery.core.config import get_settings
from docgallery.core.database import init_db
from docgallery.core.flags import get_flags
from docgallery.services.analysis import ImageAnalysis, QueryInterpretation
from docgallery.services.llm import TokenUsage


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY_AI", "")
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("FF_USE_S3", "false")
    monkeypatch.setenv("FF_USE_REDIS", "false")
    monkeypatch.setenv("FF_LLM_PROVIDER", "gemini")
    monkeypatch.setattr(database, "_engine", None)
    monkeypatch.setattr(database, "_session_factory", None)
    get_settings.cache_clear()
    get_flags.cache_clear()
    yield
    get_settings.cache_clear()
    get_flags.cache_clear()


@pytest.fixture
def open_db(tmp_path):
    """Returns an async context manager yielding a session on a fresh sqlite file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"

    @asynccontextmanager
    async def _open():
        engine = create_async_engine(url)
        await init_db(engine)
        factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with factory() as session:
                yield session
        finally:
            await engine.dispose()

    return _open


class StubAnalysisClient:
    """
    In-process AnalysisClient.

    `analyses` is consumed in order, the last entry repeats. Entries that are
    exceptions are raised instead of returned. Same for `interpretation`.
    """

    def __init__(self):
        self.analyses: list = []
        self.interpretation = None
        self.describe_calls: list[tuple[int, str]] = []
        self.corpus_seen: Optional[list] = None

    async def describe(self, content: bytes, mime_type: str) -> ImageAnalysis:
        self.describe_calls.append((len(content), mime_type))
        result = self.analyses.pop(0) if len(self.analyses) > 1 else self.analyses[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def interpret_query(self, query: str, corpus: list) -> QueryInterpretation:
        self.corpus_seen = corpus
        if isinstance(self.interpretation, Exception):
            raise self.interpretation
        return self.interpretation


@pytest.fixture
def stub_client():
    return StubAnalysisClient()


def make_analysis(
    document_type: str = "passaporte",
    keyword_count: int = 25,
    usage: Optional[TokenUsage] = TokenUsage(input_tokens=1200, output_tokens=300),
) -> ImageAnalysis:
    return ImageAnalysis(
        document_type=document_type,
        description=f"Um {document_type} digitalizado",
        keywords=[f"termo {i}" for i in range(keyword_count)],
        model="gemini-2.5-flash",
        country="Brasil",
        typical_use="Viagens internacionais",
        is_document=True,
        usage=usage,
    )


@pytest.fixture
def analysis_factory():
    return make_analysis
