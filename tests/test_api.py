import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from docgallery.core.database import get_session_factory
from docgallery.core.dependencies import get_analysis_client_dep, get_db
from docgallery.core.errors import AuthError, ConfigurationError
from docgallery.factory import create_app
from docgallery.services.analysis import QueryInterpretation, RequiredDocument
from docgallery.services.llm import TokenUsage

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


@pytest.fixture
def client(stub_client):
    app = create_app()
    app.dependency_overrides[get_analysis_client_dep] = lambda: stub_client
    with TestClient(app) as test_client:
        yield test_client


def _upload(client, *names, mime="image/png", content=PNG):
    files = [("files", (name, content, mime)) for name in names]
    return client.post("/api/upload", files=files)


def test_health(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_upload_list_and_serve(client, stub_client, analysis_factory):
    stub_client.analyses = [analysis_factory("passaporte")]

    resp = _upload(client, "passaporte.png")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    doc = body["documents"][0]
    assert doc["display_name"].startswith("passaporte-")
    assert len(doc["ai_keywords"]) == 25

    listed = client.get("/api/documents").json()
    assert [d["id"] for d in listed["documents"]] == [doc["id"]]

    served = client.get(doc["url"])
    assert served.status_code == 200
    assert served.content == PNG


def test_rejected_upload_returns_422(client, stub_client, tmp_path):
    stub_client.analyses = [AuthError("API key invalid", status_code=403)]

    resp = _upload(client, "rg.pdf", mime="application/pdf", content=b"%PDF-1.4 test")

    assert resp.status_code == 422
    assert resp.json()["success"] is False
    assert "rg.pdf" in resp.json()["error"]
    assert client.get("/api/documents").json()["documents"] == []
    assert list((tmp_path / "uploads").iterdir()) == []


def test_unsupported_file_type_returns_400(client, stub_client):
    resp = _upload(client, "notes.txt", mime="text/plain", content=b"hello")

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert stub_client.describe_calls == []


def test_batch_rejection_rolls_back_everything(client, stub_client, analysis_factory):
    stub_client.analyses = [analysis_factory("passaporte"), analysis_factory("imagem geral", keyword_count=0)]

    resp = _upload(client, "a.png", "b.png")

    assert resp.status_code == 422
    assert "b.png" in resp.json()["error"]
    assert client.get("/api/documents").json()["documents"] == []
    assert client.get("/api/costs").json()["records"] == []


def test_failed_commit_is_not_reported_as_success(client, stub_client, analysis_factory, tmp_path):
    stub_client.analyses = [analysis_factory("passaporte")]

    async def locked_db():
        async with get_session_factory()() as session:
            async def locked_commit():
                raise OperationalError("COMMIT", {}, Exception("database is locked"))

            session.commit = locked_commit
            yield session

    client.app.dependency_overrides[get_db] = locked_db
    resp = _upload(client, "passaporte.png")
    del client.app.dependency_overrides[get_db]

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert client.get("/api/documents").json()["documents"] == []
    assert list((tmp_path / "uploads").iterdir()) == []


def test_rename_and_delete(client, stub_client, analysis_factory):
    stub_client.analyses = [analysis_factory("nif")]
    doc_id = _upload(client, "nif.png").json()["documents"][0]["id"]

    renamed = client.put(f"/api/documents/{doc_id}/rename", json={"new_name": "Meu NIF"})
    assert renamed.json() == {"success": True, "display_name": "Meu NIF.png"}

    assert client.put(f"/api/documents/{doc_id}/rename", json={"new_name": " "}).status_code == 400
    assert client.put("/api/documents/999/rename", json={"new_name": "x"}).status_code == 404

    assert client.delete(f"/api/documents/{doc_id}").json() == {"success": True}
    assert client.get("/api/documents").json()["documents"] == []
    assert client.delete(f"/api/documents/{doc_id}").status_code == 404


def test_search_with_interpretation(client, stub_client, analysis_factory):
    stub_client.analyses = [analysis_factory("passaporte")]
    doc_id = _upload(client, "p.png").json()["documents"][0]["id"]
    stub_client.interpretation = QueryInterpretation(
        topic="Viagem",
        search_terms=["passaporte"],
        matching_document_ids=[doc_id],
        required_documents=[
            RequiredDocument(name="Passaporte", document_id=doc_id),
            RequiredDocument(name="Visto", how_to_get="Consulado"),
        ],
        model="gemini-2.5-flash",
        usage=TokenUsage(500, 100),
    )

    body = client.post("/api/search", json={"query": "vou viajar"}).json()

    assert body["success"] is True
    assert body["topic"] == "Viagem"
    assert body["matchingDocumentIds"] == [doc_id]
    assert body["searchResults"][0]["id"] == doc_id
    assert [d["hasDocument"] for d in body["documents"]] == [True, False]
    assert body["degraded"] is False

    costs = client.get("/api/costs").json()
    assert costs["summary"]["count"] == 2
    assert costs["summary"]["by_operation"]["search"]["count"] == 1


def test_search_degrades_without_key(client, stub_client):
    stub_client.interpretation = ConfigurationError("GEMINI_API_KEY_AI is not configured")

    body = client.post("/api/search", json={"query": "passaporte"}).json()

    assert body["success"] is True
    assert body["degraded"] is True
    assert body["searchResults"] == []
    assert body["suggestions"]


def test_blank_search_returns_400(client):
    resp = client.post("/api/search", json={"query": "  "})

    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_costs_range_validation(client):
    resp = client.get("/api/costs", params={"start": "2024-02-01T00:00:00", "end": "2024-01-01T00:00:00"})

    assert resp.status_code == 400


def test_costs_empty_ledger(client):
    body = client.get("/api/costs").json()

    assert body["success"] is True
    assert body["records"] == []
    assert body["summary"]["total_usd"] == 0.0
