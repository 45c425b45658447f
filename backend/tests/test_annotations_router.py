"""
API tests for the /annotations router.

Each test runs against a fresh session service backed by in-memory storage.
"""

import csv
import io
import os
import threading

os.environ.setdefault("ANNOTATIONS_PERSISTENCE_BACKEND", "memory")

import pytest
from fastapi.testclient import TestClient

from app.routers import annotations
from app.services.annotation_session_service import AnnotationSessionService
from app.services.persistence_adapter import InMemoryPersistenceAdapter
from app.services.persistence_writer import PersistenceWriter
from app.services.selection_mapper import OffsetSelection
from main import app

DOCUMENT = "The term is 30 days. Supplier shall indemnify Buyer."
DOC = "/annotations/contract-1"


@pytest.fixture
def adapter():
    return InMemoryPersistenceAdapter()


@pytest.fixture
def service(adapter, monkeypatch):
    service = AnnotationSessionService(PersistenceWriter(adapter, synchronous=True))
    monkeypatch.setattr(annotations, "annotation_service", service)
    return service


@pytest.fixture
def client(service):
    client = TestClient(app)
    response = client.put(f"{DOC}/document", json={"text": DOCUMENT})
    assert response.status_code == 200
    return client


def highlight(client, start, end):
    response = client.post(f"{DOC}/selection", json={"start_offset": start, "end_offset": end})
    assert response.status_code == 200
    return response.json()["highlight"]


def test_root_and_health():
    client = TestClient(app)
    assert client.get("/").json()["status"] == "running"
    assert client.get("/health").json() == {"status": "healthy"}


class TestSession:
    def test_state(self, client):
        state = client.get(DOC).json()
        assert state["document_length"] == len(DOCUMENT)
        assert state["highlight_mode"] is True
        assert state["active_category"]["id"] == "custom"
        assert state["highlights_count"] == 0

    def test_mode_off_ignores_selections(self, client):
        client.put(f"{DOC}/mode", json={"enabled": False})
        assert highlight(client, 12, 19) is None
        assert client.get(f"{DOC}/highlights").json() == []

    def test_reopened_session_sees_queued_writes(self, adapter):
        release = threading.Event()

        class SlowAdapter:
            def save(self, key, value):
                release.wait(5)
                return adapter.save(key, value)

            def load(self, key):
                return adapter.load(key)

        writer = PersistenceWriter(SlowAdapter())
        service = AnnotationSessionService(writer)
        service.set_document("contract-1", DOCUMENT)
        created = service.handle_selection("contract-1", OffsetSelection(DOCUMENT, 12, 19))

        service.close_session("contract-1")
        reopened = service.get_session("contract-1")
        assert [h.id for h in reopened.store.query()] == [created.id]

        release.set()
        writer.close()
        assert adapter.load("contract-highlights:contract-1")[0]["id"] == created.id


class TestCategories:
    def test_list_defaults(self, client):
        ids = [c["id"] for c in client.get(f"{DOC}/categories").json()]
        assert ids == ["risk", "obligation", "key-term", "custom"]

    def test_add_and_duplicate(self, client):
        response = client.post(
            f"{DOC}/categories", json={"name": "Important Dates", "color": "#9C27B0"}
        )
        assert response.status_code == 200
        assert response.json()["id"] == "important-dates"

        duplicate = client.post(
            f"{DOC}/categories", json={"name": "important dates", "color": "#000000"}
        )
        assert duplicate.status_code == 409

    def test_invalid_color(self, client):
        response = client.post(f"{DOC}/categories", json={"name": "X", "color": "blue"})
        assert response.status_code == 422

    def test_set_unknown_active(self, client):
        response = client.put(f"{DOC}/categories/active", json={"category_id": "nope"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Unknown category 'nope'"

    def test_delete_default_is_rejected(self, client):
        assert client.delete(f"{DOC}/categories/risk").status_code == 400

    def test_delete_unknown(self, client):
        assert client.delete(f"{DOC}/categories/nope").status_code == 404


class TestHighlights:
    def test_scenario(self, client):
        client.put(f"{DOC}/categories/active", json={"category_id": "obligation"})
        created = highlight(client, 12, 19)

        assert created["text"] == "30 days"
        assert created["startIndex"] == 12
        assert created["endIndex"] == 19
        assert created["category"] == "obligation"
        assert created["color"] == "#2196F3"

        html = client.get(f"{DOC}/render").json()["html"]
        assert html.count('<span class="contract-highlight"') == 1
        assert 'data-category="obligation"' in html
        assert ">30 days</span>" in html

    def test_markup_selection(self, client):
        highlight(client, 0, 3)
        html = client.get(f"{DOC}/render").json()["html"]
        start = html.index("Supplier")

        response = client.post(
            f"{DOC}/selection",
            json={"markup": html, "markup_start": start, "markup_end": start + 8},
        )
        created = response.json()["highlight"]
        assert created["text"] == "Supplier"
        assert created["startIndex"] == DOCUMENT.index("Supplier")

    def test_selection_past_end_is_trimmed(self, client):
        client.put("/annotations/short/document", json={"text": "The term is 30 days."})
        response = client.post(
            "/annotations/short/selection", json={"start_offset": 12, "end_offset": 40}
        )
        created = response.json()["highlight"]

        assert created["text"] == "30 days."
        assert created["startIndex"] == 12
        assert created["endIndex"] == 20

    def test_partial_offsets_fall_back_to_markup(self, client):
        html = client.get(f"{DOC}/render").json()["html"]
        start = html.index("Buyer")

        response = client.post(
            f"{DOC}/selection",
            json={"start_offset": 1, "markup_start": start, "markup_end": start + 5},
        )
        assert response.status_code == 200
        created = response.json()["highlight"]
        assert created["text"] == "Buyer"
        assert created["startIndex"] == DOCUMENT.index("Buyer")

    def test_empty_selection_returns_null(self, client):
        assert highlight(client, 5, 5) is None

    def test_selection_requires_one_form(self, client):
        response = client.post(f"{DOC}/selection", json={"start_offset": 1})
        assert response.status_code == 422

    def test_color_snapshot(self, client):
        client.put(f"{DOC}/categories/active", json={"category_id": "risk"})
        old = highlight(client, 21, 29)
        client.patch(f"{DOC}/categories/risk", json={"color": "#000000"})
        new = highlight(client, 30, 35)

        colors = {h["id"]: h["color"] for h in client.get(f"{DOC}/highlights").json()}
        assert colors[old["id"]] == "#F44336"
        assert colors[new["id"]] == "#000000"

    def test_note_update(self, client):
        created = highlight(client, 12, 19)
        response = client.patch(
            f"{DOC}/highlights/{created['id']}", json={"note": "Confirm with finance"}
        )
        assert response.status_code == 200
        assert response.json()["note"] == "Confirm with finance"

    def test_update_unknown(self, client):
        response = client.patch(f"{DOC}/highlights/missing", json={"note": "x"})
        assert response.status_code == 404

    def test_update_to_unknown_category(self, client):
        created = highlight(client, 12, 19)
        response = client.patch(f"{DOC}/highlights/{created['id']}", json={"category": "nope"})
        assert response.status_code == 400

    def test_filter_and_sort(self, client):
        client.put(f"{DOC}/categories/active", json={"category_id": "risk"})
        highlight(client, 30, 35)
        highlight(client, 0, 3)
        client.put(f"{DOC}/categories/active", json={"category_id": "custom"})
        highlight(client, 12, 19)

        risks = client.get(f"{DOC}/highlights", params={"category": "risk", "sort": "start"}).json()
        assert [h["text"] for h in risks] == ["The", "shall"]

    def test_delete_and_clear(self, client):
        first = highlight(client, 0, 3)
        highlight(client, 12, 19)

        assert client.delete(f"{DOC}/highlights/{first['id']}").status_code == 200
        assert client.delete(f"{DOC}/highlights/{first['id']}").status_code == 404
        assert client.delete(f"{DOC}/highlights").json()["removed"] == 1
        assert client.get(f"{DOC}/highlights").json() == []

    def test_selected_pointer(self, client):
        created = highlight(client, 0, 3)
        state = client.put(f"{DOC}/selected", json={"highlight_id": created["id"]}).json()
        assert state["selected_highlight_id"] == created["id"]

        client.delete(f"{DOC}/highlights/{created['id']}")
        assert client.get(DOC).json()["selected_highlight_id"] is None

    def test_summary(self, client):
        client.put(f"{DOC}/categories/active", json={"category_id": "obligation"})
        highlight(client, 12, 19)
        summary = client.get(f"{DOC}/summary").json()

        assert summary[0]["category"]["id"] == "obligation"
        assert summary[0]["count"] == 1

    def test_persisted_between_sessions(self, client, service, adapter):
        created = highlight(client, 12, 19)
        service.close_session("contract-1")

        stored = adapter.load("contract-highlights:contract-1")
        assert stored[0]["id"] == created["id"]
        ids = [h["id"] for h in client.get(f"{DOC}/highlights").json()]
        assert ids == [created["id"]]


class TestExport:
    def test_empty_export(self, client):
        response = client.get(f"{DOC}/export.csv")
        assert response.status_code == 400
        assert response.json()["detail"] == "No highlights to export"

    def test_export(self, client):
        created = highlight(client, 12, 19)
        client.patch(f"{DOC}/highlights/{created['id']}", json={"note": 'He said "hi", ok'})

        response = client.get(f"{DOC}/export.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "contract-highlights-" in response.headers["content-disposition"]

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Text", "Category", "Note", "Created At"]
        assert rows[1][:3] == ["30 days", "custom", 'He said "hi", ok']
