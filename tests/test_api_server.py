"""Tests for the FastAPI server."""
import pytest

pytest.importorskip("fastapi")
pytest.importorskip("multipart")

from fastapi.testclient import TestClient  # noqa: E402

from treasure_trove import api_server  # noqa: E402
from treasure_trove.config import Config  # noqa: E402
from treasure_trove.errors import PrintServiceError  # noqa: E402
from treasure_trove.storage import JsonItemStore  # noqa: E402


class FakePrintService:
    def __init__(self, fail=False):
        self.fail = fail
        self.submissions = []

    def submit(self, payload, queue):
        self.submissions.append((payload, queue))
        if self.fail:
            raise PrintServiceError("printer offline")
        return "zebra-9"


@pytest.fixture
def service():
    return FakePrintService()


@pytest.fixture
def client(monkeypatch, service):
    """Client against an in-memory store; the lifespan is not entered."""
    cfg = Config.from_dict({"store_file": None, "printer": {"retry_delay": 0}})
    monkeypatch.setattr(api_server, "config", cfg)
    monkeypatch.setattr(api_server, "store", JsonItemStore())
    monkeypatch.setattr(api_server, "print_service", service)
    return TestClient(api_server.app)


class TestFormHelpers:
    """Tests for form value helpers."""

    @pytest.mark.parametrize("value,expected", [
        (None, None),
        ("", None),
        ("   ", None),
        (" Garage ", "Garage"),
    ])
    def test_normalize_optional(self, value, expected):
        assert api_server.normalize_optional(value) == expected

    @pytest.mark.parametrize("bin_select,bin_new,expected", [
        ("Spring 1", None, "Spring 1"),
        ("Spring 1", "Shelf A", "Shelf A"),
        ("Spring 1", "   ", "Spring 1"),
        ("-", None, None),
        ("", "", None),
        (None, None, None),
    ])
    def test_choose_bin(self, bin_select, bin_new, expected):
        assert api_server.choose_bin(bin_select, bin_new) == expected

    def test_form_escapes_bin_names(self):
        page = api_server.render_form(["Tapes & Adhesives", "<b>"])
        assert "Tapes &amp; Adhesives" in page
        assert "<b>" not in page.split("<select", 1)[1]


class TestFormRoutes:
    """Tests for the HTML form and its submission."""

    def test_form_lists_bins(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert "Speak or list your treasures" in response.text
        assert "Wires &amp; Cables" in response.text

    def test_submit(self, client):
        response = client.post("/submit", data={
            "text": "2 hammers, tape",
            "bin_select": "Spring 1",
            "bin_new": "",
            "location": "Garage",
        })

        assert response.status_code == 200
        assert "2 × hammers — Bin: Spring 1 — Location: Garage" in response.text
        assert len(api_server.store.list_items()) == 2

    def test_submit_new_bin(self, client):
        response = client.post("/submit", data={"text": "saw", "bin_select": "-", "bin_new": "Shelf A"})

        assert "1 × saw — Bin: Shelf A" in response.text
        assert "Shelf A" in [c.name for c in api_server.store.list_containers()]

    def test_submit_escapes_names(self, client):
        response = client.post("/submit", data={"text": "<script>"})
        assert "&lt;script&gt;" in response.text
        assert "<script>" not in response.text


class TestJsonApi:
    """Tests for the JSON endpoints."""

    def test_extract_does_not_store(self, client):
        response = client.post("/api/extract", json={"text": "three boxes of screws and a hammer"})

        assert response.status_code == 200
        assert response.json() == {"items": [
            {"name": "boxes of screws", "quantity": 3, "confidence": "rule-based"},
            {"name": "hammer", "quantity": 1, "confidence": "rule-based"},
        ]}
        assert api_server.store.list_items() == []

    def test_add_and_list(self, client):
        response = client.post("/api/items", json={"text": "2 hammers", "container": "Autumn", "location": " "})

        items = response.json()["items"]
        assert items[0]["name"] == "hammers"
        assert items[0]["container"] == "Autumn"
        assert items[0]["location"] is None

        listed = client.get("/api/items").json()["items"]
        assert [item["id"] for item in listed] == [items[0]["id"]]

    def test_label(self, client):
        item_id = client.post("/api/items", json={"text": "hammer", "container": "Autumn"}).json()["items"][0]["id"]

        response = client.get(f"/api/items/{item_id}/label")

        assert response.status_code == 200
        assert response.text.startswith("^XA")
        assert "^FDBin: Autumn^FS" in response.text

    def test_label_unknown_item(self, client):
        assert client.get("/api/items/999/label").status_code == 404


class TestPrintEndpoint:
    """Tests for the print endpoint."""

    def _add(self, client):
        return client.post("/api/items", json={"text": "hammer"}).json()["items"][0]["id"]

    def test_print(self, client, service):
        item_id = self._add(client)

        response = client.post(f"/api/items/{item_id}/print")

        assert response.status_code == 200
        assert response.json() == {"success": True, "job_id": "zebra-9", "attempts": 1}
        assert service.submissions[0][1] == "zebra"

    def test_print_queue_override(self, client, service):
        item_id = self._add(client)

        client.post(f"/api/items/{item_id}/print", json={"queue": "attic"})

        assert service.submissions[0][1] == "attic"

    def test_print_offline(self, client, monkeypatch):
        offline = FakePrintService(fail=True)
        monkeypatch.setattr(api_server, "print_service", offline)
        item_id = self._add(client)

        response = client.post(f"/api/items/{item_id}/print")

        assert response.status_code == 503
        assert "Printer offline, retry later" in response.json()["detail"]
        assert len(offline.submissions) == 3

    def test_print_unknown_item(self, client, service):
        assert client.post("/api/items/999/print").status_code == 404
        assert service.submissions == []


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        client.post("/api/items", json={"text": "hammer"})

        data = client.get("/health").json()

        assert data == {
            "status": "ok",
            "store_loaded": True,
            "item_count": 1,
            "llm_enabled": False,
            "printer_queue": "zebra",
        }

    def test_store_not_loaded(self, client, monkeypatch):
        monkeypatch.setattr(api_server, "store", None)

        assert client.get("/api/items").status_code == 503
        assert client.get("/health").json()["store_loaded"] is False
