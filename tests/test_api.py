from __future__ import annotations

import time
from typing import Any

from fastapi.testclient import TestClient

from authentiqc.errors import AnalysisError
from fakes import FakeAnalysisService, RecordingRepository


def _wait_until_settled(client: TestClient, task_id: str, timeout_s: float = 5.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        payload = client.get(f"/tasks/{task_id}").json()
        if payload["status"] != "PROCESSING":
            return payload
        time.sleep(0.01)
    raise AssertionError(f"task {task_id} still PROCESSING after {timeout_s}s")


def _create_product(client: TestClient) -> dict[str, Any]:
    response = client.post(
        "/products",
        json={
            "profile": {"name": "Leather Bag", "brand": "Acme", "category": "bag"},
            "reference_images": ["REF-1"],
        },
    )
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "authentiqc-test"}


def test_homepage_renders_activity_panel(client: TestClient) -> None:
    response = client.get("/")
    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert "Background Activity" in response.text
    assert "authentiqc-test Activity" in response.text


def test_identification_lifecycle(client: TestClient) -> None:
    response = client.post(
        "/tasks/identify",
        json={"api_key": "sk-test", "images": ["IMG-A"], "settings": {"model_tier": "DETAILED"}},
    )
    assert response.status_code == 202
    created = response.json()
    assert created["status"] == "PROCESSING"
    assert created["type"] == "IDENTIFY"

    settled = _wait_until_settled(client, created["task_id"])
    assert settled["status"] == "COMPLETED"
    assert settled["result"]["name"] == "Widget"
    assert settled["error"] is None

    feed = client.get("/tasks").json()
    assert feed["active_count"] == 0
    assert feed["items"][0]["navigate_to"] == f"/products/new?task={created['task_id']}"

    draft = client.get(f"/tasks/{created['task_id']}/draft")
    assert draft.status_code == 200
    assert draft.json()["profile"]["name"] == "Widget"
    assert draft.json()["images"] == ["IMG-A"]
    assert draft.json()["settings"]["model_tier"] == "DETAILED"


def test_identification_rejects_bad_input(client: TestClient) -> None:
    bad_url = client.post(
        "/tasks/identify", json={"api_key": "sk-test", "url": "ftp://example.com/item"}
    )
    no_input = client.post("/tasks/identify", json={"api_key": "sk-test"})
    no_key = client.post("/tasks/identify", json={"images": ["IMG-A"]})

    assert bad_url.status_code == 422
    assert no_input.status_code == 422
    assert no_key.status_code == 422
    assert client.get("/tasks").json() == {"active_count": 0, "items": []}


def test_server_key_is_used_when_request_has_none(
    client: TestClient, analysis: FakeAnalysisService
) -> None:
    client.app.state.settings.openai_api_key = "sk-server"

    response = client.post("/tasks/identify", json={"images": ["IMG-A"]})
    assert response.status_code == 202
    _wait_until_settled(client, response.json()["task_id"])

    assert analysis.identify_calls[-1].credentials == "sk-server"


def test_failed_identification_shows_error_in_feed(
    client: TestClient, analysis: FakeAnalysisService
) -> None:
    analysis.fail_with = AnalysisError("gpt-4o-mini request failed: HTTP 429")

    response = client.post("/tasks/identify", json={"api_key": "sk-test", "images": ["IMG-A"]})
    settled = _wait_until_settled(client, response.json()["task_id"])

    assert settled["status"] == "FAILED"
    assert settled["error"] == {
        "kind": "analysis",
        "message": "gpt-4o-mini request failed: HTTP 429",
    }
    item = client.get("/tasks").json()["items"][0]
    assert item["error"] == "gpt-4o-mini request failed: HTTP 429"
    assert item["navigate_to"] is None
    draft = client.get(f"/tasks/{settled['task_id']}/draft")
    assert draft.status_code == 409


def test_product_qc_round_trip(
    client: TestClient, analysis: FakeAnalysisService, repository: RecordingRepository
) -> None:
    product = _create_product(client)
    assert len(product["reference_image_ids"]) == 1

    response = client.post(
        f"/products/{product['id']}/qc",
        json={"api_key": "sk-test", "images": ["QC-1", "QC-2"], "user_comments": "Zipper?"},
    )
    assert response.status_code == 202
    task = response.json()
    assert task["type"] == "QC"
    assert task["meta"]["target_id"] == product["id"]

    settled = _wait_until_settled(client, task["task_id"])
    assert settled["status"] == "COMPLETED"

    stored = client.get(f"/products/{product['id']}").json()
    assert len(stored["qc_batches"]) == 1
    assert len(stored["qc_batches"][0]["image_ids"]) == 2
    assert len(stored["reports"]) == 1
    assert stored["reports"][0]["based_on_batch_ids"] == [stored["qc_batches"][0]["id"]]

    call = analysis.analyze_calls[-1]
    assert call.reference_images == ["REF-1"]
    assert call.inspection_images == ["QC-1", "QC-2"]
    assert call.user_comments == "Zipper?"

    item = client.get("/tasks").json()["items"][0]
    assert item["navigate_to"] == f"/products/{product['id']}"
    assert client.get(f"/tasks/{task['task_id']}/draft").status_code == 409

    listed = client.get("/products").json()
    assert [entry["id"] for entry in listed] == [product["id"]]


def test_qc_for_unknown_product_is_404(client: TestClient) -> None:
    response = client.post("/products/missing/qc", json={"api_key": "sk-test", "images": ["QC"]})
    assert response.status_code == 404


def test_qc_without_images_is_422(client: TestClient) -> None:
    product = _create_product(client)
    response = client.post(f"/products/{product['id']}/qc", json={"api_key": "sk-test"})
    assert response.status_code == 422


def test_dismiss_removes_task(client: TestClient) -> None:
    response = client.post("/tasks/identify", json={"api_key": "sk-test", "images": ["IMG-A"]})
    task_id = response.json()["task_id"]
    _wait_until_settled(client, task_id)

    assert client.delete(f"/tasks/{task_id}").status_code == 204
    assert client.get(f"/tasks/{task_id}").status_code == 404
    assert client.delete(f"/tasks/{task_id}").status_code == 204
    assert client.get("/tasks").json()["items"] == []


def test_unknown_task_routes_are_404(client: TestClient) -> None:
    assert client.get("/tasks/nope").status_code == 404
    assert client.get("/tasks/nope/draft").status_code == 404
    assert client.get("/products/nope").status_code == 404


def test_delete_product(client: TestClient) -> None:
    product = _create_product(client)

    assert client.delete(f"/products/{product['id']}").status_code == 204
    assert client.get(f"/products/{product['id']}").status_code == 404
    assert client.get("/products").json() == []


def test_completed_identification_link_opens_prefilled_form(client: TestClient) -> None:
    response = client.post(
        "/tasks/identify",
        json={"api_key": "sk-test", "images": ["IMG-A"], "url": "https://shop.example.com/p/1"},
    )
    task_id = response.json()["task_id"]
    _wait_until_settled(client, task_id)

    target = client.get("/tasks").json()["items"][0]["navigate_to"]
    form = client.get(target)

    assert form.status_code == 200
    assert form.json()["task_id"] == task_id
    assert form.json()["profile"]["name"] == "Widget"
    assert form.json()["images"] == ["IMG-A"]
    assert form.json()["url"] == "https://shop.example.com/p/1"


def test_new_product_form_requires_a_finished_identification(
    client: TestClient, analysis: FakeAnalysisService
) -> None:
    assert client.get("/products/new", params={"task": "nope"}).status_code == 404

    analysis.fail_with = AnalysisError("model refused")
    response = client.post("/tasks/identify", json={"api_key": "sk-test", "images": ["IMG-A"]})
    task_id = response.json()["task_id"]
    _wait_until_settled(client, task_id)

    assert client.get("/products/new", params={"task": task_id}).status_code == 409
