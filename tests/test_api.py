"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from nutrisnap.api.app import create_app
from nutrisnap.services.local_cache import PENDING_ANON_UID_MARKER, LocalCacheStore
from tests.conftest import FakeNutritionAIClient, InMemoryRemoteLogStore

APPLE = {"name": "Apple", "calories": 95, "protein": 0.5, "carbs": 25, "fat": 0.3}


def test_health(container) -> None:
    client = TestClient(create_app(container))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_signed_out_log_lives_in_local_cache(
    container, local_cache: LocalCacheStore
) -> None:
    with TestClient(create_app(container)) as client:
        identity = client.get("/identity").json()
        added = client.post("/log", json={"records": [APPLE]})
        listed = client.get("/log")

        assert identity["uid"] is None
        assert identity["state"] == "local_only"
        assert added.status_code == 200
        record = added.json()["records"][0]
        assert record["timestamp"] is not None
        assert [item["name"] for item in listed.json()["records"]] == ["Apple"]
        assert len(local_cache.list_day_keys()) == 1

        removed = client.delete(f"/log/{record['id']}")
        assert removed.json() == {"status": "ok"}
        assert client.get("/log").json()["records"] == []


def test_calendar_requires_permanent_account(container) -> None:
    with TestClient(create_app(container)) as client:
        assert client.get("/log", params={"day": "2020-01-01"}).status_code == 403

        client.post("/auth/anonymous")
        assert client.get("/log", params={"day": "2020-01-01"}).status_code == 403

        client.post(
            "/auth/sign-up",
            json={"email": "new@example.com", "password": "secret123"},
        )
        response = client.get("/log", params={"day": "2020-01-01"})

    assert response.status_code == 200
    assert response.json() == {"day": "2020-01-01", "records": []}


def test_calendar_gate_covers_macros_and_insights(container) -> None:
    with TestClient(create_app(container)) as client:
        macros = client.get("/macros", params={"day": "2020-01-01"})
        insights = client.post("/insights", params={"day": "2020-01-01"})

        client.post("/auth/anonymous")
        anonymous_macros = client.get("/macros", params={"day": "2020-01-01"})

    assert macros.status_code == 403
    assert insights.status_code == 403
    assert anonymous_macros.status_code == 403


def test_blank_record_name_is_rejected(container) -> None:
    with TestClient(create_app(container)) as client:
        response = client.post("/log", json={"records": [{**APPLE, "name": "   "}]})
        listed = client.get("/log")

    assert response.status_code == 422
    assert listed.json()["records"] == []


def test_sign_up_migrates_local_log(
    container,
    local_cache: LocalCacheStore,
    remote_store: InMemoryRemoteLogStore,
) -> None:
    with TestClient(create_app(container)) as client:
        client.post("/log", json={"records": [APPLE]})
        response = client.post(
            "/auth/sign-up",
            json={"email": "new@example.com", "password": "secret123"},
        )
        listed = client.get("/log")

    assert response.json() == {
        "uid": "user-1",
        "is_anonymous": False,
        "state": "live",
        "can_browse_calendar": True,
    }
    assert [record.name for record in remote_store.records("user-1")] == ["Apple"]
    assert local_cache.list_day_keys() == []
    assert [item["name"] for item in listed.json()["records"]] == ["Apple"]


def test_anonymous_log_merges_into_new_account(
    container,
    local_cache: LocalCacheStore,
    remote_store: InMemoryRemoteLogStore,
) -> None:
    with TestClient(create_app(container)) as client:
        anonymous = client.post("/auth/anonymous").json()
        client.post("/log", json={"records": [APPLE]})
        signed_out = client.post("/auth/sign-out").json()
        offline_log = client.get("/log").json()
        client.post(
            "/auth/sign-up",
            json={"email": "new@example.com", "password": "secret123"},
        )

    assert anonymous["uid"] == "anon-1"
    assert anonymous["can_browse_calendar"] is False
    assert signed_out["state"] == "local_only"
    assert offline_log["records"] == []
    assert [record.name for record in remote_store.records("anon-1")] == ["Apple"]
    assert [record.name for record in remote_store.records("user-1")] == ["Apple"]
    assert local_cache.get_marker(PENDING_ANON_UID_MARKER) is None


def test_sign_in_errors(container) -> None:
    with TestClient(create_app(container)) as client:
        rejected = client.post(
            "/auth/sign-in",
            json={"email": "who@example.com", "password": "secret123"},
        )
        invalid = client.post(
            "/auth/sign-in", json={"email": "who@example.com", "password": "x"}
        )

    assert rejected.status_code == 401
    assert rejected.json()["detail"] == "Invalid login credentials"
    assert invalid.status_code == 422


def test_goals_and_macros(container) -> None:
    with TestClient(create_app(container)) as client:
        client.put(
            "/goals",
            json={"calories": 1900, "protein": 140, "carbs": 200, "fat": 60},
        )
        client.post("/log", json={"records": [APPLE, {**APPLE, "name": "Pear"}]})
        goals = client.get("/goals").json()
        macros = client.get("/macros").json()

    assert goals["calories"] == 1900
    assert macros["totals"]["calories"] == 190
    assert macros["progress"][0]["label"] == "Calories"
    assert macros["progress"][0]["goal"] == 1900
    assert macros["progress"][0]["percentage"] == pytest.approx(10.0)


def test_estimate_endpoints(container, ai_client: FakeNutritionAIClient) -> None:
    with TestClient(create_app(container)) as client:
        text = client.post("/estimate/text", json={"query": "chicken and rice"})
        image = client.post(
            "/estimate/image",
            content=b"\xff\xd8\xff\xe0fake",
            headers={"Content-Type": "image/jpeg"},
        )

    assert [item["name"] for item in text.json()["records"]] == [
        "Grilled chicken",
        "Rice",
    ]
    assert image.status_code == 200
    assert ai_client.image_urls[-1].startswith("data:image/jpeg;base64,")


def test_estimate_failure_returns_bad_gateway(
    container, ai_client: FakeNutritionAIClient
) -> None:
    ai_client.payload = {"unexpected": True}

    with TestClient(create_app(container)) as client:
        response = client.post("/estimate/text", json={"query": "soup"})
        empty_image = client.post("/estimate/image", content=b"")

    assert response.status_code == 502
    assert empty_image.status_code == 502


def test_insights(container, ai_client: FakeNutritionAIClient) -> None:
    with TestClient(create_app(container)) as client:
        client.post("/log", json={"records": [APPLE]})
        response = client.post("/insights")

    assert response.status_code == 200
    assert response.json()["markdown"].startswith("## Great day")
    assert "Apple (95 kcal)" in ai_client.prompts[-1]
