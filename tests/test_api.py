from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient

from diabetes_assistant import main
from diabetes_assistant.config import Settings
from diabetes_assistant.diabetes.services.storage import InMemoryStorage


def _periods(field: str, values: list[float], hours: list[float] | None = None) -> list[dict[str, Any]]:
    spans = hours or [24 / len(values)] * len(values)
    start = 0.0
    out = []
    for value, span in zip(values, spans):
        out.append({"startHour": start, "hours": span, field: value})
        start += span
    return out


def _settings_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "targetMin": 6.0,
        "targetMax": 8.0,
        "iobDuration": 4.0,
        "insulinPeriods": _periods("coefficient", [1.0]),
        "sensitivityPeriods": _periods("sensitivity", [2.0, 2.0]),
        "carbRatioPeriods": _periods("ratio", [10.0, 10.0, 10.0, 10.0]),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def client(app_settings: Settings) -> Iterator[TestClient]:
    with TestClient(main.app) as test_client:
        yield test_client


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/api/health/ping").json() == {"status": "up"}
    assert client.get("/api/ping").json() == {"message": "pong"}


def test_ping_returns_503_when_storage_unavailable(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def fail_ping() -> None:
        raise RuntimeError("storage down")

    monkeypatch.setattr(main.app.state.storage, "ping", fail_ping)
    resp = client.get("/api/health/ping")
    assert resp.status_code == 503
    assert resp.json() == {"status": "down"}


def test_lifespan_uses_memory_storage(client: TestClient) -> None:
    assert isinstance(main.app.state.storage, InMemoryStorage)
    assert main.app.state.food_analyzer.provider_name == "mock"


def test_settings_round_trip(client: TestClient) -> None:
    assert client.get("/api/settings/u1").status_code == 404

    resp = client.post("/api/settings/u1", json=_settings_payload())
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    body = client.get("/api/settings/u1").json()["settings"]
    assert body["targetMin"] == 6.0
    assert body["insulinPeriods"] == [
        {"startTime": "00:00", "startHour": 0.0, "hours": 24.0, "label": None, "coefficient": 1.0}
    ]
    assert body["sensitivityPeriods"][1]["startTime"] == "12:00"


def test_settings_accept_start_time_and_duration_alias(client: TestClient) -> None:
    insulin = [
        {"startTime": "00:00", "durationHours": 6, "coefficient": 1.0, "label": "Night"},
        {"startTime": "06:00", "durationHours": 18, "coefficient": 1.2},
    ]
    resp = client.post("/api/settings/u1", json=_settings_payload(insulinPeriods=insulin))
    assert resp.status_code == 200
    body = client.get("/api/settings/u1").json()["settings"]
    assert body["insulinPeriods"][0]["label"] == "Night"
    assert body["insulinPeriods"][1]["hours"] == 18


def test_settings_reject_incomplete_day(client: TestClient) -> None:
    payload = _settings_payload(insulinPeriods=_periods("coefficient", [1.0, 1.2], [12, 8]))
    resp = client.post("/api/settings/u1", json=payload)
    assert resp.status_code == 422
    assert "4 hours short of 24" in resp.text
    assert client.get("/api/settings/u1").status_code == 404


@pytest.mark.parametrize(
    "overrides",
    [
        {"insulinPeriods": []},
        {"targetMin": 0},
        {"targetMin": 9.0},
        {"sensitivityPeriods": _periods("sensitivity", [0.0])},
        {"carbRatioPeriods": [{"startHour": 0, "hours": 24}]},
        {"insulinPeriods": [{"hours": 24, "coefficient": 1.0}]},
    ],
)
def test_settings_validation_errors(client: TestClient, overrides: dict[str, Any]) -> None:
    resp = client.post("/api/settings/u1", json=_settings_payload(**overrides))
    assert resp.status_code == 422


def test_post_bloodsugar_creates_user(client: TestClient) -> None:
    resp = client.post("/api/bloodsugar", json={"userId": "new", "value": 11.2})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["reading"]["value"] == 11.2
    assert data["reading"]["status"] == "High blood sugar (hyperglycemia)"
    assert data["coefficientsAdjusted"] is False
    assert data["targetLevel"] == 4.0

    settings = client.get("/api/settings/new").json()["settings"]
    assert [p["coefficient"] for p in settings["insulinPeriods"]] == [1.0, 1.2, 1.0, 0.8]


def test_post_bloodsugar_rejects_bad_value(client: TestClient) -> None:
    resp = client.post("/api/bloodsugar", json={"userId": "u1", "value": -1})
    assert resp.status_code == 422


def test_readings_list_and_delete(client: TestClient) -> None:
    assert client.get("/api/bloodsugar/u1").status_code == 404

    for value in (5.0, 6.0, 7.0):
        client.post("/api/bloodsugar", json={"userId": "u1", "value": value})

    readings = client.get("/api/bloodsugar/u1").json()["readings"]
    assert [r["value"] for r in readings] == [7.0, 6.0, 5.0]
    limited = client.get("/api/bloodsugar/u1", params={"limit": 2}).json()["readings"]
    assert len(limited) == 2

    timestamp = readings[1]["timestamp"]
    resp = client.request("DELETE", "/api/bloodsugar", json={"userId": "u1", "timestamp": timestamp})
    assert resp.status_code == 200
    remaining = client.get("/api/bloodsugar/u1").json()["readings"]
    assert [r["value"] for r in remaining] == [7.0, 5.0]

    resp = client.request("DELETE", "/api/bloodsugar", json={"userId": "u1", "timestamp": timestamp})
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Blood sugar reading not found"

    resp = client.request(
        "DELETE", "/api/bloodsugar", json={"userId": "ghost", "timestamp": timestamp}
    )
    assert resp.status_code == 404
    assert resp.json()["detail"] == "User not found"


def test_readings_start_date_filter(client: TestClient) -> None:
    client.post("/api/bloodsugar", json={"userId": "u1", "value": 5.0})
    resp = client.get("/api/bloodsugar/u1", params={"startDate": "2999-01-01T00:00:00Z"})
    assert resp.json() == {"readings": []}


def test_sync_libre(client: TestClient) -> None:
    resp = client.post("/api/sync-libre", json={"userId": "u1", "method": "manual", "value": "6.5"})
    assert resp.status_code == 404

    client.post("/api/settings/u1", json=_settings_payload())
    resp = client.post("/api/sync-libre", json={"userId": "u1", "method": "api"})
    assert resp.status_code == 400
    resp = client.post("/api/sync-libre", json={"userId": "u1", "method": "manual"})
    assert resp.status_code == 400

    resp = client.post("/api/sync-libre", json={"userId": "u1", "method": "manual", "value": "6.5"})
    assert resp.status_code == 200
    assert resp.json()["reading"]["value"] == 6.5
    readings = client.get("/api/bloodsugar/u1").json()["readings"]
    assert readings[0]["source"] == "libre-manual"


def test_dose(client: TestClient) -> None:
    client.post("/api/settings/u1", json=_settings_payload())
    resp = client.post(
        "/api/dose",
        json={"userId": "u1", "carbGrams": 50, "currentBG": 9.0, "insulinOnBoard": 2.0},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["mealInsulin"] == pytest.approx(5.0)
    assert data["correctionInsulin"] == pytest.approx(1.5)
    assert data["totalInsulin"] == pytest.approx(4.5)
    assert data["activeDosingCoefficient"] == 1.0
    assert data["coefficientDefaulted"] is False
    assert data["targetBG"] == 6.0


def test_dose_uses_latest_reading(client: TestClient) -> None:
    client.post("/api/settings/u1", json=_settings_payload())
    client.post("/api/sync-libre", json={"userId": "u1", "method": "manual", "value": 10.0})
    data = client.post("/api/dose", json={"userId": "u1", "carbGrams": 0}).json()
    assert data["currentBG"] == 10.0
    assert data["correctionInsulin"] == pytest.approx(2.0)
    assert data["totalInsulin"] == pytest.approx(2.0)


def test_dose_rejects_negative_carbs(client: TestClient) -> None:
    resp = client.post("/api/dose", json={"userId": "u1", "carbGrams": -5})
    assert resp.status_code == 422


def test_analyze_food_with_mock_provider(client: TestClient, app_settings: Settings) -> None:
    client.post("/api/settings/u1", json=_settings_payload())
    resp = client.post(
        "/api/analyze-food",
        data={"userId": "u1", "foodWeight": "200"},
        files={"foodPhoto": ("pizza.JPG", b"\xff\xd8\xff\xe0fake", "image/jpeg")},
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["detectedFood"] == "Pizza"
    assert data["carbs"] == pytest.approx(90)
    assert data["insulinDose"] == pytest.approx(9.0)
    assert data["analysis"]["provider"] == "mock"
    assert data["analysis"]["periodCoefficient"] == 1.0

    saved = list(Path(app_settings.uploads_dir).glob("food_*.jpg"))
    assert len(saved) == 1
    assert saved[0].name == data["photoPath"]
    assert saved[0].read_bytes() == b"\xff\xd8\xff\xe0fake"


def test_analyze_food_requires_photo(client: TestClient) -> None:
    resp = client.post("/api/analyze-food", data={"userId": "u1"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Food photo is required for analysis"


def test_analyze_food_ignores_invalid_weight(client: TestClient) -> None:
    resp = client.post(
        "/api/analyze-food",
        data={"userId": "u1", "foodWeight": "heavy"},
        files={"foodPhoto": ("pizza.png", b"png", "image/png")},
    )
    assert resp.status_code == 200
    assert resp.json()["carbs"] == 45


def test_analyze_food_rejects_large_photo(client: TestClient) -> None:
    resp = client.post(
        "/api/analyze-food",
        data={"userId": "u1"},
        files={"foodPhoto": ("big.jpg", b"0" * ((10 << 20) + 1), "image/jpeg")},
    )
    assert resp.status_code == 413


def test_analyze_food_provider_failure_maps_to_502(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    from diabetes_assistant.diabetes.services.food_analysis import FoodAnalysisError

    async def broken(*args: object, **kwargs: object) -> None:
        raise FoodAnalysisError("openai API error: boom")

    monkeypatch.setattr(main.app.state.food_analyzer.provider, "analyze", broken)
    resp = client.post(
        "/api/analyze-food",
        data={"userId": "u1"},
        files={"foodPhoto": ("pizza.jpg", b"img", "image/jpeg")},
    )
    assert resp.status_code == 502
    assert "boom" in resp.json()["detail"]


def test_create_storage_memory_fallback() -> None:
    broken = Settings(DATABASE_URL="nosuchdialect://db", MEMORY_FALLBACK=True)
    assert isinstance(main.create_storage(broken), InMemoryStorage)

    strict = Settings(DATABASE_URL="nosuchdialect://db", MEMORY_FALLBACK=False)
    with pytest.raises(RuntimeError, match="Database initialization failed"):
        main.create_storage(strict)
