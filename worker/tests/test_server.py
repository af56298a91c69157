import pytest

from repair_directory.core.search import ZipCodeNotFoundError, ZipServiceUnavailableError
from repair_directory.jobs import server


@pytest.fixture(autouse=True)
def fake_registry(monkeypatch):
    submitted = []

    class DummyRegistry:
        def submit(self, kind, fn, **kwargs):
            submitted.append({"kind": kind, "fn": fn, "kwargs": kwargs})
            return "job-1"

        def get(self, job_id):
            if job_id == "job-1":
                return {"job_id": "job-1", "status": "running"}
            return None

    monkeypatch.setattr(server, "_registry", DummyRegistry())
    yield submitted


@pytest.fixture
def client():
    return server.app.test_client()


def test_health_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_enqueue_scrape_passes_params(client, fake_registry):
    response = client.post(
        "/scrape",
        json={"states": ["Illinois", "Ohio"], "search_queries": "scooter repair", "city": "Chicago", "max_results": "10"},
    )

    assert response.status_code == 202
    assert response.get_json()["data"] == {"status": "queued", "job_id": "job-1"}
    job = fake_registry[0]
    assert job["kind"] == "scrape"
    assert job["fn"] is server.run_scrape_job
    assert job["kwargs"] == {
        "states": ["Illinois", "Ohio"],
        "search_queries": ["scooter repair"],
        "city": "Chicago",
        "max_results": 10,
    }


def test_enqueue_scrape_defaults_to_configured_values(client, fake_registry):
    assert client.post("/scrape", json={}).status_code == 202
    assert fake_registry[0]["kwargs"]["states"] is None
    assert fake_registry[0]["kwargs"]["max_results"] is None


@pytest.mark.parametrize(
    "payload",
    [{"states": [""]}, {"states": [1]}, {"max_results": "bad"}, {"max_results": 0}],
)
def test_enqueue_scrape_validates_payload(client, fake_registry, payload):
    assert client.post("/scrape", json=payload).status_code == 400
    assert fake_registry == []


def test_enqueue_ai_processing(client, fake_registry):
    response = client.post("/ai/process", json={"mode": "state", "states": ["Ohio"], "limit": 20})

    assert response.status_code == 202
    assert fake_registry[0]["fn"] is server.run_ai_job
    assert fake_registry[0]["kwargs"] == {"mode": "state", "states": ["Ohio"], "place_id": None, "limit": 20}


@pytest.mark.parametrize(
    "payload",
    [{"mode": "everything"}, {"mode": "state"}, {"mode": "single"}, {"limit": -1}],
)
def test_enqueue_ai_processing_validates_payload(client, fake_registry, payload):
    assert client.post("/ai/process", json=payload).status_code == 400
    assert fake_registry == []


def test_job_status(client):
    assert client.get("/jobs/job-1").get_json()["data"]["status"] == "running"
    assert client.get("/jobs/unknown").status_code == 404


@pytest.fixture
def fake_search(monkeypatch):
    calls = []
    outcome = {}

    def fake_search_by_zip(zip_code, radius, repository, lookup):
        calls.append((zip_code, radius))
        if "error" in outcome:
            raise outcome["error"]
        return {"stores": [{"id": 1, "distance_miles": 0.5}], "metadata": {"count": 1, "radius": 10.0}}

    monkeypatch.setattr(server, "search_by_zip", fake_search_by_zip)
    monkeypatch.setattr(server, "_repository", lambda: object())
    monkeypatch.setattr(server, "_zip_lookup", lambda: object())
    return calls, outcome


def test_search_success(client, fake_search):
    calls, _ = fake_search
    response = client.get("/search?zipCode=60601&radius=10")

    assert response.status_code == 200
    assert response.get_json()["metadata"] == {"count": 1, "radius": 10.0}
    assert calls == [("60601", "10")]


def test_search_requires_zip(client, fake_search):
    assert client.get("/search?radius=10").status_code == 400


@pytest.mark.parametrize(
    "error, status",
    [
        (ValueError("Radius must be between 1 and 150 miles"), 400),
        (ZipCodeNotFoundError("ZIP code not found"), 404),
        (ZipServiceUnavailableError("ZIP code service unavailable"), 503),
        (RuntimeError("db down"), 500),
    ],
)
def test_search_error_statuses(client, fake_search, error, status):
    _, outcome = fake_search
    outcome["error"] = error
    response = client.get("/search?zipCode=60601&radius=10")
    assert response.status_code == status
    assert "error" in response.get_json()
