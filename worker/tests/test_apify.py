import pytest

from repair_directory.vendors import apify


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


class DummySession:
    def __init__(self):
        self.posts = []
        self.gets = []
        self.post_responses = []
        self.get_responses = []

    def post(self, url, params=None, json=None, headers=None, timeout=None):
        self.posts.append((url, params, json, headers))
        return self.post_responses.pop(0)

    def get(self, url, params=None, headers=None, timeout=None):
        self.gets.append((url, params, headers))
        return self.get_responses.pop(0)


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(apify, "_SESSION", session)
    return session


def test_run_actor_polls_until_terminal(patch_session):
    patch_session.post_responses = [DummyResponse(201, {"data": {"id": "r1", "status": "RUNNING"}})]
    patch_session.get_responses = [
        DummyResponse(200, {"data": {"id": "r1", "status": "RUNNING"}}),
        DummyResponse(200, {"data": {"id": "r1", "status": "SUCCEEDED", "defaultDatasetId": "d1"}}),
    ]

    run = apify.run_actor("compass~crawler-google-places", {"state": "Ohio"}, "token")

    assert run["defaultDatasetId"] == "d1"
    url, params, body, headers = patch_session.posts[0]
    assert url.endswith("/acts/compass~crawler-google-places/runs")
    assert params == {"waitForFinish": 60}
    assert body == {"state": "Ohio"}
    assert headers["Authorization"] == "Bearer token"
    assert len(patch_session.gets) == 2
    assert patch_session.gets[0][0].endswith("/actor-runs/r1")


def test_run_actor_raises_on_failed_status(patch_session):
    patch_session.post_responses = [DummyResponse(201, {"data": {"id": "r1", "status": "FAILED"}})]
    with pytest.raises(apify.ApifyError):
        apify.run_actor("actor", {}, "token")


def test_run_actor_raises_on_http_error(patch_session):
    patch_session.post_responses = [DummyResponse(401, {"error": {"message": "unauthorized"}})]
    with pytest.raises(apify.ApifyError):
        apify.run_actor("actor", {}, "token")


def test_run_actor_requires_token():
    with pytest.raises(RuntimeError):
        apify.run_actor("actor", {}, "")


def test_get_dataset_items_pages(patch_session, monkeypatch):
    monkeypatch.setattr(apify, "_PAGE_SIZE", 2)
    patch_session.get_responses = [
        DummyResponse(200, [{"placeId": "a"}, {"placeId": "b"}]),
        DummyResponse(200, [{"placeId": "c"}]),
    ]

    items = apify.get_dataset_items("d1", "token")

    assert [item["placeId"] for item in items] == ["a", "b", "c"]
    assert [call[1]["offset"] for call in patch_session.gets] == [0, 2]


def test_places_crawler_config_actor_input():
    payload = apify.PlacesCrawlerConfig().to_actor_input(["scooter repair"], "Illinois", None, 25)
    assert payload["searchStringsArray"] == ["scooter repair"]
    assert payload["maxCrawledPlacesPerSearch"] == 25
    assert payload["city"] == ""
    assert payload["countryCode"] == "us"
    assert payload["skipClosedPlaces"] is True
