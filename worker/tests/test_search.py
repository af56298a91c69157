import json

import pytest

from repair_directory.core import search


class FakeRepository:
    def __init__(self, rows):
        self.rows = rows
        self.calls = []

    def nearby_stores(self, latitude, longitude, radius_meters):
        self.calls.append((latitude, longitude, radius_meters))
        return self.rows


@pytest.fixture
def lookup(tmp_path):
    path = tmp_path / "zip_coordinates.json"
    path.write_text(json.dumps({"60601": {"latitude": 41.88, "longitude": -87.62}}), encoding="utf-8")
    return search.ZipLookup(str(path))


def test_search_by_zip_converts_distances_to_miles(lookup):
    repository = FakeRepository([
        {"id": 1, "name": "Near", "distance_meters": 800, "reviews": ["not exposed"]},
        {"id": 2, "name": "Far", "distance_meters": 3200},
    ])

    result = search.search_by_zip("60601", "5", repository, lookup)

    assert [store["distance_miles"] for store in result["stores"]] == [0.5, 2.0]
    assert "reviews" not in result["stores"][0]
    assert result["stores"][0]["name"] == "Near"
    assert result["metadata"] == {"count": 2, "radius": 5.0}
    latitude, longitude, radius_meters = repository.calls[0]
    assert (latitude, longitude) == (41.88, -87.62)
    assert radius_meters == pytest.approx(5 * 1609.34)


@pytest.mark.parametrize("zip_code", ["6060", "606011", "abcde", None])
def test_malformed_zip_rejected(lookup, zip_code):
    with pytest.raises(search.ZipCodeFormatError):
        search.search_by_zip(zip_code, 10, FakeRepository([]), lookup)


def test_unknown_zip_not_found(lookup):
    with pytest.raises(search.ZipCodeNotFoundError):
        search.search_by_zip("99999", 10, FakeRepository([]), lookup)


@pytest.mark.parametrize("radius", [0, 151, "wide", None])
def test_radius_out_of_range(lookup, radius):
    with pytest.raises(ValueError):
        search.search_by_zip("60601", radius, FakeRepository([]), lookup)


def test_missing_zip_file_is_unavailable(tmp_path):
    lookup = search.ZipLookup(str(tmp_path / "missing.json"))
    with pytest.raises(search.ZipServiceUnavailableError):
        lookup.coordinates("60601")


def test_build_zip_index_pads_codes():
    index = search.build_zip_index([
        {"zip_code": "501", "geo_point_2d": {"lat": 40.8, "lon": -73.0}},
        {"zip_code": "60601", "geo_point_2d": {"lat": 41.88, "lon": -87.62}},
        {"zip_code": "12345"},
    ])
    assert index == {
        "00501": {"latitude": 40.8, "longitude": -73.0},
        "60601": {"latitude": 41.88, "longitude": -87.62},
    }
