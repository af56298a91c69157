import io

from repair_directory.jobs import export_stores
from repair_directory.models import StorePage


class FakeRepository:
    def __init__(self, pages):
        self.pages = list(pages)
        self.calls = []

    def fetch_stores(self, mode, *, limit=None, after=None, full_rows=False):
        self.calls.append((mode, limit, after, full_rows))
        return self.pages.pop(0)


def test_export_stores_pages_through_table():
    repository = FakeRepository([
        StorePage(stores=[{"place_id": "a", "name": "A", "categories": ["x", "y"], "reviews": [{"stars": 5}]}],
                  next_cursor="a", has_more=True),
        StorePage(stores=[{"place_id": "b", "name": "B", "categories": [], "reviews": None}]),
    ])
    out = io.StringIO()

    total = export_stores.export_stores(out, repository=repository, page_size=1)

    assert total == 2
    assert repository.calls == [("all", 1, None, True), ("all", 1, "a", True)]
    lines = out.getvalue().strip().splitlines()
    assert lines[0] == '"place_id","name","categories","reviews"'
    assert '"x;y"' in lines[1]
    assert len(lines) == 3


def test_flatten_row():
    flat = export_stores.flatten_row({"ai_summary": None, "additional_info": {"Service": ["Repair"]}, "reviews_count": 3})
    assert flat == {"ai_summary": "", "additional_info": '{"Service": ["Repair"]}', "reviews_count": 3}
