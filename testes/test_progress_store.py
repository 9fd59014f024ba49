import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest
pytest.importorskip("duckdb")

from bc2notion.database.progress_store import ProgressStore
from bc2notion.models.progress import Status


@pytest.fixture
def store():
    s = ProgressStore(":memory:")
    yield s
    s.close()


def test_unknown_units_have_no_record(store):
    assert store.get_project(1) is None
    assert store.get_tool(1, "vault") is None
    assert store.get_item(5, 1, "vault") is None


def test_project_lifecycle(store):
    store.start_project(1, "Alpha", None)
    rec = store.get_project(1)
    assert rec.status == Status.IN_PROGRESS and rec.notion_page_id is None and rec.name == "Alpha"

    store.start_project(1, "Alpha", "page-1")
    store.complete_project(1)
    rec = store.get_project("1")
    assert rec.done and rec.notion_page_id == "page-1"


def test_restarting_keeps_the_stored_page(store):
    store.start_item(7, 1, "message_board", name="Hello", notion_page_id="page-7")
    store.start_item(7, 1, "message_board", name="Hello")
    rec = store.get_item(7, 1, "message_board")
    assert rec.notion_page_id == "page-7"
    assert rec.status == Status.IN_PROGRESS and rec.parent_id == "1"


def test_done_project_with_pending_tool(store):
    store.start_project(1, "Alpha", "page-1")
    store.complete_project(1)
    store.start_tool(1, "todoset", "tool-page")
    store.start_tool(1, "vault", "vault-page")
    store.complete_tool(1, "vault")

    assert store.get_project(1).done
    assert not store.get_tool(1, "todoset").done
    assert store.get_tool(1, "vault").done
    assert store.get_tool(1, "todoset").notion_page_id == "tool-page"


def test_units_are_keyed_per_project_and_tool(store):
    store.start_item(5, 1, "vault", name="Doc")
    store.complete_item(5, 1, "vault")
    assert store.get_item(5, 1, "vault").done
    assert store.get_item(5, 2, "vault") is None
    assert store.get_item(5, 1, "message_board") is None


def test_summary_and_dump(store, tmp_path):
    store.start_project(1, "Alpha", "p")
    store.complete_project(1)
    store.start_tool(1, "vault", "t")
    summary = store.log_summary()
    assert summary["projects"] == {"done": 1}
    assert summary["tools"] == {"in_progress": 1}
    assert summary["items"] == {}

    paths = store.export_dump(str(tmp_path / "dump"))
    assert len(paths) == 3
    assert all(os.path.exists(p) for p in paths)


def test_file_database_survives_reopen(tmp_path):
    path = str(tmp_path / "data" / "progress.duckdb")
    with ProgressStore(path) as s:
        s.start_project(3, "Gamma", "page-3")
        s.complete_project(3)
    with ProgressStore(path) as s:
        assert s.get_project(3).done
