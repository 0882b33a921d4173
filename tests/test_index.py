import json
from datetime import datetime, timezone

import pytest

from metransfer.identifiers import new_gallery_id
from metransfer.models import GalleryRecord
from metransfer.repositories.galleries import GalleryIndex


@pytest.fixture
def index_path(tmp_path):
    return tmp_path / "galleries.json"


def test_missing_file_loads_empty(index_path):
    index = GalleryIndex(index_path)
    index.load()
    assert len(index) == 0
    assert not index_path.exists()


def test_save_and_reload(index_path):
    index = GalleryIndex(index_path)
    first = GalleryRecord(id=new_gallery_id(), display_name="Wedding", file_names=["a.jpg", "b.jpg"])
    second = GalleryRecord(id=new_gallery_id())
    index.put(first)
    index.put(second)

    reloaded = GalleryIndex(index_path)
    reloaded.load()

    assert [record.id for record in reloaded.list_all()] == [first.id, second.id]
    assert reloaded.get(first.id).display_name == "Wedding"
    assert reloaded.get(first.id).file_names == ["a.jpg", "b.jpg"]
    assert reloaded.get(second.id).display_name == "Untitled Event"


def test_persisted_keys(index_path):
    index = GalleryIndex(index_path)
    record = GalleryRecord(id=new_gallery_id(), display_name="Party", file_names=["a.jpg"])
    index.put(record)

    data = json.loads(index_path.read_text())
    assert isinstance(data, list)
    assert set(data[0]) == {"id", "eventName", "created", "files"}
    assert data[0]["eventName"] == "Party"


def test_loads_legacy_records(index_path):
    gallery_id = new_gallery_id()
    index_path.write_text(
        json.dumps(
            [
                {
                    "id": gallery_id,
                    "eventName": "Old Event",
                    "created": "2024-05-01T12:30:00.000Z",
                    "files": ["x.jpg"],
                    "background": f"{gallery_id}.jpg",
                }
            ]
        )
    )
    index = GalleryIndex(index_path)
    index.load()
    record = index.get(gallery_id)
    assert record.display_name == "Old Event"
    assert record.created_at == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)


def test_corrupt_file_is_set_aside(index_path, caplog):
    index_path.write_text("{not json")
    index = GalleryIndex(index_path)
    index.load()
    assert len(index) == 0
    assert (index_path.parent / "galleries.json.corrupt").read_text() == "{not json"
    assert "unreadable" in caplog.text


def test_non_list_document_is_corrupt(index_path):
    index_path.write_text(json.dumps({"id": new_gallery_id()}))
    index = GalleryIndex(index_path)
    index.load()
    assert len(index) == 0


def test_invalid_records_are_skipped(index_path):
    good = new_gallery_id()
    index_path.write_text(
        json.dumps(
            [
                {"id": good, "eventName": "Good", "created": "2024-01-01T00:00:00Z", "files": []},
                {"id": "../../etc", "eventName": "Evil", "created": "2024-01-01T00:00:00Z", "files": []},
                {"eventName": "No id"},
            ]
        )
    )
    index = GalleryIndex(index_path)
    index.load()
    assert index.ids() == [good]


def test_save_leaves_no_temp_files(index_path):
    index = GalleryIndex(index_path)
    for _ in range(3):
        index.put(GalleryRecord(id=new_gallery_id()))
    assert sorted(path.name for path in index_path.parent.iterdir()) == ["galleries.json"]


def test_remove(index_path):
    index = GalleryIndex(index_path)
    record = GalleryRecord(id=new_gallery_id())
    index.put(record)
    assert index.remove(record.id) is record
    assert index.remove(record.id) is None

    reloaded = GalleryIndex(index_path)
    reloaded.load()
    assert record.id not in reloaded


def test_add_files_keeps_order_without_duplicates():
    record = GalleryRecord(id=new_gallery_id(), file_names=["a.jpg"])
    assert record.add_files(["b.jpg", "a.jpg", "c.jpg", "b.jpg"]) == ["b.jpg", "c.jpg"]
    assert record.file_names == ["a.jpg", "b.jpg", "c.jpg"]
