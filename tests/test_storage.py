import threading

import pytest

from street_metrics import storage
from street_metrics.errors import InvalidRequest, NotFound, StorageFailure


def test_atomic_write_json(tmp_path):
    path = tmp_path / "sample.json"
    storage.atomic_write_json(path, {"value": 123})
    assert storage.read_json(path)["value"] == 123
    assert [p.name for p in tmp_path.iterdir()] == ["sample.json"]


def test_read_json_corrupt_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{", encoding="utf-8")
    with pytest.raises(StorageFailure):
        storage.read_json(path)


def test_save_and_load_round_trip(tmp_path, valid_record):
    store = storage.AnalysisStore(tmp_path)
    path = store.save("TATAMI", "2026-01-29-22-15.jpg", valid_record)
    assert path == tmp_path / "TATAMI" / "2026-01-29-22-15.json"

    loaded = store.load("TATAMI")
    assert len(loaded) == 1
    record = loaded[0]
    assert record.pop("_filename") == "2026-01-29-22-15.json"
    assert record.pop("_image") == "2026-01-29-22-15.jpg"
    assert record == valid_record


def test_save_overwrites_only_its_key(tmp_path, valid_record):
    store = storage.AnalysisStore(tmp_path)
    store.save("TATAMI", "2026-01-29-22-15.jpg", valid_record)
    store.save("TATAMI", "2026-01-29-22-25.jpg", valid_record)
    second = dict(valid_record, daylight="dusk")
    store.save("TATAMI", "2026-01-29-22-15.jpg", second)

    loaded = store.load("TATAMI")
    assert [item["_filename"] for item in loaded] == ["2026-01-29-22-15.json", "2026-01-29-22-25.json"]
    assert loaded[0]["daylight"] == "dusk"
    assert loaded[1]["daylight"] == "night"


def test_load_missing_and_empty_device(tmp_path):
    store = storage.AnalysisStore(tmp_path)
    with pytest.raises(NotFound):
        store.load("TATAMI")
    (tmp_path / "TATAMI").mkdir()
    assert store.load("TATAMI") == []


def test_load_is_filename_sorted_and_skips_temp_files(tmp_path, valid_record):
    device_dir = tmp_path / "TATAMI"
    for name in ("2026-01-30-08-00", "2026-01-29-22-15", "2026-01-30-07-50"):
        storage.atomic_write_json(device_dir / f"{name}.json", valid_record)
    (device_dir / ".tmpabc.tmp").write_text("{", encoding="utf-8")
    (device_dir / "notes.txt").write_text("x", encoding="utf-8")

    loaded = storage.load_device_analyses(tmp_path, "TATAMI")
    assert [item["_image"] for item in loaded] == [
        "2026-01-29-22-15.jpg",
        "2026-01-30-07-50.jpg",
        "2026-01-30-08-00.jpg",
    ]


def test_list_device_images_newest_first(tmp_path):
    device_dir = tmp_path / "TATAMI"
    device_dir.mkdir()
    for name in ("2026-01-29-22-15.jpg", "2026-01-30-08-00.jpg", "2026-01-29-23-05.jpg", "readme.txt"):
        (device_dir / name).write_bytes(b"x")
    assert storage.list_device_images(tmp_path, "TATAMI") == [
        "2026-01-30-08-00.jpg",
        "2026-01-29-23-05.jpg",
        "2026-01-29-22-15.jpg",
    ]
    with pytest.raises(NotFound):
        storage.list_device_images(tmp_path, "ROOF")


@pytest.mark.parametrize("name", [None, "", "../secret.jpg", "a/b.jpg", ".hidden.jpg", "photo.png", 5])
def test_check_image_name_rejects(name):
    with pytest.raises(InvalidRequest):
        storage.check_image_name(name)


def test_check_device_name_rejects_traversal():
    with pytest.raises(InvalidRequest):
        storage.check_device_name("..")
    assert storage.check_device_name("TATAMI") == "TATAMI"


def test_concurrent_saves_same_key_are_serialized(tmp_path, valid_record):
    store = storage.AnalysisStore(tmp_path)
    barrier = threading.Barrier(6)
    errors: list[BaseException] = []

    def worker(index: int) -> None:
        try:
            barrier.wait(timeout=5)
            store.save("TATAMI", "2026-01-29-22-15.jpg", dict(valid_record, timestamp=f"2026-01-29T22:15:0{index}"))
        except BaseException as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert not errors
    records = store.load("TATAMI")
    assert len(records) == 1
    assert records[0]["activity"] == valid_record["activity"]
    assert len(store.locks) == 0


def test_atomic_write_bytes_replaces_existing(tmp_path):
    path = tmp_path / "TATAMI" / "2026-01-29-22-15.jpg"
    storage.atomic_write_bytes(path, b"first")
    storage.atomic_write_bytes(path, b"second")
    assert path.read_bytes() == b"second"
    assert [p.name for p in path.parent.iterdir()] == ["2026-01-29-22-15.jpg"]


def test_invalid_image_name_is_not_echoed():
    with pytest.raises(InvalidRequest) as excinfo:
        storage.check_image_name("../../etc/passwd")
    assert excinfo.value.message == "Invalid image filename"
