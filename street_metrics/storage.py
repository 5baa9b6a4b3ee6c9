import json
import os
import tempfile
import threading
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger

from .config import DEVICE_NAME_PATTERN
from .errors import InvalidRequest, NotFound, StorageFailure

ANALYSIS_SUFFIX = ".json"
IMAGE_SUFFIX = ".jpg"


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_bytes(path, json.dumps(data, ensure_ascii=True, indent=2).encode("utf-8"))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    ensure_dir(path.parent)
    tmp_file = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=str(path.parent),
            prefix=".",
            suffix=".tmp",
            delete=False,
        ) as tmp_file:
            tmp_file.write(data)
            tmp_file.flush()
            os.fsync(tmp_file.fileno())
        os.replace(tmp_file.name, path)
    finally:
        if tmp_file is not None and os.path.exists(tmp_file.name):
            try:
                os.remove(tmp_file.name)
            except OSError:
                pass


def read_json(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise StorageFailure(f"could not read {path.name}: {exc}") from exc


class KeyedLocks:
    """One mutex per key, created on demand and dropped when unused."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[Any, threading.Lock] = {}
        self._users: dict[Any, int] = defaultdict(int)

    @contextmanager
    def hold(self, key):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] += 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


def check_device_name(device: str) -> str:
    if not device or not DEVICE_NAME_PATTERN.match(device):
        raise InvalidRequest(f"Invalid device name: {device}")
    return device


def check_image_name(image) -> str:
    if image is None or image == "":
        raise InvalidRequest('Missing "image" in request body. Example: { "image": "2026-01-29-22-15.jpg" }')
    if not isinstance(image, str) or "/" in image or "\\" in image or image.startswith(".") or not image.endswith(IMAGE_SUFFIX):
        raise InvalidRequest("Invalid image filename")
    return image


def analysis_filename(image_filename: str) -> str:
    return Path(image_filename).stem + ANALYSIS_SUFFIX


def list_device_images(images_dir: Path, device: str) -> list[str]:
    """Image filenames for ``device``, newest first."""
    device_dir = images_dir / device
    if not device_dir.is_dir():
        raise NotFound(f"No images found for device: {device}")
    images = [
        entry.name
        for entry in device_dir.iterdir()
        if entry.is_file() and entry.name.endswith(IMAGE_SUFFIX)
    ]
    return sorted(images, reverse=True)


def list_analysis_files(analysis_dir: Path, device: str) -> list[Path]:
    device_dir = analysis_dir / device
    if not device_dir.is_dir():
        raise NotFound(f"No analysis found for device: {device}")
    files = [
        entry
        for entry in device_dir.iterdir()
        if entry.is_file() and entry.suffix == ANALYSIS_SUFFIX and not entry.name.startswith(".")
    ]
    return sorted(files, key=lambda p: p.name)


def load_device_analyses(analysis_dir: Path, device: str) -> list[dict]:
    """Every persisted record for ``device`` in filename (chronological) order.

    Each record is annotated with ``_filename`` (the JSON document) and
    ``_image`` (the source image). A missing device directory raises
    NotFound; an existing empty one yields an empty list.
    """
    analyses = []
    for path in list_analysis_files(analysis_dir, device):
        data = read_json(path)
        if not isinstance(data, dict):
            raise StorageFailure(f"{path.name} does not contain a JSON object")
        data["_filename"] = path.name
        data["_image"] = path.stem + IMAGE_SUFFIX
        analyses.append(data)
    return analyses


class AnalysisStore:
    def __init__(self, analysis_dir: Path):
        self.analysis_dir = analysis_dir
        self.locks = KeyedLocks()

    def path_for(self, device: str, image_filename: str) -> Path:
        return self.analysis_dir / device / analysis_filename(image_filename)

    def save(self, device: str, image_filename: str, record: dict) -> Path:
        """Replace the record for (device, image) atomically."""
        path = self.path_for(device, image_filename)
        try:
            with self.locks.hold((device, image_filename)):
                atomic_write_json(path, record)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageFailure(f"could not write {path.name}: {exc}") from exc
        logger.info("Saved analysis: {path}", path=str(path))
        return path

    def load(self, device: str) -> list[dict]:
        return load_device_analyses(self.analysis_dir, device)
