import copy
from io import BytesIO

import pytest
from PIL import Image

from street_metrics.config import load_settings
from street_metrics.schema import TOOL_NAME

VALID_RECORD = {
    "timestamp": "2026-01-29T22:15:00",
    "day_of_week": "Thursday",
    "daylight": "night",
    "activity": {
        "vehicles": 7,
        "pedestrians": 2,
        "taxis": 1,
        "delivery_vehicles": 0,
        "bikes_scooters": 1,
    },
    "atmosphere": {
        "visibility_miles": 4.5,
        "precipitation": "light_snow",
        "road_condition": "wet",
        "sky_condition": "overcast",
        "fog_haze": False,
    },
    "building_occupancy": {
        "residential_windows_lit_pct": 40,
        "office_windows_lit_pct": 5,
    },
    "street_features": {
        "street_lights_on": True,
        "holiday_decorations_on": False,
        "wells_fargo_sign_on": True,
        "sidewalks_cleared": True,
        "trash_bins_visible": False,
    },
    "seasonal": {
        "tree_foliage": "bare",
        "holiday_decorations_present": False,
        "season_estimate": "winter",
    },
    "urban_vibe": {
        "activity_level": "low",
        "hustle_score": 3,
        "cozy_factor": 7,
        "would_go_outside": False,
    },
}


class StubInvoker:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.payloads = []

    def invoke(self, payload):
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def settings(monkeypatch, tmp_path):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DEVICES", "TATAMI=http://camera.local/snapshot.jpg,ROOF")
    monkeypatch.setenv("TIMEZONE", "America/New_York")
    for name in (
        "CLAUDE_API_KEY",
        "IMAGES_DIR",
        "ANALYSIS_DIR",
        "LOGS_DIR",
        "DEFAULT_DEVICE",
        "CAPTURE_ENABLED",
        "AUTO_ANALYZE",
        "STRICT_TIMESTAMP",
        "MAX_IMAGE_SIZE_MB",
        "CAPTURE_INTERVAL_MIN",
        "WEB_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
    return load_settings()


@pytest.fixture
def valid_record():
    return copy.deepcopy(VALID_RECORD)


@pytest.fixture
def jpeg_bytes():
    buffer = BytesIO()
    Image.new("RGB", (16, 12), (40, 40, 60)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def tool_response():
    def _build(record, name=TOOL_NAME):
        return {
            "id": "msg_test",
            "type": "message",
            "role": "assistant",
            "content": [
                {"type": "tool_use", "id": "toolu_test", "name": name, "input": record},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 1200, "output_tokens": 300},
        }

    return _build


@pytest.fixture
def stub_invoker():
    return StubInvoker


@pytest.fixture
def write_image(settings, jpeg_bytes):
    def _write(device, name, data=None):
        path = settings.images_dir / device / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(jpeg_bytes if data is None else data)
        return path

    return _write
