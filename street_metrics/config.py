import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pytz
from dotenv import load_dotenv

SERVICE_NAME = "street-metrics"
DEVICE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def _parse_int(value: Optional[str], default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: Optional[str], default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Device:
    name: str
    snapshot_url: str = ""


def parse_devices(value: Optional[str]) -> list[Device]:
    """Parse the DEVICES registry.

    Accepts either a JSON object mapping names to snapshot URLs or a comma
    separated list of ``NAME=url`` pairs. A bare ``NAME`` registers a device
    without a capture source (images are dropped into its folder externally).
    """
    if not value or not value.strip():
        return []
    text = value.strip()
    if text.startswith("{"):
        data = json.loads(text)
        return [Device(str(name).strip(), str(url or "").strip()) for name, url in data.items()]
    devices = []
    for chunk in text.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, _, url = chunk.partition("=")
        devices.append(Device(name.strip(), url.strip()))
    return devices


@dataclass
class Settings:
    anthropic_api_key: str
    anthropic_model: str
    anthropic_base_url: str
    anthropic_max_tokens: int
    anthropic_timeout_sec: float
    timezone: str
    tz: pytz.BaseTzInfo
    data_dir: Path
    images_dir: Path
    analysis_dir: Path
    logs_dir: Path
    web_dir: Path
    devices: list[Device] = field(default_factory=list)
    default_device: str = ""
    capture_enabled: bool = False
    capture_interval_min: int = 10
    auto_analyze: bool = False
    strict_timestamp: bool = False
    max_image_size_mb: int = 10
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 3120

    @property
    def device_names(self) -> list[str]:
        return [device.name for device in self.devices]

    def get_device(self, name: str) -> Optional[Device]:
        for device in self.devices:
            if device.name == name:
                return device
        return None


def load_settings() -> Settings:
    load_dotenv(override=False)

    api_key = (os.getenv("ANTHROPIC_API_KEY") or os.getenv("CLAUDE_API_KEY") or "").strip()

    timezone = os.getenv("TIMEZONE", "America/New_York")
    tz = pytz.timezone(timezone)

    data_dir = Path(os.getenv("DATA_DIR", "./data"))
    devices = parse_devices(os.getenv("DEVICES", ""))
    default_device = os.getenv("DEFAULT_DEVICE", "").strip()
    if not default_device and devices:
        default_device = devices[0].name

    web_dir = Path(os.getenv("WEB_DIR", Path(__file__).resolve().parent.parent / "web"))

    settings = Settings(
        anthropic_api_key=api_key,
        anthropic_model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
        anthropic_base_url=os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com").rstrip("/"),
        anthropic_max_tokens=_parse_int(os.getenv("ANTHROPIC_MAX_TOKENS"), 1024),
        anthropic_timeout_sec=_parse_float(os.getenv("ANTHROPIC_TIMEOUT_SEC"), 60.0),
        timezone=timezone,
        tz=tz,
        data_dir=data_dir,
        images_dir=Path(os.getenv("IMAGES_DIR") or data_dir / "images"),
        analysis_dir=Path(os.getenv("ANALYSIS_DIR") or data_dir / "analysis"),
        logs_dir=Path(os.getenv("LOGS_DIR") or data_dir / "logs"),
        web_dir=web_dir,
        devices=devices,
        default_device=default_device,
        capture_enabled=_parse_bool(os.getenv("CAPTURE_ENABLED"), False),
        capture_interval_min=_parse_int(os.getenv("CAPTURE_INTERVAL_MIN"), 10),
        auto_analyze=_parse_bool(os.getenv("AUTO_ANALYZE"), False),
        strict_timestamp=_parse_bool(os.getenv("STRICT_TIMESTAMP"), False),
        max_image_size_mb=_parse_int(os.getenv("MAX_IMAGE_SIZE_MB"), 10),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=_parse_int(os.getenv("PORT"), 3120),
    )

    _validate_settings(settings)
    _ensure_dirs(settings)
    return settings


def _validate_settings(settings: Settings) -> None:
    errors = []
    if not settings.anthropic_api_key:
        errors.append("ANTHROPIC_API_KEY is required")
    if settings.anthropic_max_tokens <= 0:
        errors.append("ANTHROPIC_MAX_TOKENS must be > 0")
    if settings.anthropic_timeout_sec <= 0:
        errors.append("ANTHROPIC_TIMEOUT_SEC must be > 0")
    if settings.capture_interval_min <= 0:
        errors.append("CAPTURE_INTERVAL_MIN must be > 0")
    if settings.max_image_size_mb <= 0:
        errors.append("MAX_IMAGE_SIZE_MB must be > 0")
    names = settings.device_names
    for name in names:
        if not DEVICE_NAME_PATTERN.match(name):
            errors.append(f"device name {name!r} must match [A-Za-z0-9_-]+")
    if len(set(names)) != len(names):
        errors.append("device names must be unique")
    if settings.default_device and settings.default_device not in names:
        errors.append("DEFAULT_DEVICE must name a registered device")
    if settings.capture_enabled and not any(device.snapshot_url for device in settings.devices):
        errors.append("CAPTURE_ENABLED requires at least one device with a snapshot URL")
    if errors:
        raise ValueError("; ".join(errors))


def _ensure_dirs(settings: Settings) -> None:
    for directory in [
        settings.data_dir,
        settings.images_dir,
        settings.analysis_dir,
        settings.logs_dir,
    ]:
        directory.mkdir(parents=True, exist_ok=True)
