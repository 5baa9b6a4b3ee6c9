from datetime import datetime
from pathlib import Path
from typing import Optional

import httpx
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from .errors import InvalidRequest, NotFound, StreetMetricsError
from .filename_time import build_image_filename
from .image_validator import detect_media_type
from .monitoring import now_utc_iso
from .storage import atomic_write_bytes

CAPTURE_TIMEOUT_SEC = 30


def local_timestamp(settings) -> datetime:
    return datetime.now(settings.tz)


def build_image_path(settings, device: str, dt_local: datetime) -> Path:
    return settings.images_dir / device / build_image_filename(dt_local)


def capture_snapshot(settings, device_name: str, client: httpx.Client) -> Optional[Path]:
    """Fetch one JPEG from the device and store it under its capture-time name.

    Returns None when the device could not be reached or sent something that
    is not a JPEG; an unregistered device raises NotFound.
    """
    device = settings.get_device(device_name)
    if device is None:
        raise NotFound(f"Unknown device: {device_name}")
    if not device.snapshot_url:
        logger.error("Device {device} has no snapshot URL", device=device_name)
        return None

    target = build_image_path(settings, device_name, local_timestamp(settings))
    try:
        resp = client.get(device.snapshot_url, timeout=CAPTURE_TIMEOUT_SEC)
        resp.raise_for_status()
        media_type = detect_media_type(resp.content)
        if media_type != "image/jpeg":
            logger.error(
                "Device {device} returned {media_type}, expected image/jpeg",
                device=device_name,
                media_type=media_type,
            )
            return None
        atomic_write_bytes(target, resp.content)
    except (httpx.HTTPError, InvalidRequest, OSError) as exc:
        logger.error("Capture failed for {device}: {error}", device=device_name, error=str(exc))
        return None
    logger.info("Captured {device} snapshot: {path}", device=device_name, path=str(target))
    return target


class CaptureScheduler:
    """Periodically captures every device with a snapshot URL.

    With ``auto_analyze`` each new image goes straight through the pipeline.
    Job failures are logged; the scheduler keeps running.
    """

    def __init__(self, settings, client: httpx.Client, pipeline, metrics):
        self.settings = settings
        self.client = client
        self.pipeline = pipeline
        self.metrics = metrics
        self.scheduler = BackgroundScheduler(timezone=settings.tz)

    def capture(self, device_name: str) -> Optional[Path]:
        path = capture_snapshot(self.settings, device_name, self.client)
        if path is not None:
            self.metrics.record_capture(now_utc_iso())
        return path

    def capture_all(self) -> list[Path]:
        captured = []
        for device in self.settings.devices:
            if not device.snapshot_url:
                continue
            path = self.capture(device.name)
            if path is None:
                continue
            captured.append(path)
            if self.settings.auto_analyze:
                self._analyze(device.name, path.name)
        return captured

    def _analyze(self, device: str, image: str) -> None:
        try:
            self.pipeline.run(device, image)
        except StreetMetricsError as exc:
            logger.error(
                "Scheduled analysis failed for {device}/{image} ({kind}): {error}",
                device=device,
                image=image,
                kind=exc.kind,
                error=exc.message,
            )

    def start(self) -> None:
        self.scheduler.add_job(
            self.capture_all,
            IntervalTrigger(minutes=self.settings.capture_interval_min),
            id="capture",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Capture scheduler started every {minutes} min",
            minutes=self.settings.capture_interval_min,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
