import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from .errors import NotFound, SchemaViolation, StorageFailure, StreetMetricsError
from .filename_time import CaptureTime, decode_capture_time, timestamp_matches
from .image_validator import validate_image_bytes
from .inference import build_analysis_request, extract_tool_input, extract_usage
from .monitoring import now_utc_iso
from .prompts import PROMPT_VERSION
from .storage import AnalysisStore, check_device_name, check_image_name
from .validation import validate_record

PROVIDER = "anthropic"


@dataclass
class AnalysisResult:
    device: str
    image: str
    analysis_file: str
    analysis: dict
    capture: Optional[CaptureTime] = None


class AnalysisPipeline:
    """Runs one image through build, invoke, extract, validate and save.

    ``invoker`` is any object with ``invoke(payload) -> dict``; the process
    entry point owns its lifecycle.
    """

    def __init__(self, settings, invoker, store: AnalysisStore, metrics):
        self.settings = settings
        self.invoker = invoker
        self.store = store
        self.metrics = metrics

    def image_path(self, device: str, image: str) -> Path:
        return self.settings.images_dir / device / image

    def run(self, device: str, image: str) -> AnalysisResult:
        try:
            return self._run(device, image)
        except StreetMetricsError as exc:
            self.metrics.record_failure(exc.kind)
            raise

    def _run(self, device: str, image: str) -> AnalysisResult:
        check_device_name(device)
        check_image_name(image)
        path = self.image_path(device, image)
        if not path.is_file():
            raise NotFound(f"Image not found: {image}")

        logger.info("Analyzing image: {path} (prompt {version})", path=str(path), version=PROMPT_VERSION)
        try:
            image_bytes = path.read_bytes()
        except OSError as exc:
            raise StorageFailure(f"could not read image {image}: {exc}") from exc
        media_type = validate_image_bytes(image_bytes, self.settings.max_image_size_mb)

        capture = decode_capture_time(image, self.settings.tz)
        if capture is None:
            logger.warning("Could not decode capture time from {image}", image=image)

        payload = build_analysis_request(
            image_bytes,
            media_type,
            image,
            model=self.settings.anthropic_model,
            max_tokens=self.settings.anthropic_max_tokens,
            timezone=self.settings.timezone,
            capture=capture,
        )
        response = self._invoke(payload)
        record = validate_record(extract_tool_input(response))
        self._check_timestamp(record, capture, image)

        saved = self.store.save(device, image, record)
        self.metrics.record_analysis(now_utc_iso())
        return AnalysisResult(device, image, saved.name, record, capture)

    def _invoke(self, payload: dict) -> dict:
        start = time.time()
        try:
            response = self.invoker.invoke(payload)
        except StreetMetricsError:
            latency = (time.time() - start) * 1000
            self.metrics.record_api_call(PROVIDER, False, latency, now_utc_iso())
            raise
        latency = (time.time() - start) * 1000
        self.metrics.record_api_call(PROVIDER, True, latency, now_utc_iso())
        usage = extract_usage(response)
        logger.info(
            "Inference finished in {latency:.0f} ms ({input_tokens} in / {output_tokens} out)",
            latency=latency,
            input_tokens=usage["input_tokens"],
            output_tokens=usage["output_tokens"],
        )
        return response

    def _check_timestamp(self, record: dict, capture: Optional[CaptureTime], image: str) -> None:
        if capture is None:
            return
        if timestamp_matches(record["timestamp"], capture, self.settings.tz):
            return
        message = (
            f"model timestamp {record['timestamp']} does not match capture time "
            f"{capture.iso} decoded from {image}"
        )
        if self.settings.strict_timestamp:
            raise SchemaViolation(message, [f"timestamp: {message}"])
        logger.warning("Timestamp mismatch: {message}", message=message)
