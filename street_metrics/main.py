from typing import Optional

import httpx
from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from loguru import logger
from pydantic import BaseModel

from .capture import CAPTURE_TIMEOUT_SEC, CaptureScheduler
from .config import SERVICE_NAME, Settings, load_settings
from .errors import NotFound, StreetMetricsError
from .inference import AnthropicInvoker
from .monitoring import Metrics, configure_logging, health_status
from .pipeline import AnalysisPipeline
from .prompts import PROMPT_VERSION
from .storage import AnalysisStore, check_device_name, ensure_dir, list_device_images


class AnalyzeRequest(BaseModel):
    image: Optional[str] = None


def create_app(
    settings: Optional[Settings] = None,
    invoker=None,
    capture_client: Optional[httpx.Client] = None,
) -> FastAPI:
    """Build the service. Collaborators not passed in are created and owned here."""
    settings = settings or load_settings()
    configure_logging(settings.logs_dir / "app.log", settings.log_level)

    owns_invoker = invoker is None
    if owns_invoker:
        invoker = AnthropicInvoker.from_settings(settings)
    owns_capture_client = capture_client is None
    if owns_capture_client:
        capture_client = httpx.Client(timeout=CAPTURE_TIMEOUT_SEC)

    metrics = Metrics()
    store = AnalysisStore(settings.analysis_dir)
    pipeline = AnalysisPipeline(settings, invoker, store, metrics)
    capture_scheduler = CaptureScheduler(settings, capture_client, pipeline, metrics)

    app = FastAPI(title=SERVICE_NAME)
    app.state.settings = settings
    app.state.metrics = metrics
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.capture_scheduler = capture_scheduler

    @app.exception_handler(StreetMetricsError)
    async def _street_metrics_error(request: Request, exc: StreetMetricsError):
        if exc.status_code < 500:
            return JSONResponse({"error": exc.message}, status_code=exc.status_code)
        logger.error(
            "{method} {path} failed ({kind}): {error}",
            method=request.method,
            path=request.url.path,
            kind=exc.kind,
            error=exc.message,
        )
        return JSONResponse(
            {
                "success": False,
                "device": request.path_params.get("device_name"),
                "image": None,
                "error": exc.message,
                "kind": exc.kind,
            },
            status_code=exc.status_code,
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        details = "; ".join(
            ".".join(str(part) for part in error.get("loc", ())) + ": " + str(error.get("msg"))
            for error in exc.errors()
        )
        return JSONResponse({"error": f"Invalid request: {details}"}, status_code=400)

    @app.on_event("startup")
    def _on_startup() -> None:
        if settings.capture_enabled:
            capture_scheduler.start()

    @app.on_event("shutdown")
    def _on_shutdown() -> None:
        capture_scheduler.shutdown()
        if owns_invoker:
            invoker.close()
        if owns_capture_client:
            capture_client.close()

    @app.get("/")
    def root():
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "devices": settings.device_names,
            "prompt_version": PROMPT_VERSION,
            "endpoints": {
                "capture": "/capture/:deviceName",
                "images": "/images/:deviceName/",
                "analyze_list": "GET /analyze/:deviceName",
                "analyze": 'POST /analyze/:deviceName { "image": "filename.jpg" }',
                "dashboard": "/dashboard",
                "analysis": "/api/analysis/:deviceName",
            },
        }

    @app.get("/capture/{device_name}")
    def capture(device_name: str):
        check_device_name(device_name)
        logger.info("Capturing snapshot for device: {device}", device=device_name)
        path = capture_scheduler.capture(device_name)
        if path is None:
            return JSONResponse(
                {"success": False, "device": device_name, "error": "Failed to capture snapshot"},
                status_code=500,
            )
        relative = path.relative_to(settings.images_dir).as_posix()
        return {"success": True, "device": device_name, "imagePath": f"/images/{relative}"}

    @app.get("/capture")
    def capture_default():
        if not settings.default_device:
            raise NotFound("No devices configured")
        return RedirectResponse(f"/capture/{settings.default_device}", status_code=302)

    @app.get("/analyze/{device_name}")
    def analyze_list(device_name: str):
        check_device_name(device_name)
        images = list_device_images(settings.images_dir, device_name)
        return {
            "device": device_name,
            "count": len(images),
            "images": images,
            "usage": f'POST /analyze/{device_name} with body {{ "image": "filename.jpg" }}',
        }

    @app.post("/analyze/{device_name}")
    def analyze(device_name: str, body: Optional[AnalyzeRequest] = Body(default=None)):
        image = body.image if body is not None else None
        try:
            result = pipeline.run(device_name, image)
        except StreetMetricsError as exc:
            if exc.status_code < 500:
                raise
            logger.error(
                "Analysis error for {device}/{image} ({kind}): {error}",
                device=device_name,
                image=image,
                kind=exc.kind,
                error=exc.message,
            )
            return JSONResponse(
                {
                    "success": False,
                    "device": device_name,
                    "image": image,
                    "error": exc.message,
                    "kind": exc.kind,
                },
                status_code=exc.status_code,
            )
        return {
            "success": True,
            "device": result.device,
            "image": result.image,
            "analysisFile": result.analysis_file,
            "analysis": result.analysis,
        }

    @app.get("/dashboard")
    def dashboard():
        page = settings.web_dir / "dashboard.html"
        if not page.is_file():
            raise NotFound("Dashboard not available")
        return FileResponse(str(page), headers={"Cache-Control": "no-store"})

    @app.get("/api/analysis/{device_name}")
    def api_analysis(device_name: str):
        check_device_name(device_name)
        analyses = store.load(device_name)
        return {"device": device_name, "count": len(analyses), "analyses": analyses}

    @app.get("/api/health")
    def api_health():
        status = health_status(metrics.last_api_ok)
        return {
            "status": status,
            "last_api_success": metrics.last_api_success,
            "last_api_failure": metrics.last_api_failure,
            "last_capture": metrics.last_capture_time,
            "last_analysis": metrics.last_analysis_time,
        }

    @app.get("/api/metrics")
    def api_metrics():
        return metrics.to_metrics_json()

    ensure_dir(settings.images_dir)
    app.mount("/images", StaticFiles(directory=str(settings.images_dir)), name="images")
    return app
