import uvicorn

from .config import load_settings


def run() -> None:
    settings = load_settings()
    uvicorn.run(
        "street_metrics.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
