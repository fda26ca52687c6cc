"""ASGI entry point: `uvicorn src.propmetrics_core.main:app`."""
import logging

from fastapi import FastAPI

from .api.routes import router as reports_router


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def create_app() -> FastAPI:
    app = FastAPI(
        title="PropMetrics API",
        version="0.1.0",
        description=(
            "Trigger multi-property GA4 CVR reports: monthly, quarterly, "
            "or over the full lookback window."
        ),
    )
    app.include_router(reports_router)
    return app


app = create_app()
