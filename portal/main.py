"""ASGI entrypoint: ``uvicorn portal.main:app`` or the ``portal-api`` script."""

import uvicorn
from prometheus_fastapi_instrumentator import Instrumentator

from portal.core.config import settings
from portal.core.logging import configure_logging
from portal.middlewares import QUIET_PATHS
from . import app as portal_app

configure_logging()
app = portal_app
instrumentator = Instrumentator(excluded_handlers=sorted(QUIET_PATHS))
instrumentator.instrument(app).expose(app, include_in_schema=False)


@app.get("/health", include_in_schema=False)
async def health() -> dict[str, bool]:
    return {"ok": True}


def run() -> None:
    uvicorn.run("portal.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
