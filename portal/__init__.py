"""Application wiring for the Digital Directions client portal API.

Builds the FastAPI instance: tables, middleware, error envelopes and the
ticket, project, template and client routers. ``portal.main`` adds logging,
metrics and the health probe on top.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import PortalError, http_exception_handler, portal_error_handler, validation_exception_handler
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware

# Importing the models registers their tables with the metadata.
from .models import client as _client  # noqa: F401
from .models import phase as _phase  # noqa: F401
from .models import project as _project  # noqa: F401
from .models import support_log as _support_log  # noqa: F401
from .models import ticket as _ticket  # noqa: F401

app = FastAPI(title=settings.APP_NAME)

Base.metadata.create_all(bind=engine)

app.add_middleware(RequestIdMiddleware)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_exception_handler(PortalError, portal_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

from .routers import api_tickets as api_tickets_router  # noqa: E402

app.include_router(api_tickets_router.router)

from .routers import api_projects as api_projects_router  # noqa: E402

app.include_router(api_projects_router.router)

from .routers import api_phase_templates as api_phase_templates_router  # noqa: E402

app.include_router(api_phase_templates_router.router)

from .routers import api_clients as api_clients_router  # noqa: E402

app.include_router(api_clients_router.router)


__all__ = ["app"]
