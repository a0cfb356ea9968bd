"""
FastAPI application entry point for the GradCollab API.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from gradcollab.config import get_settings
from gradcollab.errors import register_error_handlers
from gradcollab.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="GradCollab API", version="0.1.0")
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret_key,
        session_cookie=settings.session_cookie,
        same_site="lax",
        https_only=settings.is_prod,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.web_client_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
