"""Pytest configuration and shared fixtures"""

import pytest
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from fastapi.testclient import TestClient
from origin_guard.middleware.cross_origin import CrossOriginProtectionMiddleware
from origin_guard.services.guard import build_config

ALL_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]


def create_app(
    trusted_origins=(), rejection_mode="forbidden", exempt_paths=()
) -> FastAPI:
    """Create a small app protected by CrossOriginProtectionMiddleware"""
    app = FastAPI()

    @app.api_route("/", methods=ALL_METHODS)
    async def index() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.post("/webhook")
    async def webhook() -> PlainTextResponse:
        return PlainTextResponse("received")

    app.add_middleware(
        CrossOriginProtectionMiddleware,
        config=build_config(trusted_origins, rejection_mode),
        exempt_paths=exempt_paths,
    )
    return app


@pytest.fixture
def client():
    """Client for an app with default options"""
    return TestClient(create_app())


@pytest.fixture
def client_factory():
    """Factory for clients with custom guard options"""

    def _create_client(**options):
        return TestClient(create_app(**options))

    return _create_client
