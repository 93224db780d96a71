"""Tests for the VerifyCrossOrigin route dependency"""

from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from origin_guard.exceptions import CrossOriginForbiddenError, InvalidCrossOriginRequestError
from origin_guard.middleware.cross_origin import skip
from origin_guard.middleware.dependency import (
    VerifyCrossOrigin,
    cross_origin_exception_handler,
    install,
)
from origin_guard.services.guard import build_config
from starlette.requests import Request
from starlette.responses import JSONResponse

verify_cross_origin = VerifyCrossOrigin(build_config(["https://sso.example.com"]))

app = install(FastAPI())


@app.post("/protected", dependencies=[Depends(verify_cross_origin)])
async def protected() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/unprotected")
async def unprotected() -> dict[str, str]:
    return {"status": "ok"}


async def mark_skipped(request: Request) -> None:
    skip(request)


@app.post(
    "/callback", dependencies=[Depends(mark_skipped), Depends(verify_cross_origin)]
)
async def callback() -> dict[str, str]:
    return {"status": "ok"}


client = TestClient(app)


def create_exception_mode_app() -> FastAPI:
    verify = VerifyCrossOrigin(build_config(rejection_mode="exception"))
    exception_app = install(FastAPI())

    @exception_app.delete("/item", dependencies=[Depends(verify)])
    async def delete_item() -> dict[str, str]:
        return {"status": "deleted"}

    return exception_app


def test_protected_route_allows_same_origin():
    """Test that same-origin requests reach the route"""
    response = client.post("/protected", headers={"sec-fetch-site": "same-origin"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_protected_route_rejects_cross_site():
    """Test that forbidden mode answers with the plain-text 403"""
    response = client.post("/protected", headers={"sec-fetch-site": "cross-site"})
    assert response.status_code == 403
    assert response.text == "cross-origin request detected"
    assert response.headers["content-type"].startswith("text/plain")


def test_protected_route_allows_trusted_origin():
    """Test that trusted origins pass the dependency"""
    response = client.post(
        "/protected",
        headers={"sec-fetch-site": "cross-site", "origin": "https://sso.example.com"},
    )
    assert response.status_code == 200


def test_routes_without_dependency_are_exempt():
    """Test that only routes using the dependency are checked"""
    response = client.post("/unprotected", headers={"sec-fetch-site": "cross-site"})
    assert response.status_code == 200


def test_skip_before_dependency():
    """Test that an earlier dependency can skip the check"""
    response = client.post("/callback", headers={"sec-fetch-site": "cross-site"})
    assert response.status_code == 200


def test_install_registers_handler():
    """Test that install maps the forbidden-mode error to the plain-text handler"""
    fresh = FastAPI()
    assert install(fresh) is fresh
    assert fresh.exception_handlers[CrossOriginForbiddenError] is cross_origin_exception_handler


def test_forbidden_error_is_not_the_exception_mode_error():
    """Test that forbidden mode does not trigger handlers for exception mode"""
    assert not issubclass(CrossOriginForbiddenError, InvalidCrossOriginRequestError)
    assert CrossOriginForbiddenError().status_code == 403


def test_exception_mode_uses_default_handler():
    """Test that exception mode falls through to FastAPI's HTTPException handler"""
    response = TestClient(create_exception_mode_app()).delete(
        "/item", headers={"host": "example.com", "origin": "https://attacker.com"}
    )

    assert response.status_code == 403
    assert response.json() == {"detail": "cross-origin request detected"}


def test_exception_mode_uses_registered_handler():
    """Test that exception mode is rendered by the application's own handler"""

    async def handler(request, exc):
        return JSONResponse({"error": "blocked"}, status_code=exc.status_code)

    exception_app = create_exception_mode_app()
    exception_app.add_exception_handler(InvalidCrossOriginRequestError, handler)

    response = TestClient(exception_app).delete(
        "/item", headers={"sec-fetch-site": "cross-site"}
    )

    assert response.status_code == 403
    assert response.json() == {"error": "blocked"}
