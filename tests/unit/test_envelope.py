"""Tests for the response envelope and error rendering."""

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from leadgen_service.api.envelope import (
    ListEnvelope,
    SuccessEnvelope,
    http_exception_handler,
    install_exception_handlers,
    request_validation_handler,
    service_error_handler,
)
from leadgen_service.errors import (
    AuthenticationFailure,
    AuthorizationFailure,
    DuplicateCode,
    IdempotencyConflict,
    InternalFailure,
    NotFound,
    RateLimited,
    ServiceError,
    ValidationFailure,
)


class TestEnvelopeModels:
    def test_success_shape(self) -> None:
        body = SuccessEnvelope(code=201, data={"id": 1}).model_dump(mode="json")
        assert body == {
            "code": 201,
            "status": "success",
            "success": True,
            "data": {"id": 1},
        }

    def test_list_omits_absent_cursor(self) -> None:
        body = ListEnvelope(data=[1, 2]).model_dump(mode="json")
        assert "next_cursor" not in body
        assert body["data"] == [1, 2]

    def test_list_carries_cursor(self) -> None:
        body = ListEnvelope(data=[], next_cursor="abc").model_dump(mode="json")
        assert body["next_cursor"] == "abc"


class TestErrorTaxonomy:
    @pytest.mark.parametrize(
        ("exc", "status", "error_type"),
        [
            (AuthenticationFailure(), 401, "unauthenticated"),
            (AuthorizationFailure(), 403, "forbidden"),
            (ValidationFailure(), 400, "validation_error"),
            (NotFound(), 404, "not_found"),
            (IdempotencyConflict(), 409, "idempotency_conflict"),
            (DuplicateCode(), 409, "duplicate_code"),
            (RateLimited(), 429, "rate_limit"),
            (InternalFailure(), 500, "internal_error"),
        ],
    )
    def test_status_and_type(
        self, exc: ServiceError, status: int, error_type: str
    ) -> None:
        assert exc.status_code == status
        assert exc.error_type == error_type

    def test_rate_limited_headers(self) -> None:
        headers = RateLimited(retry_after=3, limit=5).headers
        assert headers["Retry-After"] == "3"
        assert headers["RateLimit-Limit"] == "5"
        assert headers["RateLimit-Remaining"] == "0"

    def test_custom_message(self) -> None:
        assert NotFound("QR tag not found").message == "QR tag not found"


class _Body(BaseModel):
    code: str


@pytest.fixture()
def app() -> FastAPI:
    app = FastAPI()
    install_exception_handlers(app)

    @app.get("/service/{kind}")
    async def _service(kind: str) -> None:
        errors: dict[str, ServiceError] = {
            "auth": AuthenticationFailure(),
            "limit": RateLimited(retry_after=1, limit=5),
            "internal": InternalFailure("db password is hunter2"),
        }
        raise errors[kind]

    @app.post("/validate")
    async def _validate(body: _Body) -> dict[str, str]:
        return {"code": body.code}

    @app.get("/storage")
    async def _storage() -> None:
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    @app.get("/crash")
    async def _crash() -> None:
        raise RuntimeError("secret detail")

    return app


async def _request(app: FastAPI, method: str, path: str, **kwargs):
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        return await client.request(method, path, **kwargs)


class TestExceptionHandlers:
    def test_handlers_registered_per_exception_type(self, app: FastAPI) -> None:
        assert app.exception_handlers[ServiceError] is service_error_handler
        assert (
            app.exception_handlers[RequestValidationError] is request_validation_handler
        )
        assert app.exception_handlers[StarletteHTTPException] is http_exception_handler

    async def test_service_error_envelope(self, app: FastAPI) -> None:
        response = await _request(app, "GET", "/service/auth")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {
            "code": 401,
            "status": "error",
            "success": False,
            "error": {"type": "unauthenticated", "message": "Unauthorized"},
        }

    async def test_rate_limit_has_retry_after(self, app: FastAPI) -> None:
        response = await _request(app, "GET", "/service/limit")
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "1"

    async def test_internal_failure_hides_message(self, app: FastAPI) -> None:
        response = await _request(app, "GET", "/service/internal")
        assert response.status_code == 500
        assert "hunter2" not in response.text

    async def test_request_validation_is_400(self, app: FastAPI) -> None:
        response = await _request(app, "POST", "/validate", json={})
        assert response.status_code == 400
        body = response.json()
        assert body["error"]["type"] == "validation_error"
        assert "code" in body["error"]["message"]

    async def test_unknown_route_is_enveloped(self, app: FastAPI) -> None:
        response = await _request(app, "GET", "/nope")
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "not_found"

    async def test_storage_error_is_generic_500(self, app: FastAPI) -> None:
        response = await _request(app, "GET", "/storage")
        assert response.status_code == 500
        assert "connection refused" not in response.text
        assert response.json()["error"]["type"] == "internal_error"

    async def test_unexpected_error_is_generic_500(self, app: FastAPI) -> None:
        response = await _request(app, "GET", "/crash")
        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "secret detail" not in response.text
