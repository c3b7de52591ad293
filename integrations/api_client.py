"""
Async HTTP transport for the point-of-sale backend.

Wraps httpx.AsyncClient: attaches auth headers, unwraps the
{success, data, message} envelope and turns every failure into a
typed AppError. No retries happen here; retry policy belongs to callers.
"""

from typing import Any, Optional, TypeVar

import httpx
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from config.settings import Settings, get_settings
from exceptions import (
    AppError,
    NetworkError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExpiredError,
    ExternalServiceError,
)
from models.base import ApiEnvelope

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


def parse_response(model: type[M], data: Any, path: str = "") -> M:
    """
    Validate response data into a model.

    Raises:
        ExternalServiceError: If the backend sent a malformed payload
    """
    try:
        return model.model_validate(data)
    except SchemaError as e:
        logger.error("malformed_response", path=path, model=model.__name__, error=str(e))
        raise ExternalServiceError(
            "backend",
            f"Malformed {model.__name__} response",
            status_code=502,
            details={"path": path}
        )


class ApiClient:
    """
    HTTP client for the REST backend.

    One instance per authenticated session. Close with aclose() or use
    as an async context manager.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        shop_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )
        self.set_token(token if token is not None else settings.api_token)
        self.set_shop_id(shop_id if shop_id is not None else settings.shop_id)

    # ===================
    # SESSION HEADERS
    # ===================

    def set_token(self, token: Optional[str]) -> None:
        """Set or clear the bearer token. Clearing it also clears the shop."""
        if token:
            self.client.headers["Authorization"] = f"Bearer {token}"
        else:
            self.client.headers.pop("Authorization", None)
            self.set_shop_id(None)

    def set_shop_id(self, shop_id: Optional[str]) -> None:
        """Set or clear the active shop (X-Shop-Id)."""
        if shop_id:
            self.client.headers["X-Shop-Id"] = shop_id
        else:
            self.client.headers.pop("X-Shop-Id", None)

    # ===================
    # REST METHODS
    # ===================

    async def get(self, path: str, params: Optional[dict] = None) -> Any:
        response = await self._request("GET", path, params=params)
        return self._unwrap(response, "GET", path)

    async def post(
        self,
        path: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        files: Optional[dict] = None,
    ) -> Any:
        if files is not None:
            response = await self._request("POST", path, params=params, files=files)
        else:
            response = await self._request("POST", path, params=params, json=data)
        return self._unwrap(response, "POST", path)

    async def get_bytes(self, path: str, params: Optional[dict] = None) -> bytes:
        """GET a binary body (e.g. an invoice PDF) without envelope unwrapping."""
        response = await self._request("GET", path, params=params)
        return response.content

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ===================
    # INTERNALS
    # ===================

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("api_request_timeout", method=method, path=path, error=str(e))
            raise NetworkError(
                "Request timed out. Please check your connection.",
                details={"method": method, "path": path}
            )
        except httpx.RequestError as e:
            logger.warning("api_request_failed", method=method, path=path, error=str(e))
            raise NetworkError(details={"method": method, "path": path})

        if response.status_code >= 400:
            raise self._error_for(response, method, path)

        return response

    def _unwrap(self, response: httpx.Response, method: str, path: str) -> Any:
        if response.status_code == 204 or not response.content:
            return None

        try:
            body = response.json()
        except ValueError:
            logger.error("api_response_not_json", method=method, path=path)
            raise ExternalServiceError(
                "backend",
                "Backend returned a non-JSON response",
                status_code=502,
                details={"method": method, "path": path}
            )

        if not isinstance(body, dict) or "success" not in body:
            return body

        envelope = parse_response(ApiEnvelope[Any], body, path)
        if not envelope.success:
            message = envelope.error or envelope.message or "Request failed"
            logger.warning("api_envelope_unsuccessful", method=method, path=path, message=message)
            raise ExternalServiceError(
                "backend",
                message,
                status_code=response.status_code,
                details={"method": method, "path": path}
            )
        return envelope.data

    def _error_for(self, response: httpx.Response, method: str, path: str) -> AppError:
        """Map an HTTP error response to the error taxonomy."""
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        nested = body.get("data") if isinstance(body.get("data"), dict) else {}
        message = (
            nested.get("message")
            or body.get("error")
            or body.get("message")
            or response.reason_phrase
            or f"HTTP {status}"
        )

        field = None
        errors = body.get("errors")
        if isinstance(errors, dict) and errors:
            field, reasons = next(iter(errors.items()))
            if isinstance(reasons, list) and reasons:
                message = str(reasons[0])
            elif isinstance(reasons, str):
                message = reasons
        field = field or nested.get("field") or body.get("field")

        logger.warning(
            "api_error_response",
            method=method,
            path=path,
            status_code=status,
            message=message,
            field=field
        )

        if status == 404:
            return NotFoundError("Resource", identifier=path, message=message)
        if status in (400, 422):
            return ValidationError(reason=message, field=field, status_code=status)
        if status == 409:
            return ConflictError(message, details={"path": path})
        if status == 410:
            return ExpiredError(message, details={"path": path})
        return ExternalServiceError(
            "backend",
            message,
            status_code=status,
            details={"method": method, "path": path}
        )
