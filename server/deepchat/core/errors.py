from __future__ import annotations
import logging
from typing import Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ChatError(Exception):
    """Base error converted to a JSON body at the HTTP boundary."""

    status_code: int = 500
    kind: str = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class InputError(ChatError):
    status_code = 400
    kind = "invalid_input"


class NotFoundError(ChatError):
    status_code = 404
    kind = "not_found"


class GatewayError(ChatError):
    """Failure talking to a completion gateway.

    Callers that decide on a fallback should only look at ``kind``.
    """

    status_code = 500
    kind = "gateway"


class ConfigurationError(GatewayError):
    kind = "configuration"


class NetworkFailure(GatewayError):
    kind = "network_failure"


class InvalidResponseShape(GatewayError):
    kind = "invalid_response"


class UpstreamRejected(GatewayError):
    kind = "upstream_rejected"

    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__(f"Upstream completion service returned HTTP {status_code}")
        self.status_code = status_code if status_code >= 400 else 500
        self.body = body

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        if self.body is not None:
            body["upstream"] = self.body
        return body


GATEWAY_ERROR_KINDS = frozenset(
    cls.kind for cls in (ConfigurationError, NetworkFailure, InvalidResponseShape, UpstreamRejected)
)


def _compact_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        {"loc": [str(p) for p in err.get("loc", ())], "msg": str(err.get("msg", ""))}
        for err in errors
    ]


def _describe_validation(errors: List[Dict[str, Any]]) -> str:
    fields = {str(err.get("loc", ("",))[1]) for err in errors if len(err.get("loc", ())) > 1}
    if "messages" in fields:
        return "Invalid message format"
    return "Invalid request body"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ChatError)
    async def _chat_error(request: Request, exc: ChatError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: [%s] %s", request.method, request.url.path, exc.kind, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = list(exc.errors())
        return JSONResponse(
            status_code=400,
            content={
                "error": _describe_validation(errors),
                "kind": InputError.kind,
                "details": _compact_validation_errors(errors),
            },
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("%s %s error: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "kind": "internal"})
