"""OpenAI-compatible chat completions endpoint."""

import json
import logging
import uuid
from typing import Any, Mapping, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...core.exceptions import (
    ConfigurationError,
    MalformedRequestError,
    TransportError,
    UpstreamError,
)
from ...core.registry import get_bridge

logger = logging.getLogger("claudebridge")


def _invalid_request(
    message: str, code: str, request_id: str, param: Optional[str] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "message": message,
                "type": "invalid_request_error",
                "code": code,
                "param": param,
                "request_id": request_id,
            }
        },
    )


def _error_response(status_code: int, error_type: str, message: str, request_id: str, **extra: Any) -> JSONResponse:
    error = {"type": error_type, "message": message, "request_id": request_id}
    error.update(extra)
    return JSONResponse(status_code=status_code, content={"error": error})


def _upstream_details(exc: UpstreamError) -> Any:
    """Return the upstream error body, parsed when it is JSON."""
    text = exc.body_text()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


async def handle_chat_request(request: Request) -> Response:
    """Handle OpenAI-compatible chat completions requests.

    Validates the body, hands it to the bridge and maps bridge errors to
    OpenAI-style error objects.

    Args:
        request: The FastAPI request object.

    Returns:
        A JSONResponse or StreamingResponse with the completion results.
    """
    request_id = uuid.uuid4().hex[:8]
    logger.info(f"[{request_id}] Handling {request.method} request to {request.url.path}")

    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        logger.error(f"[{request_id}] Invalid JSON payload: {exc}")
        return _invalid_request("Invalid JSON payload", "invalid_json", request_id)

    if not isinstance(payload, Mapping):
        logger.error(f"[{request_id}] Payload must be a JSON object")
        return _invalid_request(
            "Request body must be a JSON object", "invalid_json_shape", request_id
        )

    is_stream = bool(payload.get("stream"))
    logger.info(f"[{request_id}] Processing request for model {payload.get('model')}, stream={is_stream}")

    bridge = get_bridge()
    try:
        if is_stream:
            stream = await bridge.start_stream(payload, disconnect_checker=request.is_disconnected)
            logger.info(f"[{request_id}] Stream opened")
            return StreamingResponse(
                stream,
                media_type="text/event-stream",
                headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
            )

        result = await bridge.complete(payload)
        logger.info(f"[{request_id}] Request completed successfully")
        return JSONResponse(content=result)

    except MalformedRequestError as exc:
        logger.error(f"[{request_id}] Malformed request: {exc.message}")
        return _invalid_request(exc.message, exc.code, request_id, exc.param)
    except ConfigurationError as exc:
        logger.error(f"[{request_id}] {exc.message}")
        return _error_response(500, "config_error", exc.message, request_id)
    except UpstreamError as exc:
        logger.error(f"[{request_id}] Backend returned {exc.status_code}")
        return _error_response(
            exc.status_code,
            "provider_error",
            f"Claude API returned {exc.status_code}",
            request_id,
            details=_upstream_details(exc),
        )
    except TransportError as exc:
        logger.error(f"[{request_id}] {exc.message}")
        return _error_response(502, "transport_error", exc.message, request_id)
    except Exception as exc:
        logger.exception(f"[{request_id}] Conversion error: {exc}")
        return _error_response(500, "conversion_error", str(exc) or "Unknown conversion error", request_id)


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    return await handle_chat_request(request)
