"""Bridge between OpenAI-style chat requests and the Claude backend."""

import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

import anthropic
import httpx

from ..messages.stream_adapter import ClaudeToChatStreamAdapter
from ..messages.translator import convert_request, convert_response
from ..model_mapper import ModelMapper
from .backend import (
    DEFAULT_TIMEOUT,
    Backend,
    backend_from_config,
    build_outbound_headers,
    filter_response_headers,
    format_httpx_error,
    safe_headers_for_log,
)
from .exceptions import ConfigurationError, TransportError, UpstreamError
from .transport import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_DELAY,
    TRANSIENT_STATUSES,
    RetryingTransport,
)

logger = logging.getLogger("claudebridge")


class ClaudeBridge:
    """Converts chat requests, forwards them to the backend and converts the answers."""

    def __init__(
        self,
        config: Mapping[str, Any],
        transport: Optional[httpx.AsyncBaseTransport] = None,
        mapper: Optional[ModelMapper] = None,
    ) -> None:
        proxy_settings = config.get("proxy_settings") or {}
        self.backend: Backend = backend_from_config(proxy_settings.get("backend") or {})
        self._transport = transport

        retry_cfg = proxy_settings.get("retry") or {}
        self.retrying_transport = RetryingTransport(
            max_attempts=retry_cfg.get("max_attempts", DEFAULT_MAX_ATTEMPTS),
            retry_delay=retry_cfg.get("delay", DEFAULT_RETRY_DELAY),
            transient_statuses=retry_cfg.get("statuses") or TRANSIENT_STATUSES,
            timeout=self.backend.timeout,
            transport=transport,
        )

        self.mapper = mapper or ModelMapper(config.get("model_mapping") or None)

        logger.info(
            f"Bridge configured for {self.backend.base_url} "
            f"(stream client: {self.backend.stream_client}, "
            f"max attempts: {self.retrying_transport.max_attempts})"
        )

    def _require_api_key(self) -> None:
        if not self.backend.api_key:
            raise ConfigurationError(
                "Backend API key is not configured (set CLAUDE_API_KEY or proxy_settings.backend.api_key)"
            )

    def build_upstream_request(self, target_payload: Mapping[str, Any]) -> httpx.Request:
        """Build the POST to the backend's Messages endpoint."""
        url = self.backend.build_url()
        headers = build_outbound_headers(self.backend)
        body = json.dumps(target_payload, ensure_ascii=False).encode("utf-8")
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Upstream request to %s headers: %s", url, safe_headers_for_log(headers))
        return httpx.Request("POST", url, headers=headers, content=body)

    async def complete(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Serve a non-streaming chat request.

        Raises:
            MalformedRequestError: If the chat request cannot be converted.
            ConfigurationError: If no backend API key is configured.
            UpstreamError: If the backend answers with status >= 400.
            TransportError: If the backend cannot be reached.
        """
        self._require_api_key()
        target = convert_request(payload, self.mapper)
        target.pop("stream", None)
        logger.info(
            f"Forwarding completion for {payload.get('model')} as {target['model']} "
            f"({len(target['messages'])} messages, thinking: {'thinking' in target})"
        )

        response = await self.retrying_transport.send(self.build_upstream_request(target))
        if response.status_code >= 400:
            logger.warning(f"Backend returned status {response.status_code}: {response.text[:200]}")
            raise UpstreamError(
                response.status_code, response.content, filter_response_headers(response.headers)
            )

        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            logger.error(f"Backend returned a non-JSON body: {response.text[:200]}")
            raise UpstreamError(502, response.content) from exc

        return convert_response(data, model=payload.get("model"))

    async def start_stream(
        self,
        payload: Mapping[str, Any],
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[bytes]:
        """Open the upstream stream and return the re-encoded chunk iterator.

        Errors surface here, before the first byte reaches the client.

        Raises:
            MalformedRequestError: If the chat request cannot be converted.
            ConfigurationError: If no backend API key is configured.
            UpstreamError: If the backend answers with status >= 400.
            TransportError: If the backend cannot be reached.
        """
        self._require_api_key()
        target = convert_request(payload, self.mapper)
        target["stream"] = True
        logger.info(
            f"Opening stream for {payload.get('model')} as {target['model']} "
            f"via {self.backend.stream_client} (thinking: {'thinking' in target})"
        )

        adapter = ClaudeToChatStreamAdapter(payload.get("model") or target["model"])
        if self.backend.stream_client == "sdk":
            return await self._start_sdk_stream(target, adapter, disconnect_checker)
        return await self._start_httpx_stream(target, adapter, disconnect_checker)

    async def _start_httpx_stream(
        self,
        target: dict[str, Any],
        adapter: ClaudeToChatStreamAdapter,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]],
    ) -> AsyncIterator[bytes]:
        timeout = self.backend.timeout or DEFAULT_TIMEOUT
        stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
        client = httpx.AsyncClient(
            timeout=stream_timeout, transport=self._transport, follow_redirects=True
        )
        request = self.build_upstream_request(target)
        try:
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            detail = format_httpx_error(exc, url=str(request.url), timeout=timeout)
            logger.error(f"Failed to open stream to {request.url}: {detail}")
            raise TransportError(f"backend unreachable: {detail}") from exc

        if resp.status_code >= 400:
            body = await resp.aread()
            await resp.aclose()
            await client.aclose()
            logger.warning(f"Stream request returned status {resp.status_code}: {body[:200]!r}")
            raise UpstreamError(resp.status_code, body, filter_response_headers(resp.headers))

        async def iterator() -> AsyncIterator[bytes]:
            frames = adapter.adapt_stream(resp.aiter_bytes(), disconnect_checker)
            try:
                async for frame in frames:
                    yield frame
            finally:
                logger.debug(f"Closing upstream stream {adapter.response_id}")
                await frames.aclose()
                await resp.aclose()
                await client.aclose()

        return iterator()

    async def _start_sdk_stream(
        self,
        target: dict[str, Any],
        adapter: ClaudeToChatStreamAdapter,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]],
    ) -> AsyncIterator[bytes]:
        http_client = httpx.AsyncClient(transport=self._transport) if self._transport else None
        client = anthropic.AsyncAnthropic(
            api_key=self.backend.api_key,
            base_url=self.backend.sdk_base_url,
            timeout=self.backend.timeout or DEFAULT_TIMEOUT,
            max_retries=0,
            default_headers={"anthropic-version": self.backend.anthropic_version},
            http_client=http_client,
        )
        params = {key: value for key, value in target.items() if key != "stream"}
        try:
            stream = await client.messages.create(**params, stream=True)
        except anthropic.APIStatusError as exc:
            await client.close()
            body = json.dumps(exc.body).encode("utf-8") if exc.body is not None else exc.message.encode("utf-8")
            logger.warning(f"SDK stream request returned status {exc.status_code}: {exc.message}")
            raise UpstreamError(exc.status_code, body, filter_response_headers(exc.response.headers)) from exc
        except anthropic.APIConnectionError as exc:
            await client.close()
            logger.error(f"SDK failed to reach backend: {exc}")
            raise TransportError(f"backend unreachable: {exc}") from exc

        async def iterator() -> AsyncIterator[bytes]:
            frames = adapter.adapt_events(stream, disconnect_checker)
            try:
                async for frame in frames:
                    yield frame
            finally:
                await frames.aclose()
                logger.debug(f"Closing SDK stream {adapter.response_id}")
                await stream.close()
                await client.close()

        return iterator()
