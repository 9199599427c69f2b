"""Outbound HTTP transport with bounded retries on transient statuses."""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, Optional

import httpx

from .backend import DEFAULT_TIMEOUT, format_httpx_error
from .exceptions import TransportError

logger = logging.getLogger("claudebridge")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0
TRANSIENT_STATUSES = frozenset({502, 503, 504, 529})


class RetryingTransport:
    """Send one request, retrying while the backend answers with a transient status.

    Each attempt re-issues a fresh copy of the request so the body can be
    replayed. The caller is blocked for the whole retry loop, so this is
    only used for non-streaming calls.
    """

    def __init__(
        self,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transient_statuses: Iterable[int] = TRANSIENT_STATUSES,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max(1, int(max_attempts))
        self.retry_delay = max(0.0, float(retry_delay))
        self.transient_statuses = frozenset(int(code) for code in transient_statuses)
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._transport = transport
        self._sleep = sleep

    @staticmethod
    def _copy_request(request: httpx.Request, body: bytes) -> httpx.Request:
        return httpx.Request(
            request.method,
            request.url,
            headers=request.headers,
            content=body,
        )

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send ``request`` and return the first non-transient response.

        Returns the last transient response when every attempt got one.

        Raises:
            TransportError: If every attempt failed at the connection level.
        """
        body = request.read()
        last_response: Optional[httpx.Response] = None
        last_error: Optional[httpx.HTTPError] = None

        logger.debug(f"Sending {request.method} {request.url} with {self.max_attempts} max attempts")

        for attempt in range(1, self.max_attempts + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport, follow_redirects=True
                ) as client:
                    response = await client.send(self._copy_request(request, body))
            except httpx.HTTPError as exc:
                last_error = exc
                logger.warning(
                    "Attempt %d/%d to %s failed: %s",
                    attempt,
                    self.max_attempts,
                    request.url,
                    format_httpx_error(exc, url=str(request.url), timeout=self.timeout),
                )
            else:
                if response.status_code not in self.transient_statuses:
                    if attempt > 1:
                        logger.info(f"Request to {request.url} succeeded on attempt {attempt}")
                    return response
                last_response = response
                logger.warning(
                    f"Attempt {attempt}/{self.max_attempts} to {request.url} returned "
                    f"transient status {response.status_code}"
                )

            if attempt < self.max_attempts:
                logger.info(f"Retrying {request.url} in {self.retry_delay:.2f}s...")
                await self._sleep(self.retry_delay)

        if last_response is not None:
            logger.error(
                f"Request to {request.url} exhausted {self.max_attempts} attempts, "
                f"returning last status {last_response.status_code}"
            )
            return last_response

        detail = format_httpx_error(last_error, url=str(request.url), timeout=self.timeout)
        logger.error(f"Request to {request.url} failed at connection level: {detail}")
        raise TransportError(f"backend unreachable: {detail}") from last_error
