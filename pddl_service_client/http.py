import logging
from typing import Any, Dict, Optional

import httpx

from .errors import AuthenticationError, TransportError


logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60.0
_TIMEOUT_SLACK = 1.1
DEFAULT_FRIENDLY_NAME = "PDDL Planning Service"


def wire_timeout_ms(timeout_s: float) -> float:
    return timeout_s * 1000 * _TIMEOUT_SLACK


def _timeout_seconds(timeout_ms: Optional[float]) -> Any:
    if timeout_ms is None:
        return httpx.USE_CLIENT_DEFAULT
    return timeout_ms / 1000


class PlanningHttpClient:
    def __init__(self, timeout: float = _DEFAULT_TIMEOUT, client: Optional[httpx.AsyncClient] = None):
        # Polls and the initial request share one pool.
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=16, max_keepalive_connections=8),
        )

    async def post_json(
        self,
        url: str,
        body: Any,
        *,
        timeout_ms: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        authenticated: bool = False,
        friendly_name: str = DEFAULT_FRIENDLY_NAME,
    ) -> Any:
        logger.debug("POST %s", url)
        try:
            resp = await self.client.post(
                url,
                json=body,
                headers=self._headers(headers),
                timeout=_timeout_seconds(timeout_ms),
            )
        except httpx.RequestError as exc:
            raise TransportError(f"{friendly_name} request to {url} failed: {exc}", url=url) from exc
        return self._decode(resp, url, authenticated, friendly_name)

    async def get_json(
        self,
        url: str,
        *,
        timeout_ms: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
        authenticated: bool = False,
        friendly_name: str = DEFAULT_FRIENDLY_NAME,
    ) -> Any:
        logger.debug("GET %s", url)
        try:
            resp = await self.client.get(
                url,
                headers=self._headers(headers),
                timeout=_timeout_seconds(timeout_ms),
            )
        except httpx.RequestError as exc:
            raise TransportError(f"{friendly_name} request to {url} failed: {exc}", url=url) from exc
        return self._decode(resp, url, authenticated, friendly_name)

    def _headers(self, extra: Optional[Dict[str, str]]) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    def _decode(self, resp: httpx.Response, url: str, authenticated: bool, friendly_name: str) -> Any:
        status = resp.status_code
        if authenticated:
            if status == 400:
                raise AuthenticationError(
                    "Authentication failed. Please login or update tokens.", status_code=status, url=url
                )
            if status == 401:
                raise AuthenticationError("Invalid token. Please update tokens.", status_code=status, url=url)
        if status > 202:
            raise TransportError(
                f"{friendly_name} returned code {status} {resp.reason_phrase}", status_code=status, url=url
            )
        content_type = resp.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            raise TransportError(
                "Invalid content-type.\n"
                f"Expected application/json but received {content_type or 'nothing'} from {url}",
                status_code=status,
                url=url,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(f"{friendly_name} returned malformed JSON from {url}", status_code=status, url=url) from exc

    async def close(self) -> None:
        # Safe to call multiple times
        if not self.client.is_closed:
            await self.client.aclose()
