"""Parse (Back4App) REST client for MaBar."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from mabar.core.config.schema import Config
from mabar.core.parse.query import ParseQuery, decode_value, encode_value

OBJECT_NOT_FOUND = 101
INVALID_SESSION_TOKEN = 209


class ParseError(Exception):
    """Non-2xx response from the Parse server."""

    def __init__(self, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(f"Parse error {code}: {message}")
        self.code = code
        self.message = message
        self.status_code = status_code


class ParseClient:
    """Async client for the Parse REST API.

    Parameters
    ----------
    server_url : str
        Parse server URL (e.g. "https://parseapi.back4app.com").
    app_id : str
        ``X-Parse-Application-Id``.
    rest_api_key : str
        ``X-Parse-REST-API-Key``.
    timeout : float
        Per-request timeout in seconds.
    transport : httpx.AsyncBaseTransport, optional
        Custom transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        server_url: str,
        app_id: str,
        rest_api_key: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.app_id = app_id
        self.rest_api_key = rest_api_key
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(
        cls, config: Config, transport: httpx.AsyncBaseTransport | None = None
    ) -> ParseClient:
        return cls(
            server_url=config.parse.server_url,
            app_id=config.parse.app_id,
            rest_api_key=config.parse.rest_api_key,
            timeout=config.parse.timeout,
            transport=transport,
        )

    # ════════════════════════════════════════════════════════════
    # QUERIES
    # ════════════════════════════════════════════════════════════

    async def find(
        self, query: ParseQuery, session_token: str | None = None
    ) -> list[dict[str, Any]]:
        """Run a query and return decoded result objects."""
        data = await self._request(
            "GET",
            f"/classes/{query.class_name}",
            params=query.to_params(),
            session_token=session_token,
        )
        results = [decode_value(r) for r in data.get("results", [])]
        logger.debug(f"Parse find {query.class_name}: {len(results)} result(s)")
        return results

    async def first(
        self, query: ParseQuery, session_token: str | None = None
    ) -> dict[str, Any] | None:
        results = await self.find(query.limit(1), session_token=session_token)
        return results[0] if results else None

    async def count(self, query: ParseQuery, session_token: str | None = None) -> int:
        params = {**query.to_params(), "count": 1, "limit": 0}
        data = await self._request(
            "GET", f"/classes/{query.class_name}", params=params, session_token=session_token
        )
        return int(data.get("count", 0))

    async def get(
        self, class_name: str, object_id: str, session_token: str | None = None
    ) -> dict[str, Any] | None:
        """Fetch one object by id, ``None`` when it does not exist."""
        try:
            data = await self._request(
                "GET", f"/classes/{class_name}/{object_id}", session_token=session_token
            )
        except ParseError as e:
            if e.code == OBJECT_NOT_FOUND or e.status_code == 404:
                return None
            raise
        return decode_value(data)

    # ════════════════════════════════════════════════════════════
    # WRITES
    # ════════════════════════════════════════════════════════════

    async def create(
        self, class_name: str, data: dict[str, Any], session_token: str | None = None
    ) -> dict[str, Any]:
        """Create an object. Returns the input fields plus ``objectId``/``createdAt``."""
        created = await self._request(
            "POST", f"/classes/{class_name}", json=encode_value(data), session_token=session_token
        )
        logger.info(f"Parse create {class_name}: {created.get('objectId')}")
        return {**data, **created}

    async def update(
        self,
        class_name: str,
        object_id: str,
        data: dict[str, Any],
        session_token: str | None = None,
    ) -> dict[str, Any]:
        """Update fields (atomic ``__op`` payloads allowed). Returns server response."""
        result = await self._request(
            "PUT",
            f"/classes/{class_name}/{object_id}",
            json=encode_value(data),
            session_token=session_token,
        )
        return decode_value(result)

    # ════════════════════════════════════════════════════════════
    # USERS
    # ════════════════════════════════════════════════════════════

    async def current_user(self, session_token: str | None) -> dict[str, Any] | None:
        """Resolve the logged-in user (``GET /users/me``). ``None`` when anonymous."""
        if not session_token:
            return None
        try:
            return decode_value(
                await self._request("GET", "/users/me", session_token=session_token)
            )
        except ParseError as e:
            if e.code == INVALID_SESSION_TOKEN or e.status_code in (401, 403, 404):
                logger.info(f"Session token rejected by Parse ({e.code})")
                return None
            raise

    async def health(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except (ParseError, httpx.HTTPError) as e:
            logger.warning(f"Parse health check failed: {e}")
            return False

    # ── Internals ───────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        session_token: str | None = None,
    ) -> dict[str, Any]:
        url = f"{self.server_url}{path}"
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers=self._headers(session_token),
            transport=self._transport,
        ) as client:
            resp = await client.request(method, url, params=params, json=json)

        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            code = int(body.get("code", resp.status_code))
            message = str(body.get("error", resp.text[:200]))
            logger.warning(f"Parse {method} {path} failed ({resp.status_code}): {message}")
            raise ParseError(code, message, status_code=resp.status_code)
        return resp.json()

    def _headers(self, session_token: str | None = None) -> dict[str, str]:
        headers = {
            "X-Parse-Application-Id": self.app_id,
            "Content-Type": "application/json",
        }
        if self.rest_api_key:
            headers["X-Parse-REST-API-Key"] = self.rest_api_key
        if session_token:
            headers["X-Parse-Session-Token"] = session_token
        return headers
