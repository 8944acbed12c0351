"""Async HTTP client utilities."""

import json

import aiohttp
from typing import Optional, Dict, Any


class AsyncHTTPClient:
    """Reusable async HTTP client."""

    def __init__(self, headers: Optional[Dict[str, str]] = None, timeout: float = 30.0):
        self.default_headers = headers or {}
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(headers=self.default_headers, timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        if self.session:
            await self.session.close()
            self.session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if not self.session:
            self.session = aiohttp.ClientSession(headers=self.default_headers, timeout=self.timeout)
        return self.session

    async def get(self, url: str, params: Optional[Dict[str, Any]] = None,
                  headers: Optional[Dict[str, str]] = None) -> Any:
        """GET request returning the decoded JSON body.

        Non-2xx answers raise ``aiohttp.ClientResponseError`` whose message is
        the ``message`` field of a JSON error body, or the reason phrase.
        """
        session = self._ensure_session()
        async with session.get(url, params=params, headers=headers) as resp:
            if resp.status >= 400:
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=await self._error_message(resp),
                    headers=resp.headers,
                )
            return await resp.json(content_type=None)

    @staticmethod
    async def _error_message(resp: aiohttp.ClientResponse) -> str:
        reason = resp.reason or ""
        try:
            body = json.loads(await resp.text())
        except (ValueError, UnicodeDecodeError, aiohttp.ClientError):
            return reason
        if isinstance(body, dict) and isinstance(body.get("message"), str):
            return body["message"]
        return reason
