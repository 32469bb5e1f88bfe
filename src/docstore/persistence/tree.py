"""
HTTP client for a realtime tree database (Firebase Realtime Database REST
protocol): every node is addressable as ``<base>/<path>.json``.

    GET     → value at path (or null)
    POST    → push a child with a generated, chronologically sortable key
    PUT     → replace the value at path
    PATCH   → shallow update of the children at path
    DELETE  → remove path
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx

from ..errors import StorageError

logger = logging.getLogger(__name__)


class RealtimeTreeClient:
    def __init__(
        self,
        base_url: str,
        *,
        auth_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self._client = httpx.Client(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "RealtimeTreeClient":
        return self

    def __exit__(self, *exc_info) -> bool:
        self.close()
        return False

    @staticmethod
    def _url(path: str) -> str:
        return "/" + path.strip("/") + ".json"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        payload: Any = None,
    ) -> Any:
        params = dict(params or {})
        if self.auth_token:
            params["auth"] = self.auth_token

        try:
            resp = self._client.request(
                method,
                self._url(path),
                params=params,
                json=payload if method in ("POST", "PUT", "PATCH") else None,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("%s /%s failed: %s", method, path.strip("/"), exc)
            raise StorageError(
                f"{method} failed for /{path.strip('/')}: {exc}",
                operation=method.lower(),
                key=path,
            ) from exc

        return resp.json() if resp.content else None

    # ---- node operations ------------------------------------------------
    def get(self, path: str, *, shallow: bool = False) -> Any:
        return self._request("GET", path, params={"shallow": "true"} if shallow else None)

    def query(self, path: str, *, order_by: str, equal_to: Any) -> Any:
        """Children of ``path`` whose ``order_by`` child equals ``equal_to``."""
        params = {"orderBy": json.dumps(order_by), "equalTo": json.dumps(equal_to)}
        return self._request("GET", path, params=params)

    def push(self, path: str, value: Any) -> str:
        """Append a child and return its generated key."""
        result = self._request("POST", path, payload=value)
        return result["name"]

    def set(self, path: str, value: Any) -> Any:
        return self._request("PUT", path, payload=value)

    def update(self, path: str, value: dict[str, Any]) -> Any:
        return self._request("PATCH", path, payload=value)

    def remove(self, path: str) -> None:
        self._request("DELETE", path)
