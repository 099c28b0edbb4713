"""HTTP client for the Testaustime API."""

from __future__ import annotations

from typing import Callable

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from testaustime_ls.exceptions import AuthError, NetworkError

DEFAULT_BASE_URL = "https://api.testaustime.fi"
EDITOR_NAME = "Zed"


class ActivityUpdate(BaseModel):
    project_name: str
    language: str
    editor_name: str = EDITOR_NAME
    hostname: str


class Me(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str


HttpClientFactory = Callable[[], httpx.AsyncClient]


class APIClient:
    """Issues authenticated calls for one API key against one base URL.

    The client keeps no state besides those two values. Changing the key means
    building a new client. Errors are raised, never swallowed; callers decide
    whether a failure is worth more than a log line.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        *,
        http_client_factory: HttpClientFactory | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._http_client_factory = http_client_factory or httpx.AsyncClient

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def api_key(self) -> str:
        return self._api_key

    def _headers(self, key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {key}"}

    async def _post(self, path: str, *, json: dict[str, object] | None = None) -> None:
        async with self._http_client_factory() as http:
            response = await http.post(
                f"{self._base_url}{path}",
                headers=self._headers(self._api_key),
                json=json,
            )
            response.raise_for_status()

    async def heartbeat(self, update: ActivityUpdate) -> None:
        try:
            await self._post("/activity/update", json=update.model_dump())
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError("heartbeat", exc) from exc

    async def flush(self) -> None:
        try:
            await self._post("/activity/flush")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NetworkError("flush", exc) from exc

    async def validate_api_key(self, key: str) -> Me:
        try:
            async with self._http_client_factory() as http:
                response = await http.get(
                    f"{self._base_url}/users/@me",
                    headers=self._headers(key),
                )
                response.raise_for_status()
                return Me.model_validate(response.json())
        except (httpx.HTTPError, httpx.InvalidURL, ValidationError, ValueError) as exc:
            raise AuthError(exc) from exc
