import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .base import DataStore, DataStoreError

logger = logging.getLogger(__name__)

# grid options forwarded to the server, JSON-encoded
LOAD_OPTION_NAMES = (
    "skip",
    "take",
    "requireTotalCount",
    "requireGroupCount",
    "sort",
    "filter",
    "totalSummary",
    "group",
    "groupSummary",
)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


@dataclass
class RestUrls:
    load_url: str | None = None
    insert_url: str | None = None
    update_url: str | None = None
    remove_url: str | None = None


class RestDataStore(DataStore):
    """
    DataStore over the REST routers.

    Update and remove URLs are prefixes the key is appended to, e.g.
    ``update_url="/api/receivers/"``. A paged load keeps the server's
    total in `total_count`.
    """

    def __init__(self, client: httpx.AsyncClient, urls: RestUrls, key: str = "id"):
        super().__init__(key)
        self.client = client
        self.urls = urls
        self.total_count: int | None = None

    @staticmethod
    def _require(url: str | None, action: str) -> str:
        if not url:
            msg = f"{action.capitalize()}-URL is not set. Cannot {action} without URL."
            raise DataStoreError(msg)
        return url

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("%s %s failed with %s", method, url, status)
            raise DataStoreError(_error_detail(e.response), status_code=status) from e
        except httpx.HTTPError as e:
            raise DataStoreError(f"{method} {url} failed: {e}") from e
        return response

    async def load(self, **options: Any) -> list[dict[str, Any]]:
        url = self._require(self.urls.load_url, "load")
        params = {
            name: json.dumps(options[name])
            for name in LOAD_OPTION_NAMES
            if name in options and not _is_empty(options[name])
        }
        payload = (await self._request("GET", url, params=params)).json()
        if isinstance(payload, dict):
            self.total_count = payload.get("total_count", payload.get("totalCount"))
            return list(payload.get("data") or [])
        self.total_count = len(payload)
        return list(payload)

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        url = self._require(self.urls.insert_url, "insert")
        return (await self._request("POST", url, json=values)).json()

    async def update(self, key: Any, values: dict[str, Any]) -> None:
        url = self._require(self.urls.update_url, "update")
        await self._request("PUT", f"{url}{key}", json=values)

    async def remove(self, key: Any) -> None:
        url = self._require(self.urls.remove_url, "remove")
        await self._request("DELETE", f"{url}{key}")


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, str):
        return detail
    return f"Request failed with status {response.status_code}"
