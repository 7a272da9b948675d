"""
Appwrite document store over the REST API (aiohttp).

Only the two calls the vault engines need are implemented:
listing a page of documents and patching one document.
"""
import asyncio
import logging
from collections.abc import Mapping
from typing import Any, Optional

import aiohttp
import orjson

from . import conf
from .exceptions import ConfigurationError, StorageIOError
from .store import DocumentStore

logger = logging.getLogger("fieldvault.store")


def _json_dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def _query(method: str, values: list, attribute: Optional[str] = None) -> str:
    query: dict[str, Any] = {"method": method, "values": values}
    if attribute is not None:
        query["attribute"] = attribute
    return _json_dumps(query)


class AppwriteDocumentStore(DocumentStore):
    """Appwrite databases API client.

    Args:
        endpoint: API root, e.g. ``https://cloud.appwrite.io/v1``.
        project_id: value for ``X-Appwrite-Project``.
        api_key: server API key for ``X-Appwrite-Key``.
        database_id: database holding the collections.
        session: optional pre-built ``aiohttp.ClientSession`` (not closed by us).
        timeout: total request timeout in seconds.
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: int = conf.APPWRITE_TIMEOUT,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._database_id = database_id
        self._headers = {
            "X-Appwrite-Project": project_id,
            "X-Appwrite-Key": api_key,
            "Content-Type": "application/json",
        }
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_env(cls) -> "AppwriteDocumentStore":
        """Build a store from the ``APPWRITE_*`` settings.

        Raises:
            ConfigurationError: if any setting is missing.
        """
        settings = {
            "APPWRITE_ENDPOINT": conf.APPWRITE_ENDPOINT,
            "APPWRITE_PROJECT_ID": conf.APPWRITE_PROJECT_ID,
            "APPWRITE_API_KEY": conf.APPWRITE_API_KEY,
            "APPWRITE_DATABASE_ID": conf.APPWRITE_DATABASE_ID,
        }
        missing = [name for name, value in settings.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Appwrite configuration missing: {', '.join(missing)}"
            )
        return cls(
            endpoint=conf.APPWRITE_ENDPOINT,
            project_id=conf.APPWRITE_PROJECT_ID,
            api_key=conf.APPWRITE_API_KEY,
            database_id=conf.APPWRITE_DATABASE_ID,
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers,
                timeout=self._timeout,
                json_serialize=_json_dumps,
            )
            self._owns_session = True
        return self._session

    def _documents_url(self, collection: str) -> str:
        return (
            f"{self._endpoint}/databases/{self._database_id}"
            f"/collections/{collection}/documents"
        )

    async def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        session = self._get_session()
        if not self._owns_session:
            kwargs.setdefault("headers", self._headers)
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status >= 400:
                    message = response.reason
                    try:
                        body = await response.json(loads=orjson.loads)
                    except (aiohttp.ContentTypeError, orjson.JSONDecodeError):
                        body = None
                    if isinstance(body, dict):
                        message = body.get("message", message)
                    raise StorageIOError(
                        f"Appwrite {method} failed ({response.status}): {message}"
                    )
                try:
                    body = await response.json(loads=orjson.loads)
                except orjson.JSONDecodeError as err:
                    raise StorageIOError(
                        f"Appwrite {method} returned invalid JSON"
                    ) from err
                if not isinstance(body, dict):
                    raise StorageIOError(
                        f"Appwrite {method} returned {type(body).__name__}, "
                        f"expected an object"
                    )
                return body
        except aiohttp.ClientError as err:
            raise StorageIOError(f"Appwrite {method} failed: {err}") from err
        except asyncio.TimeoutError as err:
            raise StorageIOError(f"Appwrite {method} timed out") from err

    async def list_documents(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        params = [
            ("queries[]", _query("limit", [limit])),
            ("queries[]", _query("offset", [offset])),
        ]
        for attribute, value in (filters or {}).items():
            params.append(("queries[]", _query("equal", [value], attribute)))
        logger.debug(
            "Listing %s (limit=%d, offset=%d)", collection, limit, offset
        )
        body = await self._request(
            "GET", self._documents_url(collection), params=params
        )
        documents = body.get("documents")
        if not isinstance(documents, list):
            raise StorageIOError("Appwrite list response has no documents")
        return documents

    async def update_document(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        url = f"{self._documents_url(collection)}/{document_id}"
        return await self._request("PATCH", url, json={"data": dict(fields)})

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
