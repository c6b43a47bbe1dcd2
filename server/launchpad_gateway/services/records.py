"""Record store clients: the external REST store and an in-process stand-in."""

from __future__ import annotations

import asyncio
import copy
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any

import httpx

from ..errors import InternalError, NotFoundError, StoreTimeoutError

logger = logging.getLogger(__name__)

Record = dict[str, Any]


class RecordStore(ABC):
    """Minimal CRUD surface the gateway needs from the record store."""

    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Record: ...

    @abstractmethod
    async def create(self, collection: str, data: Record) -> Record: ...

    @abstractmethod
    async def update(self, collection: str, record_id: str, data: Record) -> Record: ...

    @abstractmethod
    async def query_by_key(self, collection: str, field: str, value: str) -> Record | None: ...

    async def close(self) -> None:
        return None


class HttpRecordStore(RecordStore):
    """REST client for the back-office record store.

    Records travel wrapped as ``{"data": {...}}``. Every call is bounded by the
    client timeout; a timeout surfaces as StoreTimeoutError and is never
    retried here, since a write may already have landed.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url, headers=headers, timeout=timeout, transport=transport
        )

    async def get(self, collection: str, record_id: str) -> Record:
        body = await self._request("GET", f"/{collection}/{record_id}", collection=collection)
        return body["data"]

    async def create(self, collection: str, data: Record) -> Record:
        body = await self._request("POST", f"/{collection}", json={"data": data}, collection=collection)
        return body["data"]

    async def update(self, collection: str, record_id: str, data: Record) -> Record:
        body = await self._request(
            "PUT", f"/{collection}/{record_id}", json={"data": data}, collection=collection
        )
        return body["data"]

    async def query_by_key(self, collection: str, field: str, value: str) -> Record | None:
        body = await self._request(
            "GET", f"/{collection}", params={f"filters[{field}]": value}, collection=collection
        )
        rows = body.get("data") or []
        return rows[0] if rows else None

    async def close(self) -> None:
        await self._client.aclose()

    # ── Internal ──────────────────────────────────────────────────────────

    async def _request(self, method: str, url: str, *, collection: str, **kwargs: Any) -> dict:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Record store timeout: %s %s", method, url)
            raise StoreTimeoutError(
                f"Record store timed out on {method} {url}",
                hints="The operation may have been applied; do not blindly retry",
            ) from exc
        except httpx.RequestError as exc:
            logger.error("Record store unreachable: %s %s: %s", method, url, exc)
            raise InternalError(f"Record store request failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"{collection} record not found", hints="Check the identifier")
        if response.status_code >= 400:
            logger.error("Record store error %d on %s %s", response.status_code, method, url)
            raise InternalError(f"Record store returned {response.status_code}")
        return response.json()


class MemoryRecordStore(RecordStore):
    """Process-local store used for development and tests.

    Every call yields to the event loop, so interleavings between concurrent
    callers look like they would against a networked store.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._collections: dict[str, dict[str, Record]] = {}

    def seed(self, collection: str, *records: Record) -> None:
        rows = self._collections.setdefault(collection, {})
        for record in records:
            rows[str(record["id"])] = copy.deepcopy(record)

    def all(self, collection: str) -> list[Record]:
        return [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]

    async def get(self, collection: str, record_id: str) -> Record:
        await asyncio.sleep(self.latency)
        record = self._collections.get(collection, {}).get(str(record_id))
        if record is None:
            raise NotFoundError(f"{collection} record not found", hints="Check the identifier")
        return copy.deepcopy(record)

    async def create(self, collection: str, data: Record) -> Record:
        await asyncio.sleep(self.latency)
        record = copy.deepcopy(data)
        record.setdefault("id", uuid.uuid4().hex[:12])
        self._collections.setdefault(collection, {})[str(record["id"])] = record
        return copy.deepcopy(record)

    async def update(self, collection: str, record_id: str, data: Record) -> Record:
        await asyncio.sleep(self.latency)
        rows = self._collections.get(collection, {})
        if str(record_id) not in rows:
            raise NotFoundError(f"{collection} record not found", hints="Check the identifier")
        rows[str(record_id)].update(copy.deepcopy(data))
        return copy.deepcopy(rows[str(record_id)])

    async def query_by_key(self, collection: str, field: str, value: str) -> Record | None:
        await asyncio.sleep(self.latency)
        for record in self._collections.get(collection, {}).values():
            if record.get(field) == value:
                return copy.deepcopy(record)
        return None
