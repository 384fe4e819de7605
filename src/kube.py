"""
Kubernetes API object store.

Implements ObjectStore against the Kubernetes REST API over aiohttp. HTTP
failures are mapped onto the engine's error taxonomy: 404 is NotFoundError,
409 is ConflictError, anything else is a StoreError.
"""

import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from config import StoreConfig
from errors import ConflictError, NotFoundError, StoreError
from objects import ManagedObject, ObjectKey
from store import ObjectStore

logger = logging.getLogger(__name__)

# kind -> (api path prefix, plural resource name)
KIND_RESOURCES: Dict[str, Tuple[str, str]] = {
    "Service": ("/api/v1", "services"),
    "StatefulSet": ("/apis/apps/v1", "statefulsets"),
    "PodDisruptionBudget": ("/apis/policy/v1", "poddisruptionbudgets"),
}


class KubeObjectStore(ObjectStore):
    """Object store backed by a Kubernetes API server."""

    def __init__(self, config: Optional[StoreConfig] = None):
        self.config = config or StoreConfig()

    def _get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    def _collection_url(self, kind: str, namespace: str) -> str:
        if kind not in KIND_RESOURCES:
            known = ", ".join(KIND_RESOURCES.keys())
            raise StoreError(f"Unsupported kind: {kind}. Supported kinds: {known}")
        prefix, plural = KIND_RESOURCES[kind]
        base = self.config.api_url.rstrip("/")
        return f"{base}{prefix}/namespaces/{namespace}/{plural}"

    def _object_url(self, kind: str, key: ObjectKey) -> str:
        return f"{self._collection_url(kind, key.namespace)}/{key.name}"

    async def _request(
        self,
        method: str,
        url: str,
        kind: str,
        key: ObjectKey,
        stage: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method,
                    url,
                    headers=self._get_headers(),
                    json=payload,
                    ssl=self.config.verify_ssl,
                ) as response:
                    if response.status < 400:
                        return await response.json()
                    body = await response.text()
        except aiohttp.ClientError as e:
            raise StoreError(
                f"{method} {kind} {key} failed: {e}", kind=kind, key=key, stage=stage
            ) from e

        message = f"{method} {kind} {key} returned {response.status}: {body}"
        if response.status == 404:
            raise NotFoundError(
                message, kind=kind, key=key, stage=stage, status=response.status
            )
        if response.status == 409:
            raise ConflictError(
                message, kind=kind, key=key, stage=stage, status=response.status
            )
        logger.warning(message)
        raise StoreError(
            message, kind=kind, key=key, stage=stage, status=response.status
        )

    async def get(self, kind: str, key: ObjectKey) -> ManagedObject:
        data = await self._request("GET", self._object_url(kind, key), kind, key, "get")
        return ManagedObject.from_dict(data)

    async def create(self, obj: ManagedObject) -> ManagedObject:
        data = await self._request(
            "POST",
            self._collection_url(obj.kind, obj.namespace),
            obj.kind,
            obj.key,
            "create",
            payload=_payload(obj),
        )
        return ManagedObject.from_dict(data)

    async def update(self, obj: ManagedObject) -> ManagedObject:
        data = await self._request(
            "PUT",
            self._object_url(obj.kind, obj.key),
            obj.kind,
            obj.key,
            "update",
            payload=_payload(obj),
        )
        return ManagedObject.from_dict(data)


def _payload(obj: ManagedObject) -> Dict[str, Any]:
    data = obj.to_dict()
    # status is a subresource and is written by other controllers
    data.pop("status", None)
    return data
