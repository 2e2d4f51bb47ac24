"""Cached, deduplicated reads and writes of a single secret."""
from __future__ import annotations

import asyncio
import base64
import functools
import json
import logging
from typing import Any, Awaitable, Dict, Mapping, Optional, Protocol

from .cache import SecretValueCache
from .errors import AwsSecretsManagerError, SecretValidationError

logger = logging.getLogger(__name__)

# Keys of a PutSecretValue response that also appear in GetSecretValue records.
_RECORD_KEYS = ("ARN", "Name", "VersionId", "VersionStages")


class SecretStore(Protocol):
    """Remote operations a :class:`SecretHandler` depends on."""

    async def get_secret_value(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        ...  # pragma: no cover - protocol definition

    async def put_secret_value(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        ...  # pragma: no cover - protocol definition


def parse_value_secret(record: Mapping[str, Any]) -> Any:
    """Decode the payload of a secret value record.

    ``SecretString`` is parsed as JSON. Otherwise ``SecretBinary`` is returned
    as UTF-8 text; a ``str`` binary payload is base64-decoded first, while
    ``bytes`` are taken as already decoded from the wire by botocore.
    """

    secret_string = record.get("SecretString")
    if secret_string is not None:
        return json.loads(secret_string)

    secret_binary = record.get("SecretBinary")
    if secret_binary is None:
        raise ValueError("Secret value record carries neither SecretString nor SecretBinary")
    if isinstance(secret_binary, str):
        secret_binary = base64.b64decode(secret_binary, validate=True)
    return bytes(secret_binary).decode("utf-8")


def validate_new_secret(new_secret: Any) -> None:
    """Reject values ``update_value`` will not store.

    Only non-empty mappings and non-empty lists/tuples are accepted.
    """

    if new_secret is None:
        raise SecretValidationError("A new secret value must be provided")
    if isinstance(new_secret, (str, bytes)) or not isinstance(new_secret, (Mapping, list, tuple)):
        raise SecretValidationError(
            f"A new secret value must be a mapping or a list, got {type(new_secret).__name__}"
        )
    if not new_secret:
        raise SecretValidationError("A new secret value must not be empty")


async def _updated_record(update: "asyncio.Future[Dict[str, Any]]", payload: Dict[str, Any]) -> Dict[str, Any]:
    confirmation = await asyncio.shield(update)
    record = {key: confirmation[key] for key in _RECORD_KEYS if key in confirmation}
    record.update(payload)
    return record


class SecretHandler:
    """Reads and writes one secret through a per-version cache.

    ``get_value`` and ``update_value`` are plain methods returning awaitables:
    the version coordinate is captured and the remote call is published into
    the cache when the method is called, so concurrent callers with the same
    ``(version_id, version_stage)`` share a single in-flight request. They
    must therefore be called while an event loop is running.
    """

    def __init__(
        self,
        secret_name: str,
        store: SecretStore,
        *,
        cache: SecretValueCache | None = None,
    ) -> None:
        self._secret_name = secret_name
        self._store = store
        self.version_id = ""
        self.version_stage = ""
        self.cache = cache if cache is not None else SecretValueCache()

    @property
    def secret_name(self) -> str:
        return self._secret_name

    def set_version_id(self, version_id: Optional[str]) -> "SecretHandler":
        self.version_id = version_id or ""
        return self

    def set_version_stage(self, version_stage: Optional[str]) -> "SecretHandler":
        self.version_stage = version_stage or ""
        return self

    def clear_from_cache(self) -> "SecretHandler":
        """Forget the cached value for the current version id and stage."""

        self.cache.clear(self.version_id, self.version_stage)
        return self

    # Reads --------------------------------------------------------------
    def get_value(self, full_value_data: bool = False) -> Awaitable[Any]:
        """Return an awaitable resolving to the secret value.

        Parameters
        ----------
        full_value_data:
            When true, resolve to the raw value record instead of the decoded
            payload.

        Raises
        ------
        AwsSecretsManagerError
            When awaited, if the fetch or the decoding fails.
        """

        version_id, version_stage = self.version_id, self.version_stage
        try:
            pending = self._lookup(version_id, version_stage)
        except Exception as exc:
            return self._raise_wrapped(exc, "get_value", version_id, version_stage)
        return self._resolve(pending, full_value_data, version_id, version_stage)

    def _lookup(self, version_id: str, version_stage: str) -> "asyncio.Future[Dict[str, Any]]":
        cached = self.cache.get(version_id, version_stage)
        if cached is not None:
            logger.debug("Secret value cache hit", extra=self._context(version_id, version_stage))
            return cached

        params: Dict[str, Any] = {"SecretId": self.secret_name}
        if version_id:
            params["VersionId"] = version_id
        if version_stage:
            params["VersionStage"] = version_stage

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._store.get_secret_value(params))
        self._publish(version_id, version_stage, task)
        return task

    async def _resolve(
        self,
        pending: "asyncio.Future[Dict[str, Any]]",
        full_value_data: bool,
        version_id: str,
        version_stage: str,
    ) -> Any:
        try:
            record = await asyncio.shield(pending)
            return record if full_value_data else parse_value_secret(record)
        except Exception as exc:
            raise self._wrap(exc, "get_value", version_id, version_stage) from exc

    # Writes -------------------------------------------------------------
    def update_value(self, new_secret: Any) -> Awaitable[Dict[str, Any]]:
        """Return an awaitable that stores ``new_secret`` and resolves to the
        store's confirmation.

        The payload keeps the encoding of the current value: ``SecretString``
        secrets are written as JSON text, ``SecretBinary`` secrets as the
        UTF-8 bytes of that JSON text.

        A non-empty ``version_id`` is sent as ``ClientRequestToken``, the id
        of the version to create. Against Secrets Manager this fails unless
        the id is new: the preceding read raises ``ResourceNotFoundException``
        for an unknown id, and writing different content under an existing
        id raises ``ResourceExistsException``. Both surface as
        :class:`AwsSecretsManagerError`.
        """

        version_id, version_stage = self.version_id, self.version_stage
        return self._update(new_secret, version_id, version_stage)

    async def _update(self, new_secret: Any, version_id: str, version_stage: str) -> Dict[str, Any]:
        published: Optional["asyncio.Future[Dict[str, Any]]"] = None
        try:
            validate_new_secret(new_secret)
            current = await asyncio.shield(self._lookup(version_id, version_stage))

            serialized = json.dumps(
                dict(new_secret) if isinstance(new_secret, Mapping) else list(new_secret),
                separators=(",", ":"),
            )
            payload: Dict[str, Any]
            if current.get("SecretString") is not None:
                payload = {"SecretString": serialized}
            else:
                payload = {"SecretBinary": serialized.encode("utf-8")}

            params: Dict[str, Any] = {"SecretId": self.secret_name, **payload}
            if version_id:
                params["ClientRequestToken"] = version_id
            if version_stage:
                params["VersionStages"] = [version_stage]

            loop = asyncio.get_running_loop()
            update = loop.create_task(self._store.put_secret_value(params))
            published = loop.create_task(_updated_record(update, payload))
            self._publish(version_id, version_stage, published)
            confirmation = await asyncio.shield(update)
        except Exception as exc:
            if published is not None:
                self.cache.discard(version_id, version_stage, published)
            raise self._wrap(exc, "update_value", version_id, version_stage) from exc

        logger.info(
            "Secret value updated",
            extra={**self._context(version_id, version_stage), "new_version_id": confirmation.get("VersionId")},
        )
        return confirmation

    # Helpers ------------------------------------------------------------
    def _publish(self, version_id: str, version_stage: str, handle: "asyncio.Future[Any]") -> None:
        self.cache.set(version_id, version_stage, handle)
        handle.add_done_callback(functools.partial(self._evict_failed, version_id, version_stage))

    def _evict_failed(self, version_id: str, version_stage: str, handle: "asyncio.Future[Any]") -> None:
        if not handle.cancelled() and handle.exception() is None:
            return
        if self.cache.discard(version_id, version_stage, handle):
            logger.debug("Evicted failed secret value lookup", extra=self._context(version_id, version_stage))

    def _context(self, version_id: str, version_stage: str) -> Dict[str, Any]:
        return {
            "secret_name": self.secret_name,
            "version_id": version_id,
            "version_stage": version_stage,
        }

    def _wrap(self, exc: Exception, operation: str, version_id: str, version_stage: str) -> AwsSecretsManagerError:
        context = {**self._context(version_id, version_stage), "operation": operation}
        logger.warning(
            "Secret operation failed",
            extra={**context, "error_type": type(exc).__name__},
        )
        return AwsSecretsManagerError(exc, context=context)

    async def _raise_wrapped(self, exc: Exception, operation: str, version_id: str, version_stage: str) -> Any:
        raise self._wrap(exc, operation, version_id, version_stage) from exc

    def __repr__(self) -> str:
        return (
            f"SecretHandler(secret_name={self.secret_name!r}, "
            f"version_id={self.version_id!r}, version_stage={self.version_stage!r})"
        )


__all__ = ["SecretHandler", "SecretStore", "parse_value_secret", "validate_new_secret"]
