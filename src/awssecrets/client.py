"""Async access to AWS Secrets Manager on top of boto3."""
from __future__ import annotations

import asyncio
import functools
import logging
import time
from concurrent.futures import Executor
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings

logger = logging.getLogger(__name__)


def build_secretsmanager_client(settings: Settings | None = None):
    """Return a boto3 Secrets Manager client configured from ``settings``."""

    settings = settings or Settings()
    session = boto3.Session(profile_name=settings.profile_name)
    return session.client(
        "secretsmanager",
        region_name=settings.region_name,
        endpoint_url=settings.endpoint_url,
    )


class SecretsManagerStore:
    """Runs Secrets Manager operations without blocking the event loop.

    boto3 clients are synchronous, so each call is handed to ``executor``
    (the loop's default executor when ``None``). The client is built on first
    use unless one is supplied.
    """

    def __init__(
        self,
        client: Any | None = None,
        *,
        settings: Settings | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._client = client
        self._settings = settings
        self._executor = executor

    @property
    def client(self):
        if self._client is None:
            self._client = build_secretsmanager_client(self._settings)
        return self._client

    async def get_secret_value(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Fetch a secret value record (``SecretString`` or ``SecretBinary``)."""

        return await self._call("get_secret_value", params)

    async def put_secret_value(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        """Store a new secret value, returning the new version's identifiers."""

        return await self._call("put_secret_value", params)

    async def _call(self, operation: str, params: Mapping[str, Any]) -> Dict[str, Any]:
        loop = asyncio.get_running_loop()
        method = getattr(self.client, operation)
        context: Dict[str, Any] = {
            "operation": operation,
            "secret_id": params.get("SecretId"),
            "version_id": params.get("VersionId") or params.get("ClientRequestToken"),
            "version_stage": params.get("VersionStage") or params.get("VersionStages"),
        }
        logger.debug("Secrets Manager request", extra=context)
        start = time.perf_counter()
        try:
            response = await loop.run_in_executor(
                self._executor, functools.partial(method, **params)
            )
        except (BotoCoreError, ClientError) as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            context.update({"elapsed_ms": round(elapsed_ms, 2), "error": str(exc)})
            logger.warning("Secrets Manager request failed", extra=context)
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        record = dict(response)
        metadata: Optional[Mapping[str, Any]] = record.pop("ResponseMetadata", None)
        context["elapsed_ms"] = round(elapsed_ms, 2)
        if metadata:
            context["request_id"] = metadata.get("RequestId")
        logger.debug("Secrets Manager response", extra=context)
        return record


__all__ = ["SecretsManagerStore", "build_secretsmanager_client"]
