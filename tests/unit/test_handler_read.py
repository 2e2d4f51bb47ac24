from __future__ import annotations

import asyncio
import base64
import json

import pytest

from awssecrets.cache import SecretValueCache
from awssecrets.errors import AwsSecretsManagerError
from awssecrets.handler import SecretHandler
from tests.helpers_store import FakeClock, StubSecretStore

SECRET_NAME = "my-secret"
VERSION_ID = "EXAMPLE1-90ab-cdef-fedc-ba987SECRET1"
STRING_RECORD = {"SecretString": '{"foo":"bar"}'}
BINARY_RECORD = {"SecretBinary": base64.b64encode(b"binary-secret-value").decode("ascii")}


def _handler(store: StubSecretStore, **kwargs) -> SecretHandler:
    return SecretHandler(SECRET_NAME, store, **kwargs)


@pytest.mark.asyncio
async def test_remote_failure_is_wrapped() -> None:
    original = RuntimeError("Failed to fetch secret")
    store = StubSecretStore(get_error=original)

    with pytest.raises(AwsSecretsManagerError, match="Failed to fetch secret") as excinfo:
        await _handler(store).get_value()

    assert excinfo.value.previous_error is original
    assert excinfo.value.__cause__ is original
    assert excinfo.value.context["secret_name"] == SECRET_NAME
    assert excinfo.value.context["operation"] == "get_value"


@pytest.mark.asyncio
async def test_invalid_json_is_wrapped() -> None:
    store = StubSecretStore({("", ""): {"SecretString": '{"foo":INVALID}'}})

    with pytest.raises(AwsSecretsManagerError) as excinfo:
        await _handler(store).get_value()

    assert isinstance(excinfo.value.previous_error, json.JSONDecodeError)


@pytest.mark.asyncio
async def test_secret_string_is_parsed() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD})

    assert await _handler(store).get_value() == {"foo": "bar"}
    assert store.get_calls == [{"SecretId": SECRET_NAME}]


@pytest.mark.asyncio
async def test_secret_binary_is_decoded() -> None:
    store = StubSecretStore({("", ""): BINARY_RECORD})

    assert await _handler(store).get_value() == "binary-secret-value"
    assert store.get_calls == [{"SecretId": SECRET_NAME}]


@pytest.mark.asyncio
async def test_full_value_data_returns_raw_record() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD})

    assert await _handler(store).get_value(True) == STRING_RECORD
    assert store.get_calls == [{"SecretId": SECRET_NAME}]


@pytest.mark.asyncio
async def test_version_id_and_stage_are_sent_when_set() -> None:
    store = StubSecretStore({(VERSION_ID, "SOMESTAGE"): STRING_RECORD})
    handler = _handler(store).set_version_id(VERSION_ID).set_version_stage("SOMESTAGE")

    assert await handler.get_value(True) == STRING_RECORD
    assert store.get_calls == [
        {"SecretId": SECRET_NAME, "VersionId": VERSION_ID, "VersionStage": "SOMESTAGE"}
    ]


@pytest.mark.asyncio
async def test_only_stage_is_sent_when_version_id_empty() -> None:
    store = StubSecretStore({("", "AWSPREVIOUS"): STRING_RECORD})
    handler = _handler(store).set_version_stage("AWSPREVIOUS")

    await handler.get_value()

    assert store.get_calls == [{"SecretId": SECRET_NAME, "VersionStage": "AWSPREVIOUS"}]


def test_setters_normalize_and_chain() -> None:
    handler = _handler(StubSecretStore())

    assert handler.set_version_id(None) is handler
    assert handler.set_version_stage("") is handler
    assert (handler.version_id, handler.version_stage) == ("", "")

    handler.set_version_id(VERSION_ID).set_version_stage("AWSCURRENT")
    assert (handler.version_id, handler.version_stage) == (VERSION_ID, "AWSCURRENT")


def test_clearing_an_empty_cache_does_nothing() -> None:
    handler = _handler(StubSecretStore())

    assert handler.clear_from_cache() is handler


@pytest.mark.asyncio
async def test_sequential_calls_fetch_once() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD})
    handler = _handler(store)

    assert await handler.get_value() == {"foo": "bar"}
    assert await handler.get_value() == {"foo": "bar"}
    assert await handler.get_value(True) == STRING_RECORD

    assert len(store.get_calls) == 1


@pytest.mark.asyncio
async def test_concurrent_calls_share_one_fetch() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD})
    store.gate = asyncio.Event()
    handler = _handler(store)

    pending = [handler.get_value() for _ in range(5)]
    gathered = asyncio.gather(*pending)
    await asyncio.sleep(0)
    store.gate.set()
    values = await gathered

    assert values == [{"foo": "bar"}] * 5
    assert store.get_calls == [{"SecretId": SECRET_NAME}]


@pytest.mark.asyncio
async def test_each_version_coordinate_is_cached_independently() -> None:
    store = StubSecretStore(
        {
            ("", ""): STRING_RECORD,
            (VERSION_ID, "SOMESTAGE"): BINARY_RECORD,
        }
    )
    handler = _handler(store)

    values = await asyncio.gather(
        handler.get_value(True),
        handler.set_version_id(VERSION_ID).set_version_stage("SOMESTAGE").get_value(),
        handler.set_version_id("").set_version_stage("").get_value(True),
        handler.set_version_id(VERSION_ID).set_version_stage("SOMESTAGE").get_value(),
    )

    assert values == [STRING_RECORD, "binary-secret-value", STRING_RECORD, "binary-secret-value"]
    assert store.get_calls == [
        {"SecretId": SECRET_NAME},
        {"SecretId": SECRET_NAME, "VersionId": VERSION_ID, "VersionStage": "SOMESTAGE"},
    ]


@pytest.mark.asyncio
async def test_changing_version_after_call_does_not_affect_it() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD, (VERSION_ID, ""): BINARY_RECORD})
    handler = _handler(store)

    pending = handler.get_value()
    handler.set_version_id(VERSION_ID)

    assert await pending == {"foo": "bar"}
    assert await handler.get_value() == "binary-secret-value"
    assert store.get_calls == [
        {"SecretId": SECRET_NAME},
        {"SecretId": SECRET_NAME, "VersionId": VERSION_ID},
    ]


@pytest.mark.asyncio
async def test_clear_from_cache_forces_a_new_fetch() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD})
    handler = _handler(store)

    await handler.get_value()
    handler.clear_from_cache()
    assert await handler.get_value() == {"foo": "bar"}

    assert len(store.get_calls) == 2


@pytest.mark.asyncio
async def test_clear_from_cache_only_affects_current_coordinate() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD, ("", "AWSPREVIOUS"): BINARY_RECORD})
    handler = _handler(store)

    await handler.get_value()
    await handler.set_version_stage("AWSPREVIOUS").get_value()
    handler.clear_from_cache()
    await handler.set_version_stage("").get_value()
    await handler.set_version_stage("AWSPREVIOUS").get_value()

    assert [call.get("VersionStage", "") for call in store.get_calls] == ["", "AWSPREVIOUS", "AWSPREVIOUS"]


@pytest.mark.asyncio
async def test_cached_value_expires_after_one_day() -> None:
    clock = FakeClock()
    store = StubSecretStore(
        {("", ""): [{"SecretString": '{"foo":"bar"}'}, {"SecretString": '{"foo":"fresh"}'}]}
    )
    handler = _handler(store, cache=SecretValueCache(clock=clock))

    assert await handler.get_value() == {"foo": "bar"}

    clock.advance(24 * 60 * 60 - 0.001)
    assert await handler.get_value() == {"foo": "bar"}
    assert len(store.get_calls) == 1

    clock.advance(0.002)
    assert await handler.get_value() == {"foo": "fresh"}
    assert len(store.get_calls) == 2


@pytest.mark.asyncio
async def test_failed_fetch_is_shared_then_evicted() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD}, get_error=RuntimeError("throttled"))
    store.gate = asyncio.Event()
    handler = _handler(store)

    pending = asyncio.gather(handler.get_value(), handler.get_value(), return_exceptions=True)
    await asyncio.sleep(0)
    store.gate.set()
    results = await pending

    assert all(isinstance(result, AwsSecretsManagerError) for result in results)
    assert len(store.get_calls) == 1
    assert handler.cache.get("", "") is None

    store.gate = None
    store.get_error = None
    assert await handler.get_value() == {"foo": "bar"}
    assert len(store.get_calls) == 2


@pytest.mark.asyncio
async def test_cancelling_one_caller_keeps_shared_fetch_alive() -> None:
    store = StubSecretStore({("", ""): STRING_RECORD})
    store.gate = asyncio.Event()
    handler = _handler(store)

    first = asyncio.ensure_future(handler.get_value())
    second = asyncio.ensure_future(handler.get_value())
    await asyncio.sleep(0)
    first.cancel()
    store.gate.set()

    assert await second == {"foo": "bar"}
    assert first.cancelled()
    assert len(store.get_calls) == 1
    assert await handler.get_value() == {"foo": "bar"}
    assert len(store.get_calls) == 1


def test_get_value_outside_event_loop_fails_when_awaited() -> None:
    handler = _handler(StubSecretStore({("", ""): STRING_RECORD}))
    awaitable = handler.get_value()

    async def _consume():
        return await awaitable

    with pytest.raises(AwsSecretsManagerError, match="no running event loop"):
        asyncio.run(_consume())
