"""Tests for the transport cache."""

from __future__ import annotations

from mindbox_relay.services.client_registry import ClientRegistry
from mindbox_relay.services.errors import ErrorKind, MindboxError
from tests.conftest import TEST_API_URL, TEST_ENDPOINT, TEST_SECRET


def test_same_tuple_returns_same_transport(registry: ClientRegistry) -> None:
    first = registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 5)
    second = registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 5.0)

    assert first is not None
    assert first is second
    assert len(registry) == 1


def test_different_tuples_get_separate_transports(registry: ClientRegistry) -> None:
    base = registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 5)
    other_key = registry.get(TEST_API_URL, TEST_ENDPOINT, "another", 5)
    other_timeout = registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 10)
    other_endpoint = registry.get(TEST_API_URL, "shop.Mobile", TEST_SECRET, 5)

    assert len({id(base), id(other_key), id(other_timeout), id(other_endpoint)}) == 4
    assert other_timeout.config.timeout_seconds == 10.0
    assert len(registry) == 4


def test_transport_is_built_from_normalized_config(registry: ClientRegistry) -> None:
    transport = registry.get("api.mindbox.ru/", " shop.Website ")

    assert transport.config.api_url == "https://api.mindbox.ru"
    assert transport.config.endpoint_id == "shop.Website"
    assert transport.config.secret_key is None


def test_invalid_tuple_reports_error_and_is_not_cached(mocker) -> None:
    callback = mocker.Mock()
    registry = ClientRegistry(on_error=callback)

    assert registry.get(TEST_API_URL, "", TEST_SECRET, 5) is None
    assert registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 0) is None

    assert callback.call_count == 2
    error = callback.call_args_list[0].args[0]
    assert isinstance(error, MindboxError)
    assert error.kind is ErrorKind.CONFIG
    assert len(registry) == 0


def test_per_call_callback_takes_precedence(mocker) -> None:
    default_callback = mocker.Mock()
    call_callback = mocker.Mock()
    registry = ClientRegistry(on_error=default_callback)

    registry.get("", TEST_ENDPOINT, on_error=call_callback)

    call_callback.assert_called_once()
    default_callback.assert_not_called()


def test_failure_without_callback_returns_none() -> None:
    assert ClientRegistry().get("", "") is None


def test_close_forgets_transports(registry: ClientRegistry, mocker) -> None:
    transport = registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 5)
    close = mocker.spy(transport, "close")

    registry.close()

    close.assert_called_once()
    assert len(registry) == 0
    assert registry.get(TEST_API_URL, TEST_ENDPOINT, TEST_SECRET, 5) is not transport
