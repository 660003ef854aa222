"""
Tests for the state notary registry client.

The registry is served by ``httpx.MockTransport``: no network.

Run: pytest tests/ -v
"""

from __future__ import annotations

import httpx
import pytest

from poa_validator.config import Settings
from poa_validator.exceptions import NotaryLookupError
from poa_validator.notary_registry import StateNotaryRegistry


def _make_registry(handler) -> StateNotaryRegistry:
    client = httpx.Client(
        base_url="https://registry.example",
        headers={"Authorization": "Bearer secret"},
        transport=httpx.MockTransport(handler),
    )
    return StateNotaryRegistry("https://registry.example", client=client)


class TestLookup:
    def test_registered_notary(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"valid": True})

        assert _make_registry(handler)("1234567", "Jane Doe") is True
        assert seen == {
            "path": "/verify",
            "params": {"commission": "1234567", "name": "Jane Doe"},
            "auth": "Bearer secret",
        }

    def test_unregistered_notary(self):
        registry = _make_registry(lambda request: httpx.Response(200, json={"valid": False}))
        assert registry("1234567", "Jane Doe") is False

    def test_truthy_but_not_true_is_not_valid(self):
        registry = _make_registry(lambda request: httpx.Response(200, json={"valid": "yes"}))
        assert registry("1234567", "Jane Doe") is False

    def test_server_error_raises(self):
        registry = _make_registry(lambda request: httpx.Response(503))
        with pytest.raises(NotaryLookupError) as exc_info:
            registry("1234567", "Jane Doe")
        assert exc_info.value.code == "NOTARY_LOOKUP_FAILED"

    def test_connection_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NotaryLookupError):
            _make_registry(handler)("1234567", "Jane Doe")

    def test_unreadable_body_raises(self):
        registry = _make_registry(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(NotaryLookupError):
            registry("1234567", "Jane Doe")


class TestFromSettings:
    def test_disabled_without_url(self):
        assert StateNotaryRegistry.from_settings(Settings(notary_api_url="")) is None

    def test_enabled_with_url(self):
        registry = StateNotaryRegistry.from_settings(
            Settings(notary_api_url="https://registry.example/", notary_api_key="k")
        )
        assert isinstance(registry, StateNotaryRegistry)
        registry.close()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
