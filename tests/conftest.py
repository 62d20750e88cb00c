"""Shared fixtures."""

from dataclasses import replace
from typing import Callable

import httpx
import pytest

from cm360.auth import CredentialCache
from cm360.client import CM360Client, build_http_client
from cm360.config import Settings
from cm360.services import CM360Service, build_service
from tests.fakes import API_BASE, PROFILE_BASE, FakeClock, FakeProvider


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        profile_id="123",
        access_token="static-token",
        account_id="999",
        api_base_url=API_BASE,
        report_poll_attempts=2,
        report_poll_interval=0,
    )


@pytest.fixture
def make_client(provider) -> Callable[..., CM360Client]:
    """Factory: CM360Client whose HTTP layer is an httpx.MockTransport around `handler`."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> CM360Client:
        credentials = CredentialCache(kwargs.pop("token_provider", provider))
        http = build_http_client(transport=httpx.MockTransport(handler))
        return CM360Client(http, credentials, PROFILE_BASE, **kwargs)

    return _make


@pytest.fixture
def make_service(settings) -> Callable[..., CM360Service]:
    """Factory: fully wired CM360Service on top of a MockTransport handler."""

    def _make(handler: Callable[[httpx.Request], httpx.Response], **overrides) -> CM360Service:
        token_provider = overrides.pop("token_provider", None) or FakeProvider()
        cfg = replace(settings, **overrides)
        return build_service(cfg, provider=token_provider, transport=httpx.MockTransport(handler))

    return _make
