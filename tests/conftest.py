from collections.abc import AsyncIterator, Callable, Generator, Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx
import pytest

from infotavle.core.http_client import close_all_clients
from infotavle.core.settings import AdServerSettings
from infotavle.display.media import MediaElementSpec, MediaKind

ASSET_BASE_URL = "http://assets.test/ads"

_ENV_VARS = (
    "AD_SERVER_URL",
    "PORT",
    "INFOTAVLE_AD_SERVER_URL",
    "INFOTAVLE_EXTENSIONS",
    "INFOTAVLE_ROTATING_PREFIX",
    "INFOTAVLE_STATIC_PREFIX",
    "INFOTAVLE_MAX_ROTATING_ADS",
    "INFOTAVLE_STATIC_COUNT",
    "INFOTAVLE_MAX_CONSECUTIVE_MISSES",
    "INFOTAVLE_DEFAULT_AD_DURATION_MS",
    "INFOTAVLE_DISCOVERY_TTL_MS",
    "INFOTAVLE_UPDATE_WINDOW_START_HOUR",
    "INFOTAVLE_UPDATE_WINDOW_END_HOUR",
    "INFOTAVLE_WEB_HOST",
    "INFOTAVLE_WEB_PORT",
    "INFOTAVLE_SERVER_URL",
    "INFOTAVLE_UPDATE_INTERVAL_SECONDS",
    "INFOTAVLE_DEBUG",
    "INFOTAVLE_LOG_LEVEL",
    "INFOTAVLE_TEST_TIME",
)


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear infotavle environment variables so host settings never leak into tests."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test to prevent resource leaks."""
    yield
    await close_all_clients()


@pytest.fixture
def ad_settings() -> AdServerSettings:
    """Discovery settings pointing at the fake asset server."""
    return AdServerSettings(base_url=ASSET_BASE_URL)


# ==================== Fake asset server ====================


class FakeAssetServer:
    """In-memory asset server behind an httpx.MockTransport.

    ``files`` holds the names present on the server; ``durations`` is the body
    of ad-durations.txt (None answers 404). Every request is recorded.
    """

    def __init__(self, files: Iterable[str] = (), durations: Optional[str] = None):
        self.files = set(files)
        self.durations = durations
        self.requests: list[httpx.Request] = []
        self.fail_all = False
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def probed_names(self) -> list[str]:
        return [r.url.path.rsplit("/", 1)[-1] for r in self.requests if r.method == "HEAD"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_all:
            raise httpx.ConnectError("asset server down", request=request)

        name = request.url.path.rsplit("/", 1)[-1]
        if name == "ad-durations.txt":
            if self.durations is None:
                return httpx.Response(404)
            return httpx.Response(200, text=self.durations)
        if name in self.files:
            return httpx.Response(200)
        return httpx.Response(404)

    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return self._client


@pytest.fixture
def asset_server() -> Callable[..., FakeAssetServer]:
    """Factory for fake asset servers: ``asset_server(files, durations=None)``."""

    def factory(files: Iterable[str] = (), durations: Optional[str] = None) -> FakeAssetServer:
        return FakeAssetServer(files, durations)

    return factory


# ==================== Virtual timers and recording sinks ====================


class VirtualTimerHandle:
    def __init__(self, when_ms: int, order: int, callback: Callable[[], None]):
        self.when_ms = when_ms
        self.order = order
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualTimers:
    """``call_later`` scheduler driven by ``advance()`` instead of a real loop."""

    BASE_TIME = datetime(2025, 10, 27, 9, 0, 0, tzinfo=timezone.utc)

    def __init__(self) -> None:
        self.now_ms = 0
        self._order = 0
        self._pending: list[VirtualTimerHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> VirtualTimerHandle:
        handle = VirtualTimerHandle(self.now_ms + round(delay * 1000), self._order, callback)
        self._order += 1
        self._pending.append(handle)
        return handle

    def clock(self) -> datetime:
        return self.BASE_TIME + timedelta(milliseconds=self.now_ms)

    @property
    def pending(self) -> list[VirtualTimerHandle]:
        return [h for h in self._pending if not h.cancelled]

    def advance(self, ms: int) -> None:
        """Move time forward, firing due callbacks in (time, arming order) order."""
        target = self.now_ms + ms
        while True:
            due = [h for h in self.pending if h.when_ms <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when_ms, h.order))
            self._pending.remove(handle)
            self.now_ms = handle.when_ms
            handle.callback()
        self.now_ms = target


class RecordingSink:
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.mounted: Optional[MediaElementSpec] = None
        self._error_callbacks: dict[str, Callable[[str], None]] = {}

    @property
    def mounted_urls(self) -> list[str]:
        return [e[1] for e in self.events if e[0] == "mount"]

    def fade_out(self) -> None:
        self.events.append(("fade_out",))

    def fade_in(self) -> None:
        self.events.append(("fade_in",))

    def clear(self) -> None:
        self.events.append(("clear",))
        self.mounted = None

    def mount(self, element: MediaElementSpec, on_error: Callable[[str], None]) -> None:
        self.events.append(("mount", element.url))
        self.mounted = element
        self._error_callbacks[element.url] = on_error

    def fail(self, url: str, reason: str = "decode error") -> None:
        """Simulate a load error on the element mounted for ``url``."""
        self._error_callbacks[url](reason)


class RecordingProgress:
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    def reset(self) -> None:
        self.events.append(("reset",))

    def flush_layout(self) -> None:
        self.events.append(("flush_layout",))

    def animate(self, duration_ms: int) -> None:
        self.events.append(("animate", duration_ms))


class FakePreloadHandle:
    def __init__(self, kind: MediaKind, url: str):
        self.kind = kind
        self.url = url
        self.source_cleared = False
        self.released = False

    def clear_source(self) -> None:
        self.source_cleared = True

    def release(self) -> None:
        self.released = True


class RecordingPreloadFactory:
    def __init__(self) -> None:
        self.created: list[FakePreloadHandle] = []

    def create_preload(self, element: MediaElementSpec) -> FakePreloadHandle:
        handle = FakePreloadHandle(element.kind, element.url)
        self.created.append(handle)
        return handle


@pytest.fixture
def virtual_timers() -> VirtualTimers:
    return VirtualTimers()


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recording_progress() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def preload_factory() -> RecordingPreloadFactory:
    return RecordingPreloadFactory()
