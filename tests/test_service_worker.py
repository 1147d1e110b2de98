from __future__ import annotations

import json
from pathlib import Path

import pytest

from fleetsync.config import ApiCachePolicy, FleetSyncConfig
from fleetsync.exceptions import FleetSyncTransportError, FleetSyncWorkerError
from fleetsync.messages import MessageType, WorkerClient, WorkerClients
from fleetsync.worker import (
    CacheStorage,
    HttpRequest,
    HttpResponse,
    Notification,
    RequestClass,
    ServiceWorker,
    WorkerState,
    classify_request,
    navigation_request,
)

ORIGIN = "http://fleet.test"


class FakeNetwork:
    """Serves canned responses by URL; unknown URLs behave like a dropped connection."""

    def __init__(self, responses: dict[str, HttpResponse] | None = None) -> None:
        self.responses = dict(responses or {})
        self.online = True
        self.requests: list[str] = []

    def serve(self, path: str, body: str, status: int = 200) -> None:
        self.responses[f"{ORIGIN}{path}"] = HttpResponse(status=status, body=body.encode())

    async def fetch(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request.url)
        if not self.online or request.url not in self.responses:
            raise FleetSyncTransportError(f"no route to {request.url}", endpoint=request.path)
        return self.responses[request.url]


def _config(tmp_path: Path, **overrides: object) -> FleetSyncConfig:
    return FleetSyncConfig(base_url=ORIGIN, data_dir=tmp_path, **overrides)  # type: ignore[arg-type]


def _shell_network() -> FakeNetwork:
    network = FakeNetwork()
    for path in ("/", "/index.html", "/offline.html", "/manifest.json", "/icon-192x192.svg", "/icon-512x512.svg"):
        network.serve(path, f"shell {path}")
    return network


async def _active_worker(
    tmp_path: Path,
    network: FakeNetwork,
    **kwargs: object,
) -> ServiceWorker:
    policy = kwargs.pop("api_cache_policy", ApiCachePolicy.BYPASS)
    worker = ServiceWorker(_config(tmp_path, api_cache_policy=policy), network, **kwargs)  # type: ignore[arg-type]
    await worker.register()
    return worker


def _get(path: str) -> HttpRequest:
    return HttpRequest(url=f"{ORIGIN}{path}")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_register_installs_shell_and_activates(tmp_path: Path) -> None:
    worker = await _active_worker(tmp_path, _shell_network())

    assert worker.state is WorkerState.ACTIVATED
    static = await worker.caches.open("static-assets-v4")
    assert len(static) == 6
    assert await worker.caches.keys() == ["static-assets-v4"]


@pytest.mark.asyncio
async def test_missing_shell_asset_does_not_abort_install(tmp_path: Path) -> None:
    network = _shell_network()
    del network.responses[f"{ORIGIN}/manifest.json"]
    network.serve("/offline.html", "gone", status=404)

    worker = await _active_worker(tmp_path, network)

    assert worker.state is WorkerState.ACTIVATED
    static = await worker.caches.open("static-assets-v4")
    assert f"{ORIGIN}/manifest.json" not in await static.keys()
    assert f"{ORIGIN}/offline.html" not in await static.keys()
    assert len(static) == 4


@pytest.mark.asyncio
async def test_activation_evicts_old_generations_only(tmp_path: Path) -> None:
    storage = CacheStorage()
    for name in ("static-assets-v3", "dynamic-v3", "api-cache-v0", "dynamic-v4"):
        await storage.open(name)

    worker = await _active_worker(tmp_path, _shell_network(), cache_storage=storage)

    assert sorted(await storage.keys()) == ["dynamic-v4", "static-assets-v4"]
    assert worker.current_cache_names == frozenset({"static-assets-v4", "dynamic-v4"})


@pytest.mark.asyncio
async def test_network_first_api_policy_keeps_api_bucket(tmp_path: Path) -> None:
    storage = CacheStorage()
    await storage.open("api-cache-v1")

    await _active_worker(
        tmp_path,
        _shell_network(),
        cache_storage=storage,
        api_cache_policy=ApiCachePolicy.NETWORK_FIRST,
    )

    assert await storage.has("api-cache-v1")


@pytest.mark.asyncio
async def test_activation_claims_existing_clients(tmp_path: Path) -> None:
    clients = WorkerClients()
    page = clients.add(WorkerClient(f"{ORIGIN}/dashboard"))

    await _active_worker(tmp_path, _shell_network(), clients=clients)

    assert page.controlled


@pytest.mark.asyncio
async def test_lifecycle_order_is_enforced(tmp_path: Path) -> None:
    worker = ServiceWorker(_config(tmp_path), _shell_network())

    with pytest.raises(FleetSyncWorkerError):
        await worker.activate()

    await worker.install()
    with pytest.raises(FleetSyncWorkerError):
        await worker.install()


@pytest.mark.asyncio
async def test_fetch_is_not_intercepted_before_activation(tmp_path: Path) -> None:
    worker = ServiceWorker(_config(tmp_path), _shell_network())
    await worker.install()

    assert worker.state is WorkerState.INSTALLED
    assert await worker.fetch(_get("/app.js")) is None

    await worker.message({"type": "SKIP_WAITING"})

    assert worker.state is WorkerState.ACTIVATED


# ---------------------------------------------------------------------------
# Request classification
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("request_", "policy", "expected"),
    [
        (HttpRequest(url=f"{ORIGIN}/api/vehicles", method="POST"), ApiCachePolicy.NETWORK_FIRST, RequestClass.PASSTHROUGH),
        (HttpRequest(url="https://cdn.example.com/lib.js"), ApiCachePolicy.BYPASS, RequestClass.PASSTHROUGH),
        (HttpRequest(url=f"{ORIGIN}/api/vehicles"), ApiCachePolicy.BYPASS, RequestClass.PASSTHROUGH),
        (HttpRequest(url=f"{ORIGIN}/api/vehicles"), ApiCachePolicy.NETWORK_FIRST, RequestClass.API),
        (navigation_request(f"{ORIGIN}/vehicles"), ApiCachePolicy.BYPASS, RequestClass.NAVIGATION),
        (HttpRequest(url=f"{ORIGIN}/assets/app.CSS"), ApiCachePolicy.BYPASS, RequestClass.STATIC),
        (HttpRequest(url=f"{ORIGIN}/manifest.json"), ApiCachePolicy.BYPASS, RequestClass.OTHER),
    ],
)
def test_classify_request(request_: HttpRequest, policy: ApiCachePolicy, expected: RequestClass) -> None:
    assert classify_request(request_, origin=ORIGIN, api_prefix="/api/", api_policy=policy) is expected


def test_navigation_request_requires_absolute_url() -> None:
    with pytest.raises(ValueError):
        navigation_request("/vehicles")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_passthrough_requests_return_none(tmp_path: Path) -> None:
    network = _shell_network()
    worker = await _active_worker(tmp_path, network)
    network.requests.clear()

    assert await worker.fetch(HttpRequest(url=f"{ORIGIN}/api/registrations", method="POST")) is None
    assert await worker.fetch(_get("/api/vehicles")) is None
    assert await worker.fetch(HttpRequest(url="https://tiles.example.com/1/2/3.png")) is None
    assert network.requests == []


@pytest.mark.asyncio
async def test_navigation_is_network_first_and_cached(tmp_path: Path) -> None:
    network = _shell_network()
    network.serve("/vehicles", "<html>vehicles</html>")
    worker = await _active_worker(tmp_path, network)

    online = await worker.fetch(navigation_request(f"{ORIGIN}/vehicles"))
    assert online is not None and online.text() == "<html>vehicles</html>"

    network.online = False
    offline = await worker.fetch(navigation_request(f"{ORIGIN}/vehicles#top"))

    assert offline is not None
    assert offline.text() == "<html>vehicles</html>"


@pytest.mark.asyncio
async def test_offline_navigation_falls_back_to_shell_then_503(tmp_path: Path) -> None:
    network = _shell_network()
    worker = await _active_worker(tmp_path, network)
    network.online = False

    shell = await worker.fetch(navigation_request(f"{ORIGIN}/drivers"))
    assert shell is not None and shell.text() == "shell /"

    await worker.message({"type": "CLEAR_CACHE"})
    missing = await worker.fetch(navigation_request(f"{ORIGIN}/drivers"))

    assert missing is not None
    assert missing.status == 503
    assert missing.headers["Content-Type"].startswith("text/plain")


@pytest.mark.asyncio
async def test_navigation_error_status_is_returned_but_not_cached(tmp_path: Path) -> None:
    network = _shell_network()
    network.serve("/broken", "server error", status=500)
    worker = await _active_worker(tmp_path, network)

    response = await worker.fetch(navigation_request(f"{ORIGIN}/broken"))

    assert response is not None and response.status == 500
    dynamic = await worker.caches.open("dynamic-v4")
    assert len(dynamic) == 0


@pytest.mark.asyncio
async def test_static_is_cache_first_with_background_refresh(tmp_path: Path) -> None:
    network = _shell_network()
    network.serve("/assets/app.js", "console.log(1)")
    worker = await _active_worker(tmp_path, network)

    first = await worker.fetch(_get("/assets/app.js"))
    assert first is not None and first.text() == "console.log(1)"

    network.serve("/assets/app.js", "console.log(2)")
    stale = await worker.fetch(_get("/assets/app.js"))
    assert stale is not None and stale.text() == "console.log(1)"

    await worker.wait_for_background()
    fresh = await worker.fetch(_get("/assets/app.js"))
    await worker.wait_for_background()

    assert fresh is not None and fresh.text() == "console.log(2)"


@pytest.mark.asyncio
async def test_static_served_from_cache_while_offline(tmp_path: Path) -> None:
    network = _shell_network()
    worker = await _active_worker(tmp_path, network)
    network.online = False

    icon = await worker.fetch(_get("/icon-192x192.svg"))
    await worker.wait_for_background()

    assert icon is not None and icon.text() == "shell /icon-192x192.svg"


@pytest.mark.asyncio
async def test_uncached_static_offline_is_503(tmp_path: Path) -> None:
    network = _shell_network()
    worker = await _active_worker(tmp_path, network)
    network.online = False

    response = await worker.fetch(_get("/assets/missing.woff2"))

    assert response is not None and response.status == 503


@pytest.mark.asyncio
async def test_other_requests_use_dynamic_cache_offline(tmp_path: Path) -> None:
    network = _shell_network()
    network.serve("/config.txt", "feature=on")
    worker = await _active_worker(tmp_path, network)

    await worker.fetch(_get("/config.txt"))
    network.online = False

    cached = await worker.fetch(_get("/config.txt"))
    missing = await worker.fetch(_get("/unknown.txt"))

    assert cached is not None and cached.text() == "feature=on"
    assert missing is not None and missing.status == 503


@pytest.mark.asyncio
async def test_network_first_api_notifies_clients(tmp_path: Path) -> None:
    network = _shell_network()
    network.serve("/api/vehicles", '[{"id": 1, "name": "Truck A"}]')
    clients = WorkerClients()
    page = clients.add(WorkerClient(f"{ORIGIN}/"))
    worker = await _active_worker(
        tmp_path,
        network,
        clients=clients,
        api_cache_policy=ApiCachePolicy.NETWORK_FIRST,
        clock=lambda: 1_000,
    )

    online = await worker.fetch(_get("/api/vehicles"))
    network.online = False
    cached = await worker.fetch(_get("/api/vehicles"))
    missing = await worker.fetch(_get("/api/drivers"))

    assert online is not None and online.json_body() == [{"id": 1, "name": "Truck A"}]
    assert cached is not None and cached.json_body() == [{"id": 1, "name": "Truck A"}]
    assert missing is not None and missing.status == 503
    assert missing.json_body() == {"error": "Offline: data not available", "offline": True}
    assert [(m["type"], m["url"]) for m in page.inbox] == [
        ("NETWORK_SUCCESS", "/api/vehicles"),
        ("CACHE_USED", "/api/vehicles"),
        ("OFFLINE_ERROR", "/api/drivers"),
    ]
    assert all(m["timestamp"] == 1_000 for m in page.inbox)


@pytest.mark.asyncio
async def test_cached_response_is_a_copy(tmp_path: Path) -> None:
    cache = await CacheStorage().open("dynamic-v4")
    original = HttpResponse(body=b"payload", headers={"X-A": "1"})

    await cache.put(_get("/x"), original)
    first = await cache.match(_get("/x"))
    assert first is not None
    first.headers["X-A"] = "changed"

    second = await cache.match(f"{ORIGIN}/x")
    assert second is not None and second.headers["X-A"] == "1"
    with pytest.raises(FleetSyncWorkerError):
        await cache.put(HttpRequest(url=f"{ORIGIN}/x", method="POST"), original)


# ---------------------------------------------------------------------------
# Messages, sync and push
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_clear_cache_replies_success(tmp_path: Path) -> None:
    worker = await _active_worker(tmp_path, _shell_network())
    replies: list[dict] = []

    await worker.message({"type": "CLEAR_CACHE"}, replies.append)

    assert replies == [{"success": True}]
    assert await worker.caches.keys() == []


@pytest.mark.asyncio
async def test_unknown_messages_are_ignored(tmp_path: Path) -> None:
    worker = await _active_worker(tmp_path, _shell_network())

    await worker.message(None)
    await worker.message({"type": "SOMETHING_ELSE"})

    assert worker.state is WorkerState.ACTIVATED


@pytest.mark.asyncio
async def test_sync_tags_post_start_sync(tmp_path: Path) -> None:
    clients = WorkerClients()
    page = clients.add(WorkerClient(f"{ORIGIN}/"))
    worker = await _active_worker(tmp_path, _shell_network(), clients=clients)

    assert await worker.sync("sync-pending-operations") is True
    assert await worker.sync("fuel-record-sync") is True
    assert await worker.sync("unrelated") is False

    assert [(m["type"], m["tag"]) for m in page.inbox] == [
        (MessageType.START_SYNC, "sync-pending-operations"),
        (MessageType.START_SYNC, "fuel-record-sync"),
    ]


@pytest.mark.asyncio
async def test_push_builds_notification_and_forwards_it(tmp_path: Path) -> None:
    shown: list[Notification] = []
    clients = WorkerClients()
    page = clients.add(WorkerClient(f"{ORIGIN}/"))
    worker = await _active_worker(tmp_path, _shell_network(), clients=clients, notification_sink=shown.append)

    notification = await worker.push({"title": "Maintenance due", "url": "/vehicles/3"})

    assert notification is not None
    assert notification.title == "Maintenance due"
    assert notification.body == "New Fleet Manager notification"
    assert shown == [notification]
    assert page.inbox[-1]["type"] == "PUSH_RECEIVED"
    assert page.inbox[-1]["notification"]["url"] == "/vehicles/3"
    assert await worker.push(None) is None


@pytest.mark.asyncio
async def test_push_renders_non_string_fields_as_text(tmp_path: Path) -> None:
    worker = await _active_worker(tmp_path, _shell_network())

    notification = await worker.push({"title": 5, "body": ["oil", "tires"], "url": ""})

    assert notification is not None
    assert notification.title == "5"
    assert notification.body == "['oil', 'tires']"
    assert await worker.push(["not", "a", "mapping"]) is None  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_notification_click_focuses_existing_client(tmp_path: Path) -> None:
    clients = WorkerClients()
    page = clients.add(WorkerClient(f"{ORIGIN}/dashboard"))
    worker = await _active_worker(tmp_path, _shell_network(), clients=clients)

    target = await worker.notification_click(Notification(url="/vehicles/3"))

    assert target is page
    assert page.focused
    assert page.url == f"{ORIGIN}/vehicles/3"
    assert clients.opened_windows == []


@pytest.mark.asyncio
async def test_notification_click_opens_window_without_clients(tmp_path: Path) -> None:
    clients = WorkerClients()
    clients.add(WorkerClient("https://other.example.com/"))
    worker = await _active_worker(tmp_path, _shell_network(), clients=clients)

    opened = await worker.notification_click(Notification(url="/registrations"), action="open")
    dismissed = await worker.notification_click(Notification(), action="close")

    assert opened is not None and opened.focused
    assert clients.opened_windows == [f"{ORIGIN}/registrations"]
    assert dismissed is None


def test_503_json_body_is_valid_json() -> None:
    response = HttpResponse.service_unavailable_json({"error": "x", "offline": True})

    assert response.status == 503
    assert json.loads(response.body) == {"error": "x", "offline": True}
