"""Transport-layer cache worker.

The worker runs independently of the main-thread components: it shares no
state with :class:`~fleetsync.store.LocalStore` and talks to clients only
through :mod:`fleetsync.messages`.
"""

from fleetsync.worker._http import HttpRequest, HttpResponse, RequestMode
from fleetsync.worker.cache_storage import Cache, CacheStorage
from fleetsync.worker.network import AiohttpNetwork, Network
from fleetsync.worker.policy import RequestClass, classify_request, is_static_asset
from fleetsync.worker.service_worker import Notification, ServiceWorker, WorkerState, navigation_request

__all__ = [
    "AiohttpNetwork",
    "Cache",
    "CacheStorage",
    "HttpRequest",
    "HttpResponse",
    "Network",
    "Notification",
    "RequestClass",
    "RequestMode",
    "ServiceWorker",
    "WorkerState",
    "classify_request",
    "is_static_asset",
    "navigation_request",
]
