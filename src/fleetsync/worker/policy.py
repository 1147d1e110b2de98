"""Request classification for the cache worker."""

from __future__ import annotations

import posixpath
from enum import StrEnum

from fleetsync._constants import STATIC_EXTENSIONS
from fleetsync.config import ApiCachePolicy
from fleetsync.worker._http import HttpRequest, RequestMode


class RequestClass(StrEnum):
    PASSTHROUGH = "passthrough"
    """Not intercepted; goes straight to the network."""
    API = "api"
    NAVIGATION = "navigation"
    STATIC = "static"
    OTHER = "other"


def is_static_asset(path: str) -> bool:
    _root, ext = posixpath.splitext(path)
    return ext.lower() in STATIC_EXTENSIONS


def classify_request(
    request: HttpRequest,
    *,
    origin: str,
    api_prefix: str,
    api_policy: ApiCachePolicy = ApiCachePolicy.BYPASS,
) -> RequestClass:
    """Decide which caching strategy handles *request*.

    Only same-origin GETs are cached. API paths are passed through unless
    the worker runs the network-first API policy.
    """
    if request.method.upper() != "GET":
        return RequestClass.PASSTHROUGH
    if request.origin != origin:
        return RequestClass.PASSTHROUGH
    if request.path.startswith(api_prefix):
        if api_policy is ApiCachePolicy.NETWORK_FIRST:
            return RequestClass.API
        return RequestClass.PASSTHROUGH
    if request.mode is RequestMode.NAVIGATE:
        return RequestClass.NAVIGATION
    if is_static_asset(request.path):
        return RequestClass.STATIC
    return RequestClass.OTHER
