"""Client configuration for fleetsync."""

from __future__ import annotations

import dataclasses
import enum
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

from fleetsync import _constants
from fleetsync.exceptions import FleetSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _default_data_dir() -> Path:
    return Path.home() / ".fleetsync"


class ApiCachePolicy(enum.StrEnum):
    """How the cache worker treats requests under the API prefix.

    ``BYPASS`` leaves API freshness to :class:`~fleetsync.fetcher.FallbackFetcher`.
    ``NETWORK_FIRST`` caches API responses at the transport layer and
    notifies clients which strategy resolved each request.
    """

    BYPASS = "bypass"
    NETWORK_FIRST = "network_first"


@dataclasses.dataclass(frozen=True)
class FleetSyncConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Origin of the fleet REST API (scheme + host + optional port).
    data_dir : Path
        Directory holding the local persistence store.
    registrations_endpoint : str
        Canonical endpoint pending registrations are POSTed to.
    ping_endpoint : str
        Endpoint used by the connectivity probe (HEAD request).
    probe_timeout : float
        Seconds before a connectivity probe counts as offline.
    auto_sync : bool
        Drain the pending queue automatically on an offline → online
        transition.
    sync_interval : float or None
        Seconds between background checks for pending registrations while
        online. None or 0 disables the periodic check.
    max_sync_retries : int
        Failed submissions after which a queued record is marked as a sync
        error and no longer retried.
    static_cache_version : str
        Version suffix for the static and dynamic cache buckets.
    api_cache_version : str
        Version suffix for the API cache bucket.
    api_cache_policy : ApiCachePolicy
        Worker policy for API requests. One policy per deployment.
    shell_urls : tuple[str, ...]
        URLs pre-cached when the worker installs.
    """

    base_url: str = _constants.BASE_URL
    data_dir: Path = dataclasses.field(default_factory=_default_data_dir)
    registrations_endpoint: str = _constants.REGISTRATIONS_ENDPOINT
    ping_endpoint: str = _constants.PING_ENDPOINT
    probe_timeout: float = 5.0
    auto_sync: bool = True
    sync_interval: float | None = None
    max_sync_retries: int = _constants.MAX_SYNC_RETRIES
    static_cache_version: str = _constants.STATIC_CACHE_VERSION
    api_cache_version: str = _constants.API_CACHE_VERSION
    api_cache_policy: ApiCachePolicy = ApiCachePolicy.BYPASS
    api_prefix: str = _constants.API_PREFIX
    shell_urls: tuple[str, ...] = _constants.SHELL_URLS

    def __post_init__(self) -> None:
        parts = urlsplit(self.base_url)
        if parts.scheme not in {"http", "https"} or not parts.netloc:
            raise FleetSyncConfigError(f"base_url must be an absolute http(s) URL, got {self.base_url!r}")
        if self.probe_timeout < 0:
            raise FleetSyncConfigError("probe_timeout must be >= 0")
        if self.sync_interval is not None and self.sync_interval < 0:
            raise FleetSyncConfigError("sync_interval must be >= 0")
        if self.max_sync_retries < 1:
            raise FleetSyncConfigError("max_sync_retries must be >= 1")
        if not isinstance(self.data_dir, Path):
            object.__setattr__(self, "data_dir", Path(self.data_dir))
        if not isinstance(self.api_cache_policy, ApiCachePolicy):
            try:
                object.__setattr__(self, "api_cache_policy", ApiCachePolicy(self.api_cache_policy))
            except ValueError as exc:
                raise FleetSyncConfigError(f"Unknown api_cache_policy: {self.api_cache_policy!r}") from exc

    @property
    def origin(self) -> str:
        """Scheme + host (+ port) of :attr:`base_url`."""
        parts = urlsplit(self.base_url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def static_cache_name(self) -> str:
        return _constants.static_cache_name(self.static_cache_version)

    @property
    def dynamic_cache_name(self) -> str:
        return _constants.dynamic_cache_name(self.static_cache_version)

    @property
    def api_cache_name(self) -> str:
        return _constants.api_cache_name(self.api_cache_version)

    @classmethod
    def from_env(cls, **overrides: Any) -> FleetSyncConfig:
        """Create configuration from environment variables.

        Reads optional ``FLEETSYNC_*`` variables. Explicit keyword
        arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "FLEETSYNC_BASE_URL": "base_url",
            "FLEETSYNC_REGISTRATIONS_ENDPOINT": "registrations_endpoint",
            "FLEETSYNC_PING_ENDPOINT": "ping_endpoint",
            "FLEETSYNC_CACHE_VERSION": "static_cache_version",
            "FLEETSYNC_API_CACHE_VERSION": "api_cache_version",
            "FLEETSYNC_API_CACHE_POLICY": "api_cache_policy",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        data_dir = env.get("FLEETSYNC_DATA_DIR")
        if data_dir is not None:
            config_kwargs["data_dir"] = Path(data_dir).expanduser()

        for env_key, field_name, parse in (
            ("FLEETSYNC_PROBE_TIMEOUT", "probe_timeout", float),
            ("FLEETSYNC_SYNC_INTERVAL", "sync_interval", float),
            ("FLEETSYNC_MAX_SYNC_RETRIES", "max_sync_retries", int),
        ):
            raw = env.get(env_key)
            if raw is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = parse(raw)
            except ValueError as exc:
                raise FleetSyncConfigError(f"{env_key} is not a number: {raw!r}") from exc

        if "auto_sync" not in overrides:
            config_kwargs["auto_sync"] = _env_bool(env.get("FLEETSYNC_AUTO_SYNC"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
