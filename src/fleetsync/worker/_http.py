"""Request/response value types seen by the cache worker."""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field


class RequestMode(StrEnum):
    NAVIGATE = "navigate"
    SAME_ORIGIN = "same-origin"
    CORS = "cors"
    NO_CORS = "no-cors"


class HttpRequest(BaseModel):
    """An intercepted request. ``url`` is always absolute."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str
    method: str = "GET"
    mode: RequestMode = RequestMode.CORS
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        return f"{parts.scheme}://{parts.netloc}"

    @property
    def cache_key(self) -> tuple[str, str]:
        # Fragments never reach the server, so they do not distinguish entries.
        return (self.method.upper(), self.url.split("#", 1)[0])


class HttpResponse(BaseModel):
    """A complete response. Stored copies are always clones."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: int = 200
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def clone(self) -> HttpResponse:
        return self.model_copy(deep=True)

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json_body(self) -> Any:
        return json.loads(self.body)

    @classmethod
    def service_unavailable_text(cls, message: str) -> HttpResponse:
        return cls(
            status=503,
            status_text="Service Unavailable",
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=message.encode("utf-8"),
        )

    @classmethod
    def service_unavailable_json(cls, payload: dict[str, Any]) -> HttpResponse:
        return cls(
            status=503,
            status_text="Service Unavailable",
            headers={"Content-Type": "application/json"},
            body=json.dumps(payload).encode("utf-8"),
        )
