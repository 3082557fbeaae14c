"""HTTP request and response values and the handler protocols used by the cache node."""

from __future__ import annotations

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Iterable, Iterator, Mapping, Protocol, runtime_checkable
from urllib.parse import urlsplit


def _canonical(name: str) -> str:
    return "-".join(part.capitalize() for part in name.split("-"))


class Headers:
    """Case-insensitive, multi-valued HTTP header map."""

    def __init__(self, initial: Mapping[str, str | Iterable[str]] | None = None) -> None:
        self._values: dict[str, list[str]] = {}
        for name, value in (initial or {}).items():
            if isinstance(value, str):
                self.add(name, value)
            else:
                for item in value:
                    self.add(name, item)

    def get(self, name: str) -> str:
        """Return the first value of a header, or an empty string."""
        values = self._values.get(_canonical(name))
        return values[0] if values else ""

    def get_all(self, name: str) -> list[str]:
        """Return every value of a header."""
        return list(self._values.get(_canonical(name), []))

    def set(self, name: str, value: str) -> None:
        """Replace all values of a header with a single value."""
        self._values[_canonical(name)] = [value]

    def add(self, name: str, value: str) -> None:
        """Append a value to a header."""
        self._values.setdefault(_canonical(name), []).append(value)

    def delete(self, name: str) -> None:
        """Remove a header and all its values."""
        self._values.pop(_canonical(name), None)

    def copy(self) -> Headers:
        """Return an independent copy."""
        duplicate = Headers()
        duplicate._values = {name: list(values) for name, values in self._values.items()}
        return duplicate

    def items(self) -> Iterator[tuple[str, list[str]]]:
        for name, values in self._values.items():
            yield name, list(values)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and _canonical(name) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._values == other._values

    def __repr__(self) -> str:
        return f"Headers({self._values!r})"


@dataclass
class Request:
    """An HTTP request travelling through the cache node."""

    method: str = "GET"
    url: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    host: str | None = None
    remote_addr: str = ""

    def __post_init__(self) -> None:
        if self.host is None:
            self.host = urlsplit(self.url).netloc

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme

    @property
    def url_host(self) -> str:
        return urlsplit(self.url).netloc

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    def url_string(self) -> str:
        """Return the absolute URL, filling scheme and host from the request if missing."""
        parts = urlsplit(self.url)
        if parts.netloc:
            return self.url
        scheme = parts.scheme or "http"
        return f"{scheme}://{self.host}{self.url}"

    def clone(self) -> Request:
        """Return a copy whose headers can be changed independently."""
        return Request(
            method=self.method,
            url=self.url,
            headers=self.headers.copy(),
            body=self.body,
            host=self.host,
            remote_addr=self.remote_addr,
        )


@dataclass
class Response:
    """An HTTP response returned by a handler."""

    status_code: int = 200
    status: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes | None = None
    content_length: int | None = None
    request: Request | None = None

    def __post_init__(self) -> None:
        if not self.status:
            try:
                self.status = f"{self.status_code} {HTTPStatus(self.status_code).phrase}"
            except ValueError:
                self.status = str(self.status_code)
        if self.content_length is None:
            self.content_length = len(self.body or b"")

    def read(self) -> bytes:
        """Return the response body, empty when there is none."""
        return self.body or b""


@runtime_checkable
class RequestHandler(Protocol):
    """Anything that turns a request into a response."""

    def do(self, request: Request) -> Response:
        """Handle a request."""


@runtime_checkable
class CachedRequestHandler(RequestHandler, Protocol):
    """A handler that can also refetch a resource whose cached copy is stale."""

    def redo(self, request: Request, old_response: Response) -> Response:
        """Fetch a resource again, given the stale response."""