"""Decides whether a stored response is still fresh, revalidating stale ones."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from email.utils import formatdate

from .models import CachedRequestHandler, Headers, Request, Response

logger = logging.getLogger(__name__)

SERVER_AGENT = "EdgeCache Server Agent/1.0"
CACHED_MARKER = "X-Is-Cached"

_INTEGER = re.compile(r"[+-]?[0-9]+")


class ValidationError(ValueError):
    """A stored response carries freshness headers that cannot be interpreted."""


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return int(text)


def _error_response(message: str) -> Response:
    headers = Headers()
    headers.set("Accept", "*/*")
    headers.set("Date", formatdate(usegmt=True))
    headers.set("User-Agent", SERVER_AGENT)
    body = message.encode()
    return Response(
        status_code=500,
        status="500 Internal Server Error",
        headers=headers,
        body=body,
        content_length=len(body),
    )


def copy_response(src: Response, dest: Response) -> Response:
    """Copy headers, status, request and body of one response into another."""
    for name, values in src.headers.items():
        for value in values:
            dest.headers.add(name, value)
    dest.status_code = src.status_code
    dest.status = src.status
    dest.request = src.request
    body = src.read()
    dest.body = body
    dest.content_length = len(body)
    return dest


@dataclass
class Validator:
    """Serves fresh stored content and refetches expired content from the backend."""

    backend_request: CachedRequestHandler | None = None
    resp_from_backend: Response | None = None
    expired_cnt: int = 0
    usable_cnt: int = 0

    def is_resource_usable(self, response: Response, request: Request) -> bool:
        """Check freshness from Age and Cache-Control max-age.

        A fresh response is marked as cached; an expired one is fetched again
        and the fresh copy kept in resp_from_backend. Raises ValidationError on
        malformed headers; backend failures propagate.
        """
        age = 0
        age_text = response.headers.get("Age")
        if age_text:
            try:
                age = _parse_int(age_text)
            except ValueError as exc:
                raise ValidationError(f"invalid Age header: {exc}") from exc

        max_age = 0
        cache_control = response.headers.get("Cache-Control")
        if cache_control:
            for directive in cache_control.split(","):
                directive = directive.strip()
                if directive.startswith("max-age="):
                    try:
                        max_age = _parse_int(directive[len("max-age="):])
                    except ValueError as exc:
                        raise ValidationError(f"invalid Max-Age value: {exc}") from exc

        if max_age > 0 and age <= max_age:
            response.headers.add(CACHED_MARKER, "1")
            self.usable_cnt += 1
            return True

        if max_age < age or max_age == 0:
            logger.info("FE validator: resource expired, max-age %d, age %d", max_age, age)
            self.expired_cnt += 1
            if self.backend_request is None:
                raise ValidationError("no backend available to refetch expired resource")
            fresh = self.backend_request.redo(request, response)
            if fresh.status_code == 404:
                logger.info("FE validator: backend did not find the resource")
            self.resp_from_backend = copy_response(fresh, Response(headers=Headers()))
            return True

        logger.info("FE validator: resource is not usable")
        return False

    def do(self, request: Request, stored_response: Response) -> Response:
        """Return the stored response, a refetched one, or a 500 response."""
        self.resp_from_backend = None
        try:
            usable = self.is_resource_usable(stored_response, request)
        except Exception as exc:  # the backend is pluggable; any failure becomes a 500
            logger.error("FE validator: %s", exc)
            return _error_response(str(exc))

        fresh = self.resp_from_backend
        if usable and (fresh is None or fresh.status_code == 500):
            return stored_response
        if usable and fresh is not None and 200 <= fresh.status_code < 500:
            return fresh
        return _error_response("Internal Server Error")