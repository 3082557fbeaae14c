"""Looks a request up in storage, falling back to the backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .models import CachedRequestHandler, Request, RequestHandler, Response
from .validator import Validator

logger = logging.getLogger(__name__)


def _error_response(request: Request, message: str) -> Response:
    body = message.encode()
    return Response(
        status_code=500,
        status="500 Internal Server Error",
        headers=request.headers.copy(),
        body=body,
        content_length=len(body),
        request=request,
    )


@dataclass
class Finder:
    """Serves from storage through the validator, or from the backend on a miss."""

    storage_path: RequestHandler
    backend_path: CachedRequestHandler
    validate_path: Validator
    total_cnt: int = 0
    got_from_storage_cnt: int = 0
    got_from_backend_cnt: int = 0
    failed_cnt: int = 0

    def _fail(self, request: Request, message: str) -> Response:
        self.failed_cnt += 1
        return _error_response(request, message)

    def do(self, request: Request) -> Response:
        """Return a response for the request; failures become 500 responses."""
        self.total_cnt += 1
        try:
            stored = self.storage_path.do(request)
        except Exception as exc:  # storage is pluggable; any failure becomes a 500
            logger.error("FE finder: storage failed: %s", exc)
            return self._fail(request, str(exc))

        if stored.status_code == 200:
            try:
                validated = self.validate_path.do(request, stored)
            except Exception as exc:
                logger.error("FE finder: validator failed: %s", exc)
                return self._fail(request, str(exc))
            self.got_from_storage_cnt += 1
            return validated

        if stored.status_code == 500:
            logger.info("FE finder: storage internal server error")
            self.failed_cnt += 1
            return stored

        if stored.status_code == 404:
            logger.info("FE finder: not in storage, asking backend")
            try:
                fetched = self.backend_path.do(request)
            except Exception as exc:
                logger.error("FE finder: backend failed: %s", exc)
                return self._fail(request, str(exc))
            self.got_from_backend_cnt += 1
            return fetched

        logger.error("FE finder: unsupported storage status code %d", stored.status_code)
        return self._fail(request, "Internal Server Error")