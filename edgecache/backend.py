"""Fetches content from the origin or parent, rewrites headers and saves a copy to storage."""

from __future__ import annotations

import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from urllib.parse import urlsplit, urlunsplit

from .config import DeliveryService, HeaderRewriteOp, RunConfig
from .events import ObservabilityHandler
from .models import Headers, Request, RequestHandler, Response

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10.0


def _build_response(
    status_code: int, reason: str, header_items: list[tuple[str, str]], body: bytes, request: Request
) -> Response:
    headers = Headers()
    for name, value in header_items:
        headers.add(name, value)
    status = f"{status_code} {reason}".strip()
    return Response(
        status_code=status_code,
        status=status,
        headers=headers,
        body=body,
        content_length=len(body),
        request=request,
    )


def get_object(request: Request, proxy_url: str | None = None) -> Response:
    """Perform the request, through the proxy when one is given.

    Responses with error status codes are returned, not raised; failures to
    reach the server raise OSError.
    """
    logger.info("BE Fetcher: %s %s", request.method, request.url_string())
    proxies = {"http": proxy_url, "https": proxy_url} if proxy_url else {}
    opener = urllib.request.build_opener(urllib.request.ProxyHandler(proxies))
    outgoing = urllib.request.Request(
        request.url_string(),
        data=request.body or None,
        method=request.method,
    )
    for name, values in request.headers.items():
        if name.lower() == "host":
            continue
        outgoing.add_header(name, ", ".join(values))
    try:
        with opener.open(outgoing, timeout=FETCH_TIMEOUT) as reply:
            body = reply.read()
            response = _build_response(
                reply.status, reply.reason, list(reply.headers.items()), body, request
            )
    except urllib.error.HTTPError as exc:
        body = exc.read() or b""
        items = list(exc.headers.items()) if exc.headers is not None else []
        response = _build_response(exc.code, str(exc.reason), items, body, request)
        exc.close()
    except OSError as exc:
        logger.error("BE Fetcher: Error during HTTP request: %s", exc)
        raise
    logger.info("BE Fetcher: Received HTTP response with status %s", response.status)
    return response


def parent_mapper(request: Request, config: RunConfig) -> tuple[Request, DeliveryService]:
    """Find the request's delivery service and address the request to its origin.

    When a parent is configured the URL is left alone, as the parent is used
    as a proxy. Raises DSLookupError when no delivery service matches.
    """
    logger.info("BE ParentMapper: Received a request %s", request.url_string())
    delivery_service = config.ds_lookup(request)
    mapped = request.clone()
    mapped.url = request.url_string()
    if not config.parent_ip:
        origin = urlsplit(delivery_service.origin_url)
        parts = urlsplit(mapped.url)
        mapped.url = urlunsplit(
            (origin.scheme, origin.netloc, parts.path, parts.query, parts.fragment)
        )
        logger.info("BE ParentMapper: Assigned Origin url %s", mapped.url)
    mapped.host = urlsplit(mapped.url).netloc
    return mapped, delivery_service


def header_rewriter(
    request: Request, response: Response, delivery_service: DeliveryService
) -> Response:
    """Apply the delivery service's header rewrite rules to the response in place."""
    logger.info("BE HeaderRewriter got the request: %s", request.url_string())
    for rule in delivery_service.rewrite_rules:
        if rule.operation == HeaderRewriteOp.ADD:
            response.headers.set(rule.header_name, rule.value)
        elif rule.operation == HeaderRewriteOp.OVERWRITE:
            if rule.header_name in response.headers:
                response.headers.set(rule.header_name, rule.value)
        elif rule.operation == HeaderRewriteOp.DELETE:
            response.headers.delete(rule.header_name)
        else:
            logger.error("BE HeaderRewriter invalid Action: %r", rule.operation)
    logger.info(
        "BE updated HeaderRewriter headers: %s",
        "".join(f"{name}: {value}\n" for name, values in response.headers.items() for value in values),
    )
    return response


def fork_response(response: Response) -> tuple[Response, Response]:
    """Return the response together with an independent copy of it for storage."""
    duplicate = Response(
        status_code=response.status_code,
        status=response.status,
        headers=response.headers.copy(),
        body=response.body,
        content_length=response.content_length,
        request=response.request,
    )
    return response, duplicate


def save(response: Response, request: Request, store: RequestHandler | None) -> Response | None:
    """POST the response to the store; return the store's answer, or None if nothing was saved."""
    url = request.url_string()
    if store is None:
        logger.info("BE SAVER Nil Store ignoring save %s", url)
        return None
    post = Request(method="POST", url=url, headers=response.headers.copy(), body=response.read())
    try:
        stored = store.do(post)
    except Exception as exc:  # the store is pluggable; any failure only skips caching
        logger.error("BE SAVER Error saving to store: %s", exc)
        return None
    logger.info("BE Saver Success %s status %s", url, stored.status_code)
    return stored


@dataclass
class Backend:
    """Fetches missing or stale content and stores a copy in the background."""

    config: RunConfig
    store: RequestHandler | None = None
    observability: ObservabilityHandler | None = None
    proxy_url: str | None = None
    _threads: list[threading.Thread] = field(default_factory=list, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _fetch(self, request: Request) -> Response:
        mapped, delivery_service = parent_mapper(request, self.config)
        response = get_object(mapped, self.proxy_url)
        response = header_rewriter(request, response, delivery_service)
        response, copy = fork_response(response)
        thread = threading.Thread(target=save, args=(copy, request, self.store), daemon=True)
        with self._lock:
            self._threads.append(thread)
        thread.start()
        return response

    def do(self, request: Request) -> Response:
        """Fetch the resource and save it to storage in the background."""
        return self._fetch(request)

    def redo(self, request: Request, old_response: Response) -> Response:
        """Fetch a resource again whose stored copy has expired."""
        return self._fetch(request)

    def wait(self) -> None:
        """Wait for every background save to finish."""
        with self._lock:
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join()


def init_backend(
    config: RunConfig,
    storage: RequestHandler | None = None,
    observability: ObservabilityHandler | None = None,
) -> Backend:
    """Create the backend, routing through the parent node when one is configured."""
    proxy_url = None
    if config.parent_ip:
        proxy_url = f"http://{config.parent_ip}:{config.parent_port}"
        logger.info("BE ParentMapper: Assigned Parent url %s", proxy_url)
    return Backend(config=config, store=storage, observability=observability, proxy_url=proxy_url)