"""Cache node run configuration and its reconciliation against pushed updates."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from .models import Request, RequestHandler

logger = logging.getLogger(__name__)


class HeaderRewriteOp(str, Enum):
    ADD = "add"
    OVERWRITE = "overwrite"
    DELETE = "delete"


class CacheNodeType(str, Enum):
    EDGE = "edge"
    MID = "mid"


@dataclass
class RewriteRule:
    header_name: str
    operation: HeaderRewriteOp
    value: str = ""


@dataclass
class DeliveryService:
    name: str
    client_url: str
    origin_url: str
    rewrite_rules: list[RewriteRule] = field(default_factory=list)


@dataclass
class DeliveryServices:
    version: int = 0
    service_list: list[DeliveryService] = field(default_factory=list)


@dataclass
class CacheNode:
    ip: str
    port: int
    node_type: CacheNodeType = CacheNodeType.EDGE
    parent_ip: str = ""
    parent_port: int = 0


class DSLookupError(LookupError):
    """No delivery service matches a request URL."""


def _rule_to_dict(rule: RewriteRule) -> dict[str, Any]:
    return {"headerName": rule.header_name, "operation": rule.operation.value, "value": rule.value}


def _rule_from_dict(data: dict[str, Any]) -> RewriteRule:
    return RewriteRule(
        header_name=data.get("headerName", ""),
        operation=HeaderRewriteOp(data.get("operation")),
        value=data.get("value", ""),
    )


def _service_to_dict(ds: DeliveryService) -> dict[str, Any]:
    return {
        "name": ds.name,
        "clientUrl": ds.client_url,
        "originUrl": ds.origin_url,
        "rewriteRules": [_rule_to_dict(rule) for rule in ds.rewrite_rules],
    }


def _service_from_dict(data: dict[str, Any]) -> DeliveryService:
    return DeliveryService(
        name=data.get("name", ""),
        client_url=data.get("clientUrl", ""),
        origin_url=data.get("originUrl", ""),
        rewrite_rules=[_rule_from_dict(rule) for rule in data.get("rewriteRules") or []],
    )


def _services_to_dict(services: DeliveryServices) -> dict[str, Any]:
    return {
        "version": services.version,
        "serviceList": [_service_to_dict(ds) for ds in services.service_list],
    }


def _services_from_dict(data: dict[str, Any]) -> DeliveryServices:
    return DeliveryServices(
        version=int(data.get("version", 0)),
        service_list=[_service_from_dict(ds) for ds in data.get("serviceList") or []],
    )


def _node_to_dict(node: CacheNode) -> dict[str, Any]:
    return {
        "ip": node.ip,
        "port": node.port,
        "type": node.node_type.value,
        "parentIp": node.parent_ip,
        "parentPort": node.parent_port,
    }


def _node_from_dict(data: dict[str, Any]) -> CacheNode:
    return CacheNode(
        ip=data.get("ip", ""),
        port=int(data.get("port", 0)),
        node_type=CacheNodeType(data.get("type", CacheNodeType.EDGE.value)),
        parent_ip=data.get("parentIp", ""),
        parent_port=int(data.get("parentPort", 0)),
    )


@dataclass
class RunConfig:
    """The node's active configuration, persisted to a JSON file."""

    filename: str
    node: CacheNode | None = None
    service_list: DeliveryServices | None = None
    valid: bool = False
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def is_valid(self) -> bool:
        return self.valid

    def wait_for_valid_config(self, stop_event: threading.Event, interval: float = 1.0) -> None:
        """Block until the configuration is valid; raise InterruptedError if stopped first."""
        while not self.is_valid():
            if stop_event.is_set():
                raise InterruptedError("stopped while waiting for a valid configuration")
            logger.info("Waiting for config to become ready...")
            stop_event.wait(interval)

    def to_dict(self) -> dict[str, Any]:
        return {
            "node": _node_to_dict(self.node) if self.node is not None else None,
            "serviceList": (
                _services_to_dict(self.service_list) if self.service_list is not None else None
            ),
        }

    def save(self) -> None:
        """Write the configuration to its file."""
        with open(self.filename, "w", encoding="utf-8") as handle:
            handle.write(json.dumps(self.to_dict()) + "\n")
        logger.info("Configuration successfully saved to file.")

    def update_config(
        self, node: CacheNode | None = None, service_list: DeliveryServices | None = None
    ) -> None:
        """Replace the given parts, mark valid once both are present, and persist."""
        with self._lock:
            if node is not None:
                self.node = node
            if service_list is not None:
                self.service_list = service_list
            if self.node is not None and self.service_list is not None:
                self.valid = True
            try:
                self.save()
            except OSError as exc:
                logger.error("Error saving configuration to file: %s", exc)

    @property
    def binding_ip(self) -> str:
        return self.node.ip if self.node is not None else ""

    @property
    def binding_port(self) -> int:
        return self.node.port if self.node is not None else 0

    @property
    def parent_ip(self) -> str:
        return self.node.parent_ip if self.node is not None else ""

    @property
    def parent_port(self) -> int:
        return self.node.parent_port if self.node is not None else 0

    def ds_lookup(self, request: Request) -> DeliveryService:
        """Return the first delivery service whose client URL prefixes the request URL."""
        url = request.url_string()
        logger.info("Searching for client URL: %s", url)
        with self._lock:
            services = self.service_list.service_list if self.service_list else []
            for ds in services:
                if url.startswith(ds.client_url):
                    logger.info("Found matching URL: %s", ds.client_url)
                    return ds
        raise DSLookupError("not Found")


def _read_config_file(path: Path) -> dict[str, Any]:
    content = path.read_text(encoding="utf-8")
    if not content:
        raise ValueError(f"config file {path} is empty")
    data = json.loads(content)
    if not isinstance(data, dict):
        raise ValueError(f"config file {path} does not hold a JSON object")
    return data


def load_config(filename: str | Path) -> RunConfig:
    """Load the configuration, creating an empty file if none exists.

    A file that cannot be read or parsed yields an invalid configuration.
    """
    path = Path(filename)
    if not path.exists():
        path.touch()
    config = RunConfig(filename=str(path))
    try:
        data = _read_config_file(path)
        node = _node_from_dict(data["node"]) if data.get("node") else None
        services = _services_from_dict(data["serviceList"]) if data.get("serviceList") else None
    except (OSError, ValueError, TypeError, AttributeError) as exc:
        logger.error("Config file %s not usable: %s", path, exc)
        return config
    config.node = node
    config.service_list = services
    config.valid = True
    logger.info("Config file successfully loaded: %s", path)
    return config


class ConfigReconciler:
    """Applies pushed configuration and invalidates storage for what changed."""

    def __init__(self, config: RunConfig, storage: RequestHandler | None = None) -> None:
        self._config = config
        self._storage = storage
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._threads_lock = threading.Lock()

    @property
    def config(self) -> RunConfig:
        return self._config

    def set_storage(self, storage: RequestHandler | None) -> None:
        self._storage = storage

    def do_background(self, request: Request) -> threading.Thread:
        """Send a request to storage in a background thread."""

        def run() -> None:
            storage = self._storage
            if storage is None:
                logger.error("Storage is not initialized")
                return
            try:
                storage.do(request)
            except Exception:
                logger.exception("Background storage request failed")

        thread = threading.Thread(target=run, daemon=True)
        with self._threads_lock:
            self._threads.append(thread)
        thread.start()
        return thread

    def update_delivery_services(self, service_list: DeliveryServices) -> None:
        """Install a new service list, deleting cached content of changed or removed services."""
        with self._lock:
            old = self._config.service_list
            to_delete = {ds.name: ds for ds in old.service_list} if old is not None else {}
            for new in service_list.service_list:
                previous = to_delete.pop(new.name, None)
                if previous is not None and (
                    previous.client_url != new.client_url
                    or previous.origin_url != new.origin_url
                ):
                    self.do_background(Request(method="DELETE", url=previous.client_url))
            for previous in to_delete.values():
                self.do_background(Request(method="DELETE", url=previous.client_url))
            self._config.update_config(None, service_list)

    def update_cache_node(self, cache_node: CacheNode) -> None:
        """Install new node details, invalidating storage when the same node changes."""
        with self._lock:
            old = self._config.node
            if old is not None and old.ip == cache_node.ip:
                if (
                    old.port != cache_node.port
                    or old.parent_ip != cache_node.parent_ip
                    or old.parent_port != cache_node.parent_port
                ):
                    self.do_background(Request(method="DELETE", url="http://" + old.ip))
            self._config.update_config(cache_node, None)

    def wait(self) -> None:
        """Wait for every background request to finish."""
        with self._threads_lock:
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join()