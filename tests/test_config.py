import json
import threading

import pytest

from edgecache.config import (
    CacheNode,
    CacheNodeType,
    ConfigReconciler,
    DeliveryService,
    DeliveryServices,
    DSLookupError,
    HeaderRewriteOp,
    RewriteRule,
    RunConfig,
    load_config,
)
from edgecache.models import Request, Response


class RecordingStorage:
    def __init__(self):
        self.requests = []
        self._lock = threading.Lock()

    def do(self, request):
        with self._lock:
            self.requests.append(request)
        return Response(status_code=200)


def make_services():
    rules = [RewriteRule("Backendheader", HeaderRewriteOp.ADD, "some value")]
    return DeliveryServices(
        version=1,
        service_list=[
            DeliveryService("DS1", "http://example.com", "http://originurl.com", rules),
            DeliveryService("DS2", "http://other.example.com", "http://origin2.example.com"),
        ],
    )


def make_node():
    return CacheNode("192.168.1.1", 8080, CacheNodeType.EDGE, "10.0.0.1", 9000)


def test_load_config_creates_missing_file_and_is_invalid(tmp_path):
    path = tmp_path / "config.json"
    config = load_config(path)
    assert path.exists()
    assert not config.is_valid()


def test_load_config_bad_json_is_invalid(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json")
    assert not load_config(path).is_valid()


def test_update_config_becomes_valid_and_round_trips(tmp_path):
    path = tmp_path / "config.json"
    config = RunConfig(filename=str(path))
    config.update_config(make_node(), None)
    assert not config.is_valid()
    config.update_config(None, make_services())
    assert config.is_valid()

    loaded = load_config(path)
    assert loaded.is_valid()
    assert loaded.node == make_node()
    assert loaded.service_list == make_services()
    assert json.loads(path.read_text()) == config.to_dict()


def test_properties_follow_node():
    config = RunConfig(filename="unused", node=make_node())
    assert config.binding_ip == "192.168.1.1"
    assert config.binding_port == 8080
    assert config.parent_ip == "10.0.0.1"
    assert config.parent_port == 9000
    empty = RunConfig(filename="unused")
    assert (empty.binding_ip, empty.parent_port) == ("", 0)


def test_ds_lookup_prefix_match():
    config = RunConfig(filename="unused", service_list=make_services())
    ds = config.ds_lookup(Request(url="http://example.com/path/file"))
    assert ds.name == "DS1"
    ds2 = config.ds_lookup(Request(url="/x", host="other.example.com"))
    assert ds2.name == "DS2"


def test_ds_lookup_not_found():
    config = RunConfig(filename="unused", service_list=make_services())
    with pytest.raises(DSLookupError, match="not Found"):
        config.ds_lookup(Request(url="http://unknown.example.com/"))


def test_ds_lookup_without_services():
    with pytest.raises(DSLookupError):
        RunConfig(filename="unused").ds_lookup(Request(url="http://example.com"))


def test_wait_for_valid_config_stopped():
    stop = threading.Event()
    stop.set()
    with pytest.raises(InterruptedError):
        RunConfig(filename="unused").wait_for_valid_config(stop, 0.01)


def test_wait_for_valid_config_returns_once_valid():
    config = RunConfig(filename="unused", valid=True)
    config.wait_for_valid_config(threading.Event(), 0.01)
    assert config.is_valid()


def test_reconciler_deletes_changed_and_removed_services(tmp_path):
    config = RunConfig(filename=str(tmp_path / "c.json"), service_list=make_services())
    storage = RecordingStorage()
    reconciler = ConfigReconciler(config, storage)
    new_list = DeliveryServices(
        version=2,
        service_list=[
            DeliveryService("DS1", "http://new.example.com", "http://originurl.com"),
        ],
    )
    reconciler.update_delivery_services(new_list)
    reconciler.wait()
    urls = sorted(r.url for r in storage.requests)
    assert urls == sorted(["http://example.com", "http://other.example.com"])
    assert all(r.method == "DELETE" for r in storage.requests)
    assert config.service_list == new_list


def test_reconciler_unchanged_service_issues_nothing(tmp_path):
    config = RunConfig(filename=str(tmp_path / "c.json"), service_list=make_services())
    storage = RecordingStorage()
    reconciler = ConfigReconciler(config, storage)
    reconciler.update_delivery_services(make_services())
    reconciler.wait()
    assert storage.requests == []


def test_reconciler_cache_node_change_deletes(tmp_path):
    config = RunConfig(filename=str(tmp_path / "c.json"), node=make_node())
    storage = RecordingStorage()
    reconciler = ConfigReconciler(config, storage)
    changed = CacheNode("192.168.1.1", 8081, CacheNodeType.EDGE, "10.0.0.1", 9000)
    reconciler.update_cache_node(changed)
    reconciler.wait()
    assert [r.url for r in storage.requests] == ["http://192.168.1.1"]
    assert config.node == changed


def test_reconciler_new_node_issues_nothing(tmp_path):
    config = RunConfig(filename=str(tmp_path / "c.json"))
    storage = RecordingStorage()
    reconciler = ConfigReconciler(config, storage)
    reconciler.update_cache_node(make_node())
    reconciler.wait()
    assert storage.requests == []
    assert config.node == make_node()


def test_do_background_uses_storage_set_later(tmp_path):
    config = RunConfig(filename=str(tmp_path / "c.json"))
    reconciler = ConfigReconciler(config)
    storage = RecordingStorage()
    reconciler.set_storage(storage)
    reconciler.do_background(Request(method="DELETE", url="http://example.com"))
    reconciler.wait()
    assert [r.method for r in storage.requests] == ["DELETE"]