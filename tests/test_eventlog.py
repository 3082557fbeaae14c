import re

import pytest

from edgecache.eventlog import EventLogError, log_event, log_event_to_file
from edgecache.events import (
    BackendEvent,
    FrontendEvent,
    StorageDiskMetricsEvent,
    StorageEvent,
    format_backend_event,
    format_frontend_event,
    format_storage_disk_metrics_event,
    format_storage_event,
)


def test_log_event_to_file_writes_prefixed_line(tmp_path):
    path = log_event_to_file("FrontendEvent", "hello", tmp_path)
    assert path == tmp_path / "frontend.log"
    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert re.fullmatch(r"FrontendEvent: \d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2} hello", lines[0])


def test_log_event_to_file_appends(tmp_path):
    log_event_to_file("BackendEvent", "first", tmp_path)
    log_event_to_file("BackendEvent", "second", tmp_path)
    lines = (tmp_path / "backend.log").read_text(encoding="utf-8").splitlines()
    assert [line.rsplit(" ", 1)[-1] for line in lines] == ["first", "second"]


def test_log_event_to_file_unknown_type(tmp_path):
    with pytest.raises(EventLogError):
        log_event_to_file("MysteryEvent", "x", tmp_path)
    assert list(tmp_path.iterdir()) == []


def test_log_event_to_file_missing_directory(tmp_path):
    with pytest.raises(EventLogError):
        log_event_to_file("StorageEvent", "x", tmp_path / "missing")


@pytest.mark.parametrize(
    "event, file_name, formatter",
    [
        (FrontendEvent(url="/f", status_code=200), "frontend.log", format_frontend_event),
        (BackendEvent(url="/b", status_code=502), "backend.log", format_backend_event),
        (StorageEvent(url="/s", operation="Write"), "storage.log", format_storage_event),
        (StorageDiskMetricsEvent(disk_usage=3, total_contents=4), "storagedisk.log",
         format_storage_disk_metrics_event),
    ],
)
def test_log_event_dispatches_by_type(tmp_path, event, file_name, formatter):
    path = log_event(event, tmp_path)
    assert path == tmp_path / file_name
    assert path.read_text(encoding="utf-8").rstrip("\n").endswith(formatter(event))


def test_log_event_unknown_object(tmp_path):
    with pytest.raises(TypeError):
        log_event(object(), tmp_path)


def test_log_event_write_failure_returns_none(tmp_path):
    assert log_event(FrontendEvent(), tmp_path / "missing") is None