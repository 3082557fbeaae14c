# edgecache

`edgecache` holds the core of a cache node for a small content delivery
network. Given an HTTP request, it works out which delivery service the
request belongs to, and answers it from local storage or from the origin
(directly, or through a parent cache acting as a proxy). It records what it
did as events, log lines and Prometheus-style metrics.

It needs nothing beyond the Python standard library and runs on Python 3.10
and later.

## How a request is handled

1. **Finder** (`edgecache.finder.Finder`) asks storage first.
   - A stored hit (200) goes to the validator.
   - A miss (404) goes to the backend.
   - A storage 500 is returned as it is.
   - Any other status, and any exception from storage, validator or backend,
     becomes a 500 response whose body is the error message.
2. **Validator** (`edgecache.validator.Validator`) compares the `Age` header
   with `Cache-Control: max-age`.
   - A fresh object is served from storage and marked with `X-Is-Cached: 1`.
   - A stale one, or one without `max-age`, is fetched again with the
     backend's `redo`.
   - Malformed `Age` or `max-age` values give a 500 response.
3. **Backend** (`edgecache.backend.Backend`) does the following:
   - maps the request to the delivery service's origin, or leaves the URL
     alone when a parent cache is configured and sends it through that
     parent as a proxy (`parent_mapper`, `get_object`);
   - applies the delivery service's header rewrite rules (`header_rewriter`);
   - makes an independent copy of the response for storage (`fork_response`);
   - POSTs that copy to storage on a background thread (`save`).
     `Backend.wait()` waits for those saves to finish.

`Backend.do` raises `edgecache.config.DSLookupError` when no delivery
service matches the request, and `OSError` when the origin or parent cannot
be reached. Error statuses from the origin come back as responses.

```python
from edgecache.backend import init_backend
from edgecache.config import load_config
from edgecache.finder import Finder
from edgecache.mock import RequestHandlerMock
from edgecache.models import Request
from edgecache.validator import Validator

config = load_config("config.json")
storage = RequestHandlerMock(http_status_code=404)
backend = init_backend(config, storage)
finder = Finder(storage, backend, Validator(backend_request=backend))

response = finder.do(Request(method="GET", url="http://example.com/index.html"))
print(response.status_code, response.read())
backend.wait()
```

## Configuration

A cache node keeps its configuration in a JSON file with two parts:

- `node`: the cache node itself (`ip`, `port`, `type`, and optionally
  `parentIp` and `parentPort`).
- `serviceList`: a `version` and the delivery services. Each service has a
  `name`, a `clientUrl`, an `originUrl` and its `rewriteRules`
  (`headerName`, `operation` of `add`, `overwrite` or `delete`, and `value`).

```python
from edgecache.config import ConfigReconciler, load_config

config = load_config("config.json")   # created empty if it does not exist
print(config.is_valid())              # True once node and services are known
```

If the file is empty or cannot be parsed, the configuration starts out
invalid. `RunConfig.wait_for_valid_config(stop_event, interval)` blocks until
the configuration becomes valid, and raises `InterruptedError` if the stop
event is set first. `RunConfig.update_config(node, service_list)` replaces
the given parts, marks the configuration valid once both are present, and
saves it to its file.

A `ConfigReconciler` applies new configuration while the node is running.
With each update it:

- sends background `DELETE` requests to storage for delivery services that
  were removed or whose client or origin URL changed, and for a cache node
  with the same IP whose listening address or parent changed;
- saves the new configuration to the same file.

```python
reconciler = ConfigReconciler(config)
reconciler.set_storage(storage)
reconciler.update_delivery_services(new_services)
reconciler.update_cache_node(new_node)
reconciler.wait()   # wait for the background requests to finish
```

`RunConfig.ds_lookup(request)` returns the first service whose client URL is
a prefix of the request URL, and raises `DSLookupError` if none matches.

## Storage handlers

A storage handler is any `edgecache.models.RequestHandler`, that is, any
object with a `do(request)` method returning a `Response`. The finder sends
it `GET` requests, the backend sends `POST` requests carrying the body to
store, and the reconciler sends `DELETE` requests.

`edgecache.mock.RequestHandlerMock` is a ready-made stand-in: it answers
`GET` with fixed content and a fixed status, and raises `ValueError` when a
`PUT` or `POST` body differs from the one it expects.

## Requests and responses

`edgecache.models` defines the small HTTP vocabulary used throughout:

- `Headers` is case-insensitive and keeps several values per name. It has
  `get`, `get_all`, `set`, `add`, `delete` and `copy`.
- `Request` exposes `url_string()` and `clone()`.
- `Response` exposes `read()`.

## Observability

Components report four kinds of event from `edgecache.events`:
`FrontendEvent`, `BackendEvent`, `StorageEvent` and
`StorageDiskMetricsEvent`.

`edgecache.observability.init_observability(stop_event, 9090, "logs")`
creates an `ObservabilityHandlerImpl`, registers its metrics and starts two
worker threads. Each queued event:

- updates the gauges and histograms in `edgecache.metrics.CdnMetrics`;
- appends a line to a per-type log file in the log directory through
  `edgecache.eventlog`: `frontend.log`, `backend.log`, `storage.log` or
  `storagedisk.log`.

The second argument is the TCP listening number of a small HTTP server that
serves the metrics in Prometheus text format at `/metrics`; 0 disables it.
`MetricsRegistry.render()` returns the same text directly. Metric names carry
the `namespace_mycdn_` prefix, for example
`namespace_mycdn_fe_total_req_count`, `namespace_mycdn_be_response_time` and
`namespace_mycdn_storage_total_contents`.

## What this package does not do

- It has no client-facing HTTP server: nothing here accepts client
  connections and hands them to the finder. Callers build `Request` objects
  and call `Finder.do` themselves.
- It does not merge concurrent requests for the same object; each call to
  `Finder.do` goes to storage and, on a miss, to the origin.
- It has no storage implementation of its own, only the interface and the
  test stand-in.
- It has no management API for pushing configuration remotely; updates go
  through `ConfigReconciler` in-process.
- It installs no command-line program.