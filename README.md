# meshplane

meshplane holds the decision-making core of a local service-mesh dataplane.
It covers five areas:

- **Configuration** (`meshplane.config`, `meshplane.loader`). Settings come from
  built-in defaults, a YAML file, environment variables and explicit overrides,
  merged in that order. The merged result is then normalized and validated.
- **Original identity** (`meshplane.originalidentity`). Works out the end-user
  identity, the trust level and the effective principal from invocation
  metadata.
- **Authorization check requests** (`meshplane.extauthz`). Turns a
  `UnaryInvokeRequest` into a `CheckRequest`. Metadata headers can be limited
  by an optional allow-list.
- **Control-plane client state** (`meshplane.control_client`). Caches the
  service snapshots and route policies that a control plane has pushed, and
  looks them up by service.
- **Control-plane delivery** (`meshplane.selector`, `meshplane.arbitration`,
  `meshplane.delivery_batch`, `meshplane.delivery_cycle`,
  `meshplane.delivery_explain`, `meshplane.debug_export`). Matches subscribers
  against resources, picks the best resource per service for each dataplane
  identity, plans delivery batches and explains each delivery decision.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Command line

The `meshplane` command loads configuration through the same steps as the
library.

```
meshplane validate --config mesh.yaml
meshplane print-config --config mesh.yaml
meshplane version
```

- `validate` prints `config is valid: mode=<mode> source=<kind>`.
- `print-config` prints the final configuration as YAML, after defaults and
  normalization have been applied.
- `version` prints `version=dev commit=none date=unknown`.

If the configuration is rejected or the file cannot be read, `validate` and
`print-config` print `Error: <message>` to standard error and exit with status
1. Run with no subcommand, `meshplane` prints help and exits with status 0.

`validate` and `print-config` take these flags:

| flag                    | overrides                      |
|-------------------------|--------------------------------|
| `--config`              | path of the YAML file to read  |
| `--mode`                | `agent` or `sidecar`           |
| `--source`              | `consul` or `etcd`             |
| `--authz-target`        | authorization service address  |
| `--controlplane-target` | control plane address          |

The configuration is built in this order:

1. built-in defaults (`default_config()`)
2. the YAML file
3. the environment variables `SERVICE_MESH_MODE`, `SERVICE_MESH_SOURCE_KIND`,
   `SERVICE_MESH_AUTHZ_TARGET` and `SERVICE_MESH_CONTROLPLANE_TARGET`, where
   they are set and not empty
4. the command-line flags

Each step overrides the ones before it. The result then goes through
`normalize` and `validate`.

## A minimal configuration file

```yaml
mode: sidecar
runtime:
  sidecar:
    address: 127.0.0.1:19091
    service_name: orders
    target_mode: upstream_only
source:
  kind: etcd
  etcd:
    endpoints: ["127.0.0.1:2379"]
authz:
  target: 127.0.0.1:9001
controlplane:
  enabled: true
  target: 127.0.0.1:19080
```

Any field you leave out keeps its default value, and unknown keys are ignored.
The telemetry endpoint is written as `telemetry.otel_endpoint`.

## Using it as a library

### Configuration

```python
from meshplane.config import default_config, normalize, validate
from meshplane.loader import LoadOptions, load, render

cfg = default_config()
normalize(cfg)
validate(cfg)  # raises ConfigError on a bad configuration

cfg = load(LoadOptions(path="mesh.yaml", mode="sidecar"))
print(render(cfg))
```

- `normalize` modifies the configuration in place. It trims strings,
  lower-cases the mode, the source kind and the sidecar target mode, and fills
  in zero or empty values with their defaults.
- `validate` raises `ConfigError` for a configuration that cannot run. An
  unknown mode raises `InvalidModeError` and an unknown source kind raises
  `InvalidSourceError`. Both are subclasses of `ConfigError`.
- `load` raises `ConfigError` in three cases: the YAML is malformed, a value
  has the wrong type, or an unsigned field holds a negative number.
- `config_from_mapping` overlays a parsed mapping on a configuration.
  `config_to_mapping` turns a configuration back into plain mappings.

### Original identity

```python
from meshplane.originalidentity import resolve

effective = resolve(invocation_context)
principal = effective.principal()
extensions = effective.context_extensions()
```

The principal is chosen in this order:

1. the original user, if a user id or subject is present
2. otherwise the caller service, with trust `local`
3. otherwise `none`

### Authorization check requests

```python
from meshplane.extauthz import build_check_request

check = build_check_request(request, include_headers=["authorization"])
check.http.headers
check.context_extensions
```

`dial_timeout` and `check_timeout` return timeouts in seconds. Both fall back
to 0.5 s when no timeout is given.

### Control-plane client state

`ControlPlaneClient` keeps a `ControlPlaneState`, which you reach through its
`state` property. Pass each `ConnectResponse` to `apply_response`, then call
`resolve_snapshot` or `state.resolve_route_policy` to read back what was
stored.

- Both lookups try an exact environment match first, then the entry with no
  environment.
- Both return `None` when nothing matches.
- `track_target` adds a service to the subscription set.
- `subscription_targets` lists the tracked services.
- `subscription_pending` reports whether a resubscribe was requested since the
  last call, and clears that flag.

### Control-plane delivery

`DeliveryCycle` works over a fixed set of `ControlSnapshot` and `RoutePolicy`
resources:

- `register_batch(identity)` returns everything selected for a dataplane
  identity.
- `subscribe_batch(subscriber, targets, changed)` returns what a new
  subscription should receive.
- `target_broadcast_batch(subscribers, resp, target)` plans pushes to each
  matching subscriber's queue.
- `explain_target_response` records, for each subscriber, whether the response
  was delivered or denied, and whether the reason was the subscription, the
  identity or arbitration.

## What this package does not do

meshplane makes decisions and keeps state. It opens no network connections
and runs no servers. In particular:

- There is no `run` command and no agent or sidecar runtime.
- There is no gRPC client or server for the control plane or the
  authorization service.
- There is no Consul or etcd directory client.
- There is no telemetry export.

`ControlPlaneClient` and `DeliveryBatch` take in and hand out responses. Some
other code has to carry them over a real connection.