# cnwan-reader

`cnwan_reader` looks at a service registry for services that carry given
metadata keys and turns what it finds into service events of type
`create`, `update` or `delete`. Each `Event` (from `cnwan_reader.models`)
holds one `Service`: an endpoint's name, address, port and a list of
`Metadata` pairs taken from its parent service.

Two kinds of registry are handled:

- **AWS Cloud Map**, read by polling: `cnwan_reader.cloudmap.CloudMap`
  reads services and instances through a service discovery client and
  returns the current state as a mapping of `Service` objects.
- **etcd**, read by watching: `cnwan_reader.etcd_watcher.EtcdWatcher` reads
  the current state from a key/value store, then turns each `WatchEvent` on
  services and endpoints into `Event` objects.

The clients that come with the package are in-memory:
`cloudmap.ServiceDiscovery`, `etcd_watcher.KeyValueStore` and
`models.ServiceRegistry`. `CloudMap` and `EtcdWatcher` only call a few
methods on them (`list_services`, `list_instances`,
`list_tags_for_resource`; `get_prefix`; `get_service`, `list_endpoints`),
so any object offering those methods can be passed in instead.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Configuration file

Settings can be read from a YAML file:

```yaml
debugMode: false
adaptor: localhost:80/cnwan
metadataKeys:
  - traffic-profile
serviceRegistry:
  awsCloudMap:
    region: us-west-2
    credentialsPath: path/to/credentials/file
    pollInterval: 10
```

```python
from cnwan_reader.configuration import load_configuration

config = load_configuration("config.yaml")
print(config.metadata_keys)
print(config.service_registry.aws_cloud_map.region)
```

`parse_configuration` does the same from a string or bytes. Only the first
metadata key is kept. A `gcpServiceDirectory` section is parsed into a
`ServiceDirectoryConfig`, but nothing in the package reads that registry.
Malformed content raises `ValueError`.

## Cloud Map

`cloudmap.parse_options` merges command-line style values with a `Config`:
given values win, the configuration file fills in the region, credentials
path, poll interval and metadata keys when they are missing, and the poll
interval falls back to 5 seconds. A missing region, missing metadata keys or
an empty adaptor endpoint raise `OptionsError`.

```python
from cnwan_reader.cloudmap import (
    CloudMap, InstanceSummary, ServiceDiscovery, ServiceSummary, parse_options,
)

sd = ServiceDiscovery(
    services=[ServiceSummary(id="srv-1", name="payments")],
    instances={"srv-1": [InstanceSummary(
        id="inst-1",
        attributes={"traffic-profile": "gold", "AWS_INSTANCE_IPV4": "10.0.0.1"},
    )]},
)
cm = CloudMap(parse_options(region="us-west-2", metadata_keys=["traffic-profile"]), sd)
print(cm.get_current_state())
# {'services/srv-1/endpoints/inst-1': Service(name='inst-1', address='10.0.0.1', port=80, ...)}
```

An instance is accepted only when it has an ID, a non-empty value for every
required metadata key among its attributes, and an IPv4 or IPv6 address
(IPv4 wins when both are set); the port defaults to 80.
`CloudMap.parse_instance` raises `InvalidInstanceError` for the others, and
`CloudMap.get_instances` skips them. `CloudMap.get_service_tags` instead
picks services by their tags and keys the result by `<service name>/<instance id>`.

## etcd

`cnwan_reader.etcd_utils` holds the helpers used by the watcher:

- `parse_prefix("//services//")` gives `"/services/"`;
- `sanitize_localhost(host, mode)` strips the scheme and slashes and, in
  `docker` mode, points `localhost` at `host.docker.internal`; when `mode`
  is None the `MODE` environment variable is used;
- `parse_endpoints` turns `host[:port]` strings into `EtcdEndpoint` values,
  using port 2379 when none is given and skipping duplicates and invalid
  entries;
- `parse_options` builds `EtcdOptions` and raises `EtcdOptionsError` when no
  metadata key is given, or when only one of username and password is set;
  only the first metadata key is used;
- `client_config` gives the endpoints, username and password for a client.

`EtcdWatcher(options, kv, registry, enqueue)` offers:

- `current_state(event)`: one event per endpoint of every stored service
  that has the target keys, keyed by `address:port`;
- `handle(watch_event)`: the events for one change, also passed to
  `enqueue` when it is set;
- `watch(events)`: `handle` for every event of an iterable.

`KeyValueStore.put` and `KeyValueStore.delete` return the `WatchEvent` for
the change they make, so a store can feed a watcher directly.

## What the package does not do

There is no command that runs a reader: the only command prints the
version. The package holds no clients for the real AWS Cloud Map or etcd
services, and it does not send events to an adaptor over the network;
events are returned, or handed to the `enqueue` callable given to
`EtcdWatcher`. Polling on an interval is left to the caller.

## Version

```
cnwan-reader-version
cnwan-reader-version --short
```

The first prints `MAJOR=0; MINOR=5; GIT-VERSION=v0.5.0`, the second `v0.5.0`.
The same strings come from `cnwan_reader.version.version_string`.