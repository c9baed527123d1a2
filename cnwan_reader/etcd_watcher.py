"""Watching a service registry stored in etcd and turning changes into events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Iterable, Protocol

import yaml

from .etcd_utils import (
    EtcdOptions,
    contains_keys,
    create_event,
    validate_endpoint,
    validate_service,
    values_changed,
)
from .models import (
    Event,
    Metadata,
    ObjectType,
    RegistryEndpoint,
    RegistryService,
    Service,
    key_from_names,
    key_from_object,
    key_from_string,
)

log = logging.getLogger(__name__)

_STATE_PREFIX = "namespaces"


@dataclass(frozen=True)
class KeyValue:
    """A key and its value as stored in etcd, with its revisions."""

    key: str | bytes
    value: bytes | str | None = None
    create_revision: int = 0
    mod_revision: int = 0

    @property
    def key_text(self) -> str:
        return self.key.decode() if isinstance(self.key, bytes) else self.key


class WatchEventType(Enum):
    """The kind of change reported by a watch."""

    PUT = "put"
    DELETE = "delete"


@dataclass(frozen=True)
class WatchEvent:
    """A single change to a key, with its previous value if known."""

    type: WatchEventType
    kv: KeyValue
    prev_kv: KeyValue | None = None

    @property
    def is_create(self) -> bool:
        return self.type is WatchEventType.PUT and self.kv.create_revision == self.kv.mod_revision

    @property
    def is_modify(self) -> bool:
        return self.type is WatchEventType.PUT and self.kv.create_revision != self.kv.mod_revision


class KeyValueStore:
    """An in-memory key/value store that reports its changes as watch events."""

    def __init__(self, items: dict[str, bytes | str] | None = None) -> None:
        self._data: dict[str, KeyValue] = {}
        self._revision = 0
        for key, value in (items or {}).items():
            self.put(key, value)

    def put(self, key: str, value: bytes | str) -> WatchEvent:
        """Store ``value`` under ``key`` and return the resulting event."""
        self._revision += 1
        prev = self._data.get(key)
        created = prev.create_revision if prev is not None else self._revision
        kv = KeyValue(key, value, create_revision=created, mod_revision=self._revision)
        self._data[key] = kv
        return WatchEvent(WatchEventType.PUT, kv, prev)

    def delete(self, key: str) -> WatchEvent | None:
        """Remove ``key``; return the event, or None if the key was absent."""
        prev = self._data.pop(key, None)
        if prev is None:
            return None
        self._revision += 1
        return WatchEvent(WatchEventType.DELETE, KeyValue(key, None, 0, self._revision), prev)

    def get_prefix(self, prefix: str) -> list[KeyValue]:
        """Return all pairs whose key starts with ``prefix``, sorted by key."""
        return [self._data[k] for k in sorted(self._data) if k.startswith(prefix)]


class _KeyValueReader(Protocol):
    def get_prefix(self, prefix: str) -> list[KeyValue]: ...


class _Registry(Protocol):
    def get_service(self, ns_name: str, serv_name: str) -> RegistryService: ...

    def list_endpoints(self, ns_name: str, serv_name: str) -> list[RegistryEndpoint]: ...


def _value(kv: KeyValue | None) -> bytes | str | None:
    return None if kv is None else kv.value


def _load(value: bytes | str | None) -> object:
    return yaml.safe_load(value) if value else None


class EtcdWatcher:
    """Turns the content of etcd and its changes into events for the adaptor."""

    def __init__(
        self,
        options: EtcdOptions,
        kv: _KeyValueReader | None = None,
        registry: _Registry | None = None,
        enqueue: Callable[[dict[str, Event]], None] | None = None,
    ) -> None:
        self.options = options
        self.kv = kv
        self.registry = registry
        self.enqueue = enqueue

    def current_state(self, event: str) -> dict[str, Event]:
        """Return one event of type ``event`` per endpoint of a relevant service."""
        targets = self.options.target_keys
        services: dict[str, RegistryService] = {}
        service_endpoints: dict[str, list[RegistryEndpoint]] = {}

        for pair in self.kv.get_prefix(_STATE_PREFIX):
            key = key_from_string(pair.key_text)
            otype = key.object_type()
            if otype is ObjectType.SERVICE:
                try:
                    service = RegistryService.from_mapping(_load(pair.value))
                except (ValueError, yaml.YAMLError) as exc:
                    log.error("error while trying to decode service %s, skipping... (%s)", key, exc)
                    continue
                if contains_keys(service.metadata, targets):
                    services[str(key)] = service
                    service_endpoints[str(key)] = []
            elif otype is ObjectType.ENDPOINT:
                try:
                    endpoint = RegistryEndpoint.from_mapping(_load(pair.value))
                except (ValueError, yaml.YAMLError) as exc:
                    log.error("error while trying to decode endpoint %s, skipping... (%s)", key, exc)
                    continue
                if not (endpoint.ns_name and endpoint.serv_name and endpoint.name):
                    log.error("endpoint %s is not valid as some names are unknown, skipping...", key)
                    continue
                service_key = str(key_from_names(endpoint.ns_name, endpoint.serv_name))
                service_endpoints.setdefault(service_key, []).append(endpoint)

        events: dict[str, Event] = {}
        for service_key, endpoints in service_endpoints.items():
            service = services.get(service_key)
            if service is None:
                continue
            for endpoint in endpoints:
                events[f"{endpoint.address}:{endpoint.port}"] = create_event(endpoint, service, event)
        return events

    def parse_endpoint_event(self, kv: KeyValue, event_name: str) -> Event | None:
        """Build an event for the endpoint in ``kv`` if its service is relevant."""
        key = key_from_string(kv.key_text)
        try:
            endpoint = validate_endpoint(kv.value)
        except ValueError as exc:
            log.error("endpoint %s is not valid: skipping... (%s)", key, exc)
            raise
        service = self.registry.get_service(endpoint.ns_name, endpoint.serv_name)
        if not contains_keys(service.metadata, self.options.target_keys):
            log.info("parent service of %s doesn't have target metadata keys: skipping...", key)
            return None
        return create_event(endpoint, service, event_name)

    def parse_endpoint_change(self, now: KeyValue, prev: KeyValue | None) -> Event | None:
        """Work out which event, if any, an endpoint update means."""
        parsed_now: RegistryEndpoint | None = None
        parsed_prev: RegistryEndpoint | None = None
        now_error: Exception | None = None

        if now.value is not None:
            try:
                parsed_now = validate_endpoint(now.value)
            except ValueError as exc:
                now_error = exc
        if _value(prev) is not None:
            try:
                parsed_prev = validate_endpoint(prev.value)
            except ValueError:
                parsed_prev = None

        if parsed_now is None and parsed_prev is None:
            log.info("endpoint %s is still not valid, skipping... (%s)", now.key_text, now_error)
            return None

        key = key_from_object(parsed_now if parsed_now is not None else parsed_prev)
        service = self.registry.get_service(key.namespace, key.service)
        if not contains_keys(service.metadata, self.options.target_keys):
            log.info("endpoint's parent service doesn't have target metadata keys: skipping...")
            return None

        metadata = [Metadata(k, v) for k, v in service.metadata.items()]

        def event_for(kind: str, endpoint: RegistryEndpoint) -> Event:
            return Event(
                event=kind,
                service=Service(
                    name=endpoint.name,
                    address=endpoint.address,
                    port=endpoint.port,
                    metadata=list(metadata),
                ),
            )

        if parsed_now is None:
            log.warning("endpoint %s is not valid anymore and must be deleted", now.key_text)
            return event_for("delete", parsed_prev)
        if parsed_prev is None:
            log.info("endpoint %s is now valid", now.key_text)
            return event_for("create", parsed_now)
        if replace(parsed_now, metadata={}) != replace(parsed_prev, metadata={}):
            log.info("endpoint %s effectively changed", now.key_text)
            return event_for("update", parsed_now)

        log.info("no relevant changes detected for %s: skipping...", now.key_text)
        return None

    def parse_service_change(self, now: KeyValue, prev: KeyValue | None) -> dict[str, Event] | None:
        """Work out the events for the endpoints of a service that was updated."""
        parsed_now: RegistryService | None = None
        parsed_prev: RegistryService | None = None

        if now.value is not None:
            try:
                parsed_now = validate_service(now.value)
            except ValueError as exc:
                log.error("service looks invalid (%s)", exc)
        if _value(prev) is not None:
            try:
                parsed_prev = validate_service(prev.value)
            except ValueError as exc:
                log.error("could not decode previous service state (%s)", exc)

        if parsed_now is None and parsed_prev is None:
            log.error(
                "could not parse neither current nor previous version of service %s: "
                "please check your service registry for invalid/inconsistent values",
                now.key_text,
            )
            return None

        targets = self.options.target_keys
        had_target = parsed_prev is not None and contains_keys(parsed_prev.metadata, targets)
        has_target = parsed_now is not None and contains_keys(parsed_now.metadata, targets)

        service = parsed_now
        if not has_target:
            if not had_target:
                log.info("service doesn't have target keys and never had: skipping...")
                return None
            log.info("service doesn't have target keys anymore")
            kind = "delete"
            service = parsed_prev
        elif not had_target:
            log.info("service now has target keys")
            kind = "create"
        else:
            if not values_changed(parsed_now.metadata, parsed_prev.metadata, targets):
                log.info("no relevant changes found, skipping...")
                return None
            kind = "update"

        endpoints = self.registry.list_endpoints(service.ns_name, service.name)
        return {
            str(key_from_names(e.ns_name, e.serv_name, e.name)): create_event(e, service, kind)
            for e in endpoints
        }

    def handle(self, event: WatchEvent) -> dict[str, Event]:
        """Turn one watch event into adaptor events and hand them to the queue."""
        key = key_from_string(event.kv.key_text)
        otype = key.object_type()
        to_send: dict[str, Event] = {}

        try:
            if event.type is WatchEventType.DELETE:
                if otype is ObjectType.ENDPOINT and _value(event.prev_kv) is not None:
                    log.info("detected deleted endpoint %s", key)
                    parsed = self.parse_endpoint_event(event.prev_kv, "delete")
                    if parsed is not None:
                        to_send = {str(key): parsed}
            elif event.is_create:
                if otype is ObjectType.ENDPOINT and event.kv.value is not None:
                    log.info("new endpoint detected %s", key)
                    parsed = self.parse_endpoint_event(event.kv, "create")
                    if parsed is not None:
                        to_send = {str(key): parsed}
            elif event.is_modify:
                if otype is ObjectType.ENDPOINT:
                    log.info("detected updated endpoint %s", key)
                    parsed = self.parse_endpoint_change(event.kv, event.prev_kv)
                    if parsed is not None:
                        to_send = {str(key): parsed}
                elif otype is ObjectType.SERVICE:
                    log.info("detected updated service %s", key)
                    to_send = self.parse_service_change(event.kv, event.prev_kv) or {}
        except Exception as exc:  # noqa: BLE001 - a bad change must not stop the watch
            log.error("could not process change to %s: skipping... (%s)", key, exc)
            to_send = {}

        if to_send and self.enqueue is not None:
            self.enqueue(to_send)
        return to_send

    def watch(self, events: Iterable[WatchEvent]) -> None:
        """Handle every event from ``events`` until it is exhausted."""
        log.info("watching for changes under %s", self.options.prefix)
        for event in events:
            self.handle(event)