"""Options and helpers for watching a service registry stored in etcd."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

import yaml

from .models import (
    Event,
    Metadata,
    RegistryEndpoint,
    RegistryService,
    Service,
    key_from_object,
)

log = logging.getLogger(__name__)

ETCD_USE = "etcd [flags]"
ETCD_SHORT = "watch for changes in etcd"
ETCD_EXAMPLE = "etcd --endpoints localhost:2379 --username user --password pass"

DEFAULT_PORT = 2379
DEFAULT_HOST = "localhost"
DEFAULT_ENDPOINT_PORT = 80
DOCKER_HOST = "host.docker.internal"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")


class EtcdOptionsError(ValueError):
    """The options for connecting to etcd are incomplete or invalid."""


@dataclass(frozen=True)
class EtcdEndpoint:
    """Host and port of an etcd node."""

    host: str = ""
    port: int = 0


@dataclass(frozen=True)
class Credentials:
    """Username and password for authenticating to etcd."""

    username: str = ""
    password: str = ""


@dataclass
class EtcdOptions:
    """Everything needed to connect to etcd and find relevant services."""

    endpoints: list[EtcdEndpoint] = field(default_factory=list)
    credentials: Credentials | None = None
    prefix: str = "/"
    target_keys: list[str] = field(default_factory=list)


def _env_mode(mode: str | None) -> str:
    return os.environ.get("MODE", "") if mode is None else mode


def sanitize_localhost(host: str, mode: str | None = None) -> str:
    """Strip the scheme and slashes from ``host``; map localhost in docker mode."""
    mode = _env_mode(mode)
    sanitized = host
    if sanitized.startswith("https://"):
        sanitized = sanitized[len("https://"):]
    if sanitized.startswith("http://"):
        sanitized = sanitized[len("http://"):]
    sanitized = sanitized.strip("/")

    if not sanitized:
        raise EtcdOptionsError(f"invalid host provided: {host}")

    if sanitized.startswith("localhost") and mode == "docker":
        sanitized = DOCKER_HOST + sanitized[len("localhost"):]
    return sanitized


def _parse_int32(text: str) -> int | None:
    if not _INT_RE.fullmatch(text):
        return None
    value = int(text)
    if not _INT32_MIN <= value <= _INT32_MAX:
        return None
    return value


def parse_endpoints(endpoints: Iterable[str], mode: str | None = None) -> list[EtcdEndpoint]:
    """Parse ``host[:port]`` strings, skipping duplicates and invalid entries."""
    mode = _env_mode(mode)
    seen: set[str] = set()
    parsed: list[EtcdEndpoint] = []

    for endpoint in endpoints:
        if endpoint in seen:
            log.warning("found duplicate endpoint %s: skipping...", endpoint)
            continue

        parts = endpoint.split(":")
        if len(parts) > 2:
            log.error("skipping invalid endpoint %s", endpoint)
            continue

        host = parts[0]
        port = DEFAULT_PORT
        if len(parts) == 2 and parts[1]:
            parsed_port = _parse_int32(parts[1])
            if parsed_port is None:
                log.error("could not parse port of endpoint %s: skipping...", endpoint)
                continue
            port = parsed_port

        try:
            host = sanitize_localhost(host, mode)
        except EtcdOptionsError as exc:
            log.error("error while parsing endpoint, skipping... (%s)", exc)
            continue

        parsed.append(EtcdEndpoint(host=host, port=port))
        seen.add(endpoint)

    return parsed


def parse_prefix(prefix: str) -> str:
    """Normalise a key prefix to the form ``/prefix/``."""
    if not prefix or prefix == "/":
        return "/"
    return f"/{prefix.strip('/')}/"


def parse_options(
    endpoints: Sequence[str] | None = None,
    metadata_keys: Sequence[str] = (),
    username: str = "",
    password: str = "",
    prefix: str = "/",
    mode: str | None = None,
) -> EtcdOptions:
    """Build etcd options from command values.

    When ``endpoints`` is None the default etcd node is used.
    """
    mode = _env_mode(mode)
    if endpoints is None:
        endpoints = [f"{sanitize_localhost(DEFAULT_HOST, mode)}:{DEFAULT_PORT}"]

    if not metadata_keys:
        raise EtcdOptionsError("no metadata keys provided")
    if len(metadata_keys) > 1:
        log.warning("multiple metadata keys are not supported yet, only the first one will be used")

    credentials = None
    if username and password:
        credentials = Credentials(username=username, password=password)
    elif username:
        raise EtcdOptionsError("username set but no password provided")
    elif password:
        raise EtcdOptionsError("password set but no username provided")

    return EtcdOptions(
        endpoints=parse_endpoints(endpoints, mode),
        credentials=credentials,
        prefix=parse_prefix(prefix),
        target_keys=[metadata_keys[0]],
    )


def client_config(options: EtcdOptions) -> dict[str, Any]:
    """Return the settings for an etcd client: endpoints, username and password."""
    config: dict[str, Any] = {
        "endpoints": [f"{e.host}:{e.port}" for e in options.endpoints],
        "username": "",
        "password": "",
    }
    if options.credentials is not None:
        config["username"] = options.credentials.username
        config["password"] = options.credentials.password
    return config


def _load_yaml(data: bytes | str | None) -> Any:
    if not data:
        raise ValueError("no value provided")
    try:
        return yaml.safe_load(data)
    except yaml.YAMLError as exc:
        raise ValueError(f"cannot decode value: {exc}") from exc


def validate_endpoint(data: bytes | str | None) -> RegistryEndpoint:
    """Decode an endpoint stored in etcd and check that it can be used."""
    endpoint = RegistryEndpoint.from_mapping(_load_yaml(data))
    key_from_object(endpoint)
    if not endpoint.address:
        raise ValueError("endpoint has no address")
    if endpoint.port <= 0:
        endpoint.port = DEFAULT_ENDPOINT_PORT
    return endpoint


def validate_service(data: bytes | str | None) -> RegistryService:
    """Decode a service stored in etcd and check that its names are set."""
    service = RegistryService.from_mapping(_load_yaml(data))
    key_from_object(service)
    return service


def create_event(endpoint: RegistryEndpoint, service: RegistryService, event_type: str) -> Event:
    """Build an adaptor event for ``endpoint`` carrying its service's metadata."""
    return Event(
        event=event_type,
        service=Service(
            name=endpoint.name,
            address=endpoint.address,
            port=endpoint.port,
            metadata=[Metadata(k, v) for k, v in service.metadata.items()],
        ),
    )


def contains_keys(subject: Mapping[str, str] | None, targets: Iterable[str]) -> bool:
    """Tell whether every target key is in ``subject``."""
    subject = subject or {}
    return all(target in subject for target in targets)


def values_changed(
    now: Mapping[str, str] | None, prev: Mapping[str, str] | None, keys: Iterable[str]
) -> bool:
    """Tell whether a key present in both mappings has a different value."""
    now = now or {}
    prev = prev or {}
    return any(key in now and key in prev and now[key] != prev[key] for key in keys)