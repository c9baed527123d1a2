"""Data types shared by the readers: events for the adaptor and registry objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping


@dataclass(frozen=True)
class Metadata:
    """A single metadata key/value pair sent to the adaptor."""

    key: str
    value: str


@dataclass
class Service:
    """A service endpoint as delivered to the adaptor."""

    name: str = ""
    address: str = ""
    port: int = 0
    metadata: list[Metadata] = field(default_factory=list)


@dataclass
class Event:
    """A change (create, update, delete) about a service endpoint."""

    event: str
    service: Service


class ServiceRegistryError(Exception):
    """Base class for errors raised by a service registry."""


class NotFoundError(ServiceRegistryError):
    """The requested object does not exist in the registry."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


class NamespaceNameNotProvidedError(ServiceRegistryError, ValueError):
    """An object carries no namespace name."""

    def __init__(self, message: str = "namespace name not provided") -> None:
        super().__init__(message)


class ServiceNameNotProvidedError(ServiceRegistryError, ValueError):
    """An object carries no service name."""

    def __init__(self, message: str = "service name not provided") -> None:
        super().__init__(message)


class EndpointNameNotProvidedError(ServiceRegistryError, ValueError):
    """An object carries no endpoint name."""

    def __init__(self, message: str = "endpoint name not provided") -> None:
        super().__init__(message)


def _text(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ValueError(f"field {key!r} must be a scalar")
    return str(value)


def _metadata(data: Mapping[str, Any]) -> dict[str, str]:
    value = data.get("metadata")
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("field 'metadata' must be a mapping")
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _require_mapping(data: Any, kind: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"cannot decode {kind} from {type(data).__name__}")
    return data


@dataclass
class Namespace:
    """A namespace stored in the service registry."""

    name: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> Namespace:
        data = _require_mapping(data, "namespace")
        return cls(name=_text(data, "name"), metadata=_metadata(data))

    def to_mapping(self) -> dict[str, Any]:
        return {"name": self.name, "metadata": dict(self.metadata)}


@dataclass
class RegistryService:
    """A service stored in the service registry."""

    name: str = ""
    ns_name: str = ""
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> RegistryService:
        data = _require_mapping(data, "service")
        return cls(
            name=_text(data, "name"),
            ns_name=_text(data, "nsName"),
            metadata=_metadata(data),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {"name": self.name, "nsName": self.ns_name, "metadata": dict(self.metadata)}


@dataclass
class RegistryEndpoint:
    """An endpoint stored in the service registry."""

    name: str = ""
    serv_name: str = ""
    ns_name: str = ""
    address: str = ""
    port: int = 0
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Any) -> RegistryEndpoint:
        data = _require_mapping(data, "endpoint")
        port = data.get("port") or 0
        if isinstance(port, bool) or not isinstance(port, (int, str)):
            raise ValueError("field 'port' must be an integer")
        try:
            port = int(port)
        except ValueError as exc:
            raise ValueError(f"invalid port {port!r}") from exc
        return cls(
            name=_text(data, "name"),
            serv_name=_text(data, "servName"),
            ns_name=_text(data, "nsName"),
            address=_text(data, "address"),
            port=port,
            metadata=_metadata(data),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "servName": self.serv_name,
            "nsName": self.ns_name,
            "address": self.address,
            "port": self.port,
            "metadata": dict(self.metadata),
        }


class ObjectType(Enum):
    """The kind of registry object a key points to."""

    NAMESPACE = "namespace"
    SERVICE = "service"
    ENDPOINT = "endpoint"
    UNKNOWN = "unknown"


_NS_SEGMENT = "namespaces"
_SERV_SEGMENT = "services"
_ENDP_SEGMENT = "endpoints"


@dataclass(frozen=True)
class Key:
    """The key under which a registry object is stored."""

    namespace: str = ""
    service: str = ""
    endpoint: str = ""
    raw: str = ""

    def object_type(self) -> ObjectType:
        if not self.namespace:
            return ObjectType.UNKNOWN
        if not self.service:
            return ObjectType.UNKNOWN if self.endpoint else ObjectType.NAMESPACE
        if not self.endpoint:
            return ObjectType.SERVICE
        return ObjectType.ENDPOINT

    def __str__(self) -> str:
        if self.object_type() is ObjectType.UNKNOWN:
            return self.raw
        parts = [_NS_SEGMENT, self.namespace]
        if self.service:
            parts += [_SERV_SEGMENT, self.service]
        if self.endpoint:
            parts += [_ENDP_SEGMENT, self.endpoint]
        return "/".join(parts)


def key_from_names(*args: str) -> Key:
    """Build a key from a namespace name and optional service and endpoint names."""
    if not 1 <= len(args) <= 3:
        raise ValueError("between one and three names are required")
    names = list(args) + [""] * (3 - len(args))
    return Key(namespace=names[0], service=names[1], endpoint=names[2])


def key_from_string(value: str) -> Key:
    """Parse a stored key; anything not recognised gives a key of unknown type."""
    parts = value.strip("/").split("/")
    expected = (_NS_SEGMENT, _SERV_SEGMENT, _ENDP_SEGMENT)
    if len(parts) % 2 != 0 or not 2 <= len(parts) <= 6:
        return Key(raw=value)
    names = []
    for segment, (label, name) in zip(expected, zip(parts[::2], parts[1::2])):
        if label != segment or not name:
            return Key(raw=value)
        names.append(name)
    return key_from_names(*names)


def key_from_object(obj: Namespace | RegistryService | RegistryEndpoint) -> Key:
    """Build the key of a registry object, checking that its names are set."""
    if isinstance(obj, RegistryEndpoint):
        if not obj.ns_name:
            raise NamespaceNameNotProvidedError()
        if not obj.serv_name:
            raise ServiceNameNotProvidedError()
        if not obj.name:
            raise EndpointNameNotProvidedError()
        return key_from_names(obj.ns_name, obj.serv_name, obj.name)
    if isinstance(obj, RegistryService):
        if not obj.ns_name:
            raise NamespaceNameNotProvidedError()
        if not obj.name:
            raise ServiceNameNotProvidedError()
        return key_from_names(obj.ns_name, obj.name)
    if isinstance(obj, Namespace):
        if not obj.name:
            raise NamespaceNameNotProvidedError()
        return key_from_names(obj.name)
    raise TypeError(f"unsupported registry object: {type(obj).__name__}")


class ServiceRegistry:
    """An in-memory service registry holding services and their endpoints."""

    def __init__(
        self,
        services: Iterable[RegistryService] = (),
        endpoints: Iterable[RegistryEndpoint] = (),
    ) -> None:
        self._services = {(s.ns_name, s.name): s for s in services}
        self._endpoints: dict[tuple[str, str], list[RegistryEndpoint]] = {}
        for endpoint in endpoints:
            self._endpoints.setdefault((endpoint.ns_name, endpoint.serv_name), []).append(endpoint)

    def get_service(self, ns_name: str, serv_name: str) -> RegistryService:
        try:
            return self._services[(ns_name, serv_name)]
        except KeyError:
            raise NotFoundError(f"service {ns_name}/{serv_name} not found") from None

    def list_endpoints(self, ns_name: str, serv_name: str) -> list[RegistryEndpoint]:
        if (ns_name, serv_name) not in self._services:
            raise NotFoundError(f"service {ns_name}/{serv_name} not found")
        return list(self._endpoints.get((ns_name, serv_name), []))