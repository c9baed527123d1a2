"""Reading services registered in AWS Cloud Map through polling."""

from __future__ import annotations

import logging
import posixpath
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Protocol, Sequence

from .configuration import CloudMapConfig, Config
from .models import Metadata, NotFoundError, Service

log = logging.getLogger(__name__)

AWS_IPV4_ATTR = "AWS_INSTANCE_IPV4"
AWS_IPV6_ATTR = "AWS_INSTANCE_IPV6"
AWS_PORT_ATTR = "AWS_INSTANCE_PORT"
AWS_DEFAULT_INSTANCE_PORT = 80
DEFAULT_POLL_INTERVAL = 5
DEFAULT_ADAPTOR = "localhost:80/cnwan"

CMD_USE = "cloudmap --region <region> [--credentials-path <credentials-path>]"
CMD_SHORT = "connect to Cloud Map to get registered services"
CMD_EXAMPLE = "cloudmap --region us-west-2 --credentials path/to/credentials/file"

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_INT_RE = re.compile(r"[+-]?[0-9]+")


class InvalidInstanceError(ValueError):
    """An instance registered in Cloud Map cannot be used."""


class OptionsError(ValueError):
    """The options for connecting to Cloud Map are incomplete or invalid."""


@dataclass
class Options:
    """Settings for reading from Cloud Map."""

    region: str = ""
    credentials_path: str = ""
    interval: int = DEFAULT_POLL_INTERVAL
    adaptor: str = DEFAULT_ADAPTOR
    debug: bool = False
    keys: list[str] = field(default_factory=list)


@dataclass
class ServiceSummary:
    """A service as listed by Cloud Map."""

    id: str | None = None
    name: str = ""
    arn: str = ""


@dataclass
class InstanceSummary:
    """An instance as listed by Cloud Map."""

    id: str | None = None
    attributes: dict[str, str | None] | None = None


@dataclass(frozen=True)
class Tag:
    """A tag attached to a Cloud Map resource."""

    key: str
    value: str


class ServiceDiscoveryAPI(Protocol):
    def list_services(self) -> list[ServiceSummary]: ...

    def list_instances(self, service_id: str) -> list[InstanceSummary]: ...

    def list_tags_for_resource(self, arn: str) -> list[Tag]: ...


class ServiceDiscovery:
    """An in-memory service discovery holding services, instances and tags."""

    def __init__(
        self,
        services: Iterable[ServiceSummary] = (),
        instances: Mapping[str, Sequence[InstanceSummary]] | None = None,
        tags: Mapping[str, Sequence[Tag]] | None = None,
    ) -> None:
        self._services = list(services)
        self._instances = {k: list(v) for k, v in (instances or {}).items()}
        self._tags = {k: list(v) for k, v in (tags or {}).items()}

    def list_services(self) -> list[ServiceSummary]:
        return list(self._services)

    def list_instances(self, service_id: str) -> list[InstanceSummary]:
        try:
            return list(self._instances[service_id])
        except KeyError:
            raise NotFoundError(f"service {service_id} not found") from None

    def list_tags_for_resource(self, arn: str) -> list[Tag]:
        return list(self._tags.get(arn, []))


def _parse_int32(text: str | None) -> int | None:
    if text is None or not _INT_RE.fullmatch(text):
        return None
    value = int(text)
    if not _INT32_MIN <= value <= _INT32_MAX:
        return None
    return value


def _join_path(*parts: str) -> str:
    joined = "/".join(p for p in parts if p)
    return posixpath.normpath(joined) if joined else ""


class CloudMap:
    """Reads the current state of Cloud Map as services for the adaptor."""

    def __init__(self, options: Options, sd: ServiceDiscoveryAPI) -> None:
        self.options = options
        self.sd = sd

    def parse_instance(self, service_id: str, instance: InstanceSummary) -> Service:
        """Convert an instance into a service, raising if it is not usable."""
        if not instance.id:
            raise InvalidInstanceError("found instance with no/empty ID")
        attrs = instance.attributes
        if attrs is None:
            raise InvalidInstanceError("instance doesn't have any attribute")

        metadata: dict[str, str] = {}
        found = 0
        for key in self.options.keys:
            value = attrs.get(key)
            if value:
                found += 1
                metadata[key] = value
        if found != len(self.options.keys):
            raise InvalidInstanceError("instance doesn't have required metadata keys")

        address = ""
        if attrs.get(AWS_IPV6_ATTR):
            address = attrs[AWS_IPV6_ATTR] or ""
        if attrs.get(AWS_IPV4_ATTR):
            address = attrs[AWS_IPV4_ATTR] or ""
        if not address:
            raise InvalidInstanceError("instance has no address")

        port = _parse_int32(attrs.get(AWS_PORT_ATTR))
        if port is None:
            port = AWS_DEFAULT_INSTANCE_PORT

        return Service(
            name=instance.id,
            address=address,
            port=port,
            metadata=[Metadata(k, v) for k, v in metadata.items()],
        )

    def get_instances(self, service_id: str) -> list[Service]:
        """Return the valid instances of a service; invalid ones are skipped."""
        services = []
        for instance in self.sd.list_instances(service_id):
            try:
                services.append(self.parse_instance(service_id, instance))
            except InvalidInstanceError as exc:
                log.debug("invalid instance of service %s: skipping... (%s)", service_id, exc)
        return services

    def get_service_ids(self) -> list[str]:
        """Return the IDs of all services that have one."""
        ids = []
        for service in self.sd.list_services():
            if service.id:
                ids.append(service.id)
            else:
                log.debug("found service with no/empty ID: skipping...")
        return ids

    def _instances_or_none(self, service_id: str) -> tuple[str, list[Service] | None]:
        try:
            return service_id, self.get_instances(service_id)
        except Exception as exc:  # noqa: BLE001 - one failing service must not stop the rest
            log.error("could not get instances for service %s, skipping... (%s)", service_id, exc)
            return service_id, None

    def get_current_state(self) -> dict[str, Service]:
        """Return all valid instances keyed by services/<id>/endpoints/<name>."""
        ids = self.get_service_ids()
        if not ids:
            return {}
        state: dict[str, Service] = {}
        with ThreadPoolExecutor(max_workers=min(32, len(ids))) as pool:
            for service_id, instances in pool.map(self._instances_or_none, ids):
                for instance in instances or []:
                    state[f"services/{service_id}/endpoints/{instance.name}"] = instance
        return state

    def _tag_metadata(self, service: ServiceSummary, keys: set[str]) -> dict[str, str]:
        try:
            tags = self.sd.list_tags_for_resource(service.arn)
        except Exception as exc:  # noqa: BLE001
            log.warning("could not get tags for service %s: skipping... (%s)", service.name, exc)
            return {}
        return {tag.key: tag.value for tag in tags if tag.key in keys}

    def get_service_tags(self) -> dict[str, Service]:
        """Return instances of services whose tags hold the target keys."""
        keys = set(self.options.keys)
        result: dict[str, Service] = {}
        for service in self.sd.list_services():
            metadata = self._tag_metadata(service, keys)
            if not metadata:
                continue
            try:
                instances = self.sd.list_instances(service.id or "")
            except Exception as exc:  # noqa: BLE001
                log.error("error while getting instances for service %s: skipping... (%s)",
                          service.name, exc)
                continue
            for instance in instances:
                attrs = instance.attributes or {}
                name = _join_path(service.name, instance.id or "")
                result[name] = Service(
                    name=name,
                    address=attrs.get(AWS_IPV4_ATTR) or "",
                    port=_parse_int32(attrs.get(AWS_PORT_ATTR)) or 0,
                    metadata=[Metadata(k, v) for k, v in metadata.items()],
                )
        return result


def parse_options(
    region: str = "",
    credentials_path: str = "",
    poll_interval: int | None = None,
    metadata_keys: Sequence[str] = (),
    adaptor: str = DEFAULT_ADAPTOR,
    debug: bool = False,
    config: Config | None = None,
) -> Options:
    """Build options from command values, falling back to the configuration.

    ``poll_interval`` is None when it was not given on the command line.
    """
    cm_conf = CloudMapConfig()
    if config is not None and config.service_registry is not None:
        cm_conf = config.service_registry.aws_cloud_map or cm_conf

    if not region:
        if not cm_conf.region:
            raise OptionsError("region not provided")
        region = cm_conf.region

    if not credentials_path and cm_conf.credentials_path:
        credentials_path = cm_conf.credentials_path

    interval = DEFAULT_POLL_INTERVAL
    if poll_interval is not None:
        if poll_interval > 0:
            interval = poll_interval
    elif cm_conf.poll_interval > 0:
        interval = cm_conf.poll_interval

    keys = list(metadata_keys)
    if not keys and config is not None:
        keys = list(config.metadata_keys)
    if not keys:
        raise OptionsError("no metadata keys provided")

    endpoint = adaptor.strip("/")
    if not endpoint:
        raise OptionsError("no adaptor endpoint provided")

    return Options(
        region=region,
        credentials_path=credentials_path,
        interval=interval,
        adaptor=endpoint,
        debug=bool(debug),
        keys=keys,
    )