"""Configuration file for the reader."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValueError(f"field {key!r} must be a mapping")
    return value


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if isinstance(value, (Mapping, list)):
        raise ValueError(f"field {key!r} must be a string")
    return str(value)


def _int(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


@dataclass
class ServiceDirectoryConfig:
    """Settings for Google Cloud Service Directory."""

    polling_interval: int = 0
    project_id: str = ""
    region: str = ""
    service_account_path: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ServiceDirectoryConfig:
        return cls(
            polling_interval=_int(data, "pollInterval"),
            project_id=_str(data, "projectID"),
            region=_str(data, "region"),
            service_account_path=_str(data, "serviceAccountPath"),
        )


@dataclass
class CloudMapConfig:
    """Settings for AWS Cloud Map."""

    region: str = ""
    credentials_path: str = ""
    poll_interval: int = 0

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> CloudMapConfig:
        return cls(
            region=_str(data, "region"),
            credentials_path=_str(data, "credentialsPath"),
            poll_interval=_int(data, "pollInterval"),
        )


@dataclass
class ServiceRegistrySettings:
    """Which service registry to use, and how."""

    gcp_service_directory: ServiceDirectoryConfig | None = None
    aws_cloud_map: CloudMapConfig | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ServiceRegistrySettings:
        sd = _section(data, "gcpServiceDirectory")
        cm = _section(data, "awsCloudMap")
        return cls(
            gcp_service_directory=None if sd is None else ServiceDirectoryConfig.from_mapping(sd),
            aws_cloud_map=None if cm is None else CloudMapConfig.from_mapping(cm),
        )


@dataclass
class Config:
    """The whole configuration of the program."""

    debug_mode: bool = False
    adaptor: str = ""
    metadata_keys: list[str] = field(default_factory=list)
    service_registry: ServiceRegistrySettings | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Config:
        keys = data.get("metadataKeys") or []
        if not isinstance(keys, list):
            raise ValueError("field 'metadataKeys' must be a list")
        registry = _section(data, "serviceRegistry")
        return cls(
            debug_mode=_bool(data, "debugMode"),
            adaptor=_str(data, "adaptor"),
            metadata_keys=[str(k) for k in keys],
            service_registry=None if registry is None else ServiceRegistrySettings.from_mapping(registry),
        )


def parse_configuration(text: str | bytes) -> Config:
    """Parse YAML configuration; only the first metadata key is kept."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"invalid configuration: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError("configuration must be a mapping")
    conf = Config.from_mapping(data)
    conf.metadata_keys = conf.metadata_keys[:1]
    return conf


def load_configuration(path: str | Path) -> Config:
    """Read and parse the configuration file at ``path``."""
    return parse_configuration(Path(path).read_bytes())