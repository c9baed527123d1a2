import pytest

from cnwan_reader.configuration import (
    CloudMapConfig,
    Config,
    ServiceDirectoryConfig,
    load_configuration,
    parse_configuration,
)

FULL = """
debugMode: true
adaptor: test.org:9494/cnwan-events
metadataKeys:
  - that
  - other
serviceRegistry:
  gcpServiceDirectory:
    pollInterval: 14
    projectID: proj
    region: us-west2
    serviceAccountPath: ./service-account.json
  awsCloudMap:
    region: from-conf
    credentialsPath: path/to/file
    pollInterval: 14
"""


def test_parse_full_configuration():
    conf = parse_configuration(FULL)
    assert conf.debug_mode is True
    assert conf.adaptor == "test.org:9494/cnwan-events"
    assert conf.metadata_keys == ["that"]
    assert conf.service_registry.gcp_service_directory == ServiceDirectoryConfig(
        polling_interval=14,
        project_id="proj",
        region="us-west2",
        service_account_path="./service-account.json",
    )
    assert conf.service_registry.aws_cloud_map == CloudMapConfig(
        region="from-conf", credentials_path="path/to/file", poll_interval=14
    )


def test_parse_empty_gives_defaults():
    assert parse_configuration("") == Config()


def test_missing_registry_sections_are_none():
    conf = parse_configuration("serviceRegistry:\n  awsCloudMap:\n    region: r\n")
    assert conf.service_registry.gcp_service_directory is None
    assert conf.service_registry.aws_cloud_map.region == "r"


@pytest.mark.parametrize(
    "text",
    ["- a\n- b\n", "metadataKeys: x\n", "serviceRegistry: 3\n", "debugMode: [1]\n", "a: [\n"],
)
def test_invalid_configuration(text):
    with pytest.raises(ValueError):
        parse_configuration(text)


def test_load_configuration_from_file(tmp_path):
    path = tmp_path / "conf.yaml"
    path.write_text(FULL)
    assert load_configuration(path) == parse_configuration(FULL)


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_configuration(tmp_path / "missing.yaml")