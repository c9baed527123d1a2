import pytest
import yaml

from cnwan_reader.etcd_utils import (
    DEFAULT_ENDPOINT_PORT,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DOCKER_HOST,
    Credentials,
    EtcdEndpoint,
    EtcdOptions,
    EtcdOptionsError,
    client_config,
    contains_keys,
    create_event,
    parse_endpoints,
    parse_options,
    parse_prefix,
    sanitize_localhost,
    validate_endpoint,
    validate_service,
    values_changed,
)
from cnwan_reader.models import (
    Metadata,
    NamespaceNameNotProvidedError,
    RegistryEndpoint,
    RegistryService,
    ServiceNameNotProvidedError,
)


def test_sanitize_localhost_strips_scheme_and_slashes():
    assert sanitize_localhost("http://example.com/", "") == "example.com"
    assert sanitize_localhost("https://example.com", "") == "example.com"


def test_sanitize_localhost_docker_mode():
    result = sanitize_localhost("https://localhost:2379/", "docker")
    assert result.startswith(DOCKER_HOST)
    assert result.endswith(":2379")
    assert "localhost" not in result


def test_sanitize_localhost_not_docker_keeps_localhost():
    assert sanitize_localhost("localhost:2379", "") == "localhost:2379"


@pytest.mark.parametrize("host", ["", "/", "https:///", "http://"])
def test_sanitize_localhost_invalid(host):
    with pytest.raises(EtcdOptionsError):
        sanitize_localhost(host, "")


def test_parse_endpoints_skips_invalid_and_duplicates():
    result = parse_endpoints(
        ["localhost:2379", "localhost:2379", "a:b:c", "host:abc", "other", "x:", ":9"], ""
    )
    assert result == [
        EtcdEndpoint(DEFAULT_HOST, DEFAULT_PORT),
        EtcdEndpoint("other", DEFAULT_PORT),
        EtcdEndpoint("x", DEFAULT_PORT),
    ]


def test_parse_endpoints_custom_port_and_docker():
    result = parse_endpoints(["localhost:1234"], "docker")
    assert result == [EtcdEndpoint(DOCKER_HOST, 1234)]


def test_parse_endpoints_port_out_of_range_skipped():
    assert parse_endpoints(["host:99999999999"], "") == []


@pytest.mark.parametrize("prefix", ["", "/"])
def test_parse_prefix_root(prefix):
    assert parse_prefix(prefix) == "/"


def test_parse_prefix_normalises_slashes():
    assert parse_prefix("//key///") == parse_prefix("key")
    result = parse_prefix("key")
    assert result.startswith("/") and result.endswith("/")
    assert result.strip("/") == "key"


def test_parse_options_no_keys():
    with pytest.raises(EtcdOptionsError, match="no metadata keys provided"):
        parse_options(endpoints=["host:1"], metadata_keys=[], mode="")


def test_parse_options_username_without_password():
    with pytest.raises(EtcdOptionsError, match="username set but no password provided"):
        parse_options(endpoints=["host:1"], metadata_keys=["k"], username="user", mode="")


def test_parse_options_password_without_username():
    password = "password"
    with pytest.raises(EtcdOptionsError, match="password set but no username provided"):
        parse_options(endpoints=["host:1"], metadata_keys=["k"], password=password, mode="")


def test_parse_options_full():
    password = "password"
    opts = parse_options(
        endpoints=["host:1"],
        metadata_keys=["first", "second"],
        username="user",
        password=password,
        prefix="pref",
        mode="",
    )
    assert opts.target_keys == ["first"]
    assert opts.credentials == Credentials("user", password)
    assert opts.endpoints == [EtcdEndpoint("host", 1)]
    assert opts.prefix == parse_prefix("pref")


def test_parse_options_default_endpoint():
    opts = parse_options(metadata_keys=["k"], mode="")
    assert opts.endpoints == [EtcdEndpoint(DEFAULT_HOST, DEFAULT_PORT)]
    assert opts.credentials is None
    assert opts.prefix == "/"


def test_client_config_with_credentials():
    password = "password"
    opts = EtcdOptions(
        endpoints=[EtcdEndpoint("host", 1), EtcdEndpoint("other", 2)],
        credentials=Credentials("user", password),
    )
    config = client_config(opts)
    assert config["endpoints"] == ["host:1", "other:2"]
    assert config["username"] == "user"
    assert config["password"] == password


def test_client_config_without_credentials():
    config = client_config(EtcdOptions(endpoints=[EtcdEndpoint("host", 1)]))
    assert config["endpoints"] == ["host:1"]
    assert config["username"] == ""


def _endpoint(**kwargs):
    values = dict(name="endp", serv_name="srv", ns_name="ns", address="10.10.10.10", port=8080)
    values.update(kwargs)
    return RegistryEndpoint(**values)


def test_validate_endpoint_round_trip():
    endp = _endpoint(metadata={"a": "b"})
    assert validate_endpoint(yaml.safe_dump(endp.to_mapping())) == endp


def test_validate_endpoint_default_port():
    endp = _endpoint(port=0)
    assert validate_endpoint(yaml.safe_dump(endp.to_mapping())).port == DEFAULT_ENDPOINT_PORT


@pytest.mark.parametrize("data", [b"", None])
def test_validate_endpoint_empty(data):
    with pytest.raises(ValueError, match="no value provided"):
        validate_endpoint(data)


def test_validate_endpoint_missing_namespace():
    data = yaml.safe_dump(RegistryEndpoint().to_mapping())
    with pytest.raises(NamespaceNameNotProvidedError):
        validate_endpoint(data)


def test_validate_endpoint_no_address():
    data = yaml.safe_dump(_endpoint(address="").to_mapping())
    with pytest.raises(ValueError, match="endpoint has no address"):
        validate_endpoint(data)


def test_validate_service_round_trip():
    srv = RegistryService(name="srv", ns_name="ns", metadata={"yes": "yes"})
    assert validate_service(yaml.safe_dump(srv.to_mapping()).encode()) == srv


def test_validate_service_invalid():
    with pytest.raises(ValueError):
        validate_service(b"invalid")
    with pytest.raises(ServiceNameNotProvidedError):
        validate_service(yaml.safe_dump(RegistryService(ns_name="ns").to_mapping()))


def test_create_event():
    endp = _endpoint(metadata={"x": "y"})
    srv = RegistryService(name="srv", ns_name="ns", metadata={"yes": "yes"})
    ev = create_event(endp, srv, "create")
    assert ev.event == "create"
    assert ev.service.name == endp.name
    assert ev.service.address == endp.address
    assert ev.service.port == endp.port
    assert ev.service.metadata == [Metadata("yes", "yes")]


def test_contains_keys():
    assert contains_keys({"a": "1", "b": "2"}, ["a", "b"])
    assert not contains_keys({"a": "1"}, ["a", "b"])
    assert contains_keys({}, [])
    assert not contains_keys(None, ["a"])


def test_values_changed():
    assert values_changed({"a": "1"}, {"a": "2"}, ["a"])
    assert not values_changed({"a": "1"}, {"a": "1"}, ["a"])
    assert not values_changed({"a": "1"}, {}, ["a"])
    assert not values_changed({}, {"a": "1"}, ["a"])
    assert not values_changed({"b": "1"}, {"b": "2"}, ["a"])