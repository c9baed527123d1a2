import pytest

from cnwan_reader.models import (
    EndpointNameNotProvidedError,
    Key,
    NamespaceNameNotProvidedError,
    Namespace,
    NotFoundError,
    ObjectType,
    RegistryEndpoint,
    RegistryService,
    ServiceNameNotProvidedError,
    ServiceRegistry,
    key_from_names,
    key_from_object,
    key_from_string,
)


@pytest.mark.parametrize(
    "names, expected",
    [
        (("ns",), ObjectType.NAMESPACE),
        (("ns", "srv"), ObjectType.SERVICE),
        (("ns", "srv", "endp"), ObjectType.ENDPOINT),
    ],
)
def test_key_round_trip(names, expected):
    key = key_from_names(*names)
    assert key.object_type() is expected
    parsed = key_from_string(str(key))
    assert parsed == key
    assert parsed.object_type() is expected


def test_key_string_ignores_surrounding_slashes():
    key = key_from_names("ns", "srv")
    assert key_from_string("/" + str(key) + "/") == key


def test_unknown_key_keeps_raw_value():
    key = key_from_string("ok-endp")
    assert key.object_type() is ObjectType.UNKNOWN
    assert str(key) == "ok-endp"


def test_key_from_names_rejects_too_many():
    with pytest.raises(ValueError):
        key_from_names("a", "b", "c", "d")


def test_key_from_object_endpoint_matches_names():
    endp = RegistryEndpoint(name="e", serv_name="s", ns_name="n", address="10.10.10.10")
    assert key_from_object(endp) == key_from_names("n", "s", "e")


@pytest.mark.parametrize(
    "endp, error",
    [
        (RegistryEndpoint(), NamespaceNameNotProvidedError),
        (RegistryEndpoint(ns_name="n"), ServiceNameNotProvidedError),
        (RegistryEndpoint(ns_name="n", serv_name="s"), EndpointNameNotProvidedError),
    ],
)
def test_key_from_object_missing_names(endp, error):
    with pytest.raises(error):
        key_from_object(endp)


def test_key_from_object_service_and_namespace():
    assert key_from_object(RegistryService(name="s", ns_name="n")) == key_from_names("n", "s")
    assert key_from_object(Namespace(name="n")).object_type() is ObjectType.NAMESPACE
    with pytest.raises(ServiceNameNotProvidedError):
        key_from_object(RegistryService(ns_name="n"))


def test_endpoint_mapping_round_trip():
    endp = RegistryEndpoint(
        name="should-stay",
        serv_name="should-stay",
        ns_name="whatever",
        address="10.10.10.10",
        port=8080,
        metadata={"whatever": "whatever"},
    )
    assert RegistryEndpoint.from_mapping(endp.to_mapping()) == endp


def test_service_mapping_round_trip_and_invalid():
    srv = RegistryService(name="srv", ns_name="ns", metadata={"yes": "yes"})
    assert RegistryService.from_mapping(srv.to_mapping()) == srv
    with pytest.raises(ValueError):
        RegistryService.from_mapping("invalid")


def test_registry_lookups():
    srv = RegistryService(name="srv", ns_name="ns", metadata={"yes": "yes"})
    endp = RegistryEndpoint(name="endp1", serv_name="srv", ns_name="ns", address="10.10.10.10", port=9090)
    registry = ServiceRegistry(services=[srv], endpoints=[endp])
    assert registry.get_service("ns", "srv") == srv
    assert registry.list_endpoints("ns", "srv") == [endp]
    with pytest.raises(NotFoundError):
        registry.get_service("ns", "missing")
    with pytest.raises(NotFoundError):
        registry.list_endpoints("ns", "missing")


def test_key_equality_is_by_value():
    assert Key(namespace="a", service="b") == key_from_names("a", "b")