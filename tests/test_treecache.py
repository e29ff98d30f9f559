import pytest

from kubedns.dnsutil import Service
from kubedns.treecache import TreeCache

SET_ENTRY_CASES = [
    ("key1", "key1.p2.p1.", ("p1", "p2")),
    ("key2", "key2.p2.p1.", ("p1", "p2")),
    ("key3", "key3.p2.p1.", ("p1", "p3")),
]


@pytest.fixture
def populated():
    cache = TreeCache()
    services = {}
    for key, fqdn, path in SET_ENTRY_CASES:
        svc = Service()
        cache.set_entry(key, svc, fqdn, *path)
        services[key] = svc
    return cache, services


def test_missing_entry():
    assert TreeCache().get_entry("key1", "p1", "p2") is None


def test_set_entry_and_get(populated):
    cache, services = populated
    for key, _fqdn, path in SET_ENTRY_CASES:
        assert cache.get_entry(key, *path) is services[key]


def test_set_entry_sets_key(populated):
    _cache, services = populated
    assert services["key1"].key == "/skydns/p1/p2/key1"


@pytest.mark.parametrize(
    "path, count",
    [
        (("p1",), 0),
        (("p1", "p2"), 2),
        (("p1", "p3"), 1),
        (("p1", "p2", "key1"), 1),
        (("p1", "p2", "key2"), 1),
        (("p1", "p2", "key3"), 0),
        (("p1", "p3", "key3"), 1),
        (("p1", "p2", "*"), 2),
        (("p1", "*", "*"), 3),
    ],
)
def test_wildcards(populated, path, count):
    cache, _services = populated
    assert len(cache.get_values_for_path_with_wildcards(*path)) == count


def test_wildcard_returns_named_entry(populated):
    cache, services = populated
    assert cache.get_values_for_path_with_wildcards("p1", "p2", "key1") == [services["key1"]]


def test_wildcard_skips_underscore_children():
    cache = TreeCache()
    cache.set_entry("a", Service(), "a.x.", "_x")
    cache.set_entry("b", Service(), "b.y.", "y")
    assert len(cache.get_values_for_path_with_wildcards("*", "*")) == 1


def test_delete_path(populated):
    cache, _services = populated
    assert cache.delete_path("p1", "p2") is True
    assert cache.get_entry("key3", "p1", "p3") is not None
    assert cache.delete_path("p1", "p2") is False
    assert cache.delete_path("p1", "p3") is True
    assert cache.delete_path("p1", "p3") is False
    for key, _fqdn, path in SET_ENTRY_CASES:
        assert cache.get_entry(key, *path) is None


def test_delete_entry_leaf(populated):
    cache, _services = populated
    assert cache.delete_path("p1", "p2", "key1") is True
    assert cache.get_entry("key1", "p1", "p2") is None
    assert cache.delete_path() is False


def test_set_sub_cache():
    cache = TreeCache()
    svc = Service()
    branch = TreeCache()
    branch.set_entry("key1", svc, "key", "p2")
    cache.set_sub_cache("p1", branch, "p0")
    assert cache.get_entry("key1", "p0", "p1", "p2") is svc


def test_serialize():
    cache = TreeCache()
    cache.set_entry("key1", Service(), "key1.p2.p1.", "p1", "p2")
    expected = """{
\t"ChildNodes": {
\t\t"p1": {
\t\t\t"ChildNodes": {
\t\t\t\t"p2": {
\t\t\t\t\t"ChildNodes": {},
\t\t\t\t\t"Entries": {
\t\t\t\t\t\t"key1": {}
\t\t\t\t\t}
\t\t\t\t}
\t\t\t},
\t\t\t"Entries": {}
\t\t}
\t},
\t"Entries": {}
}"""
    assert cache.serialize() == expected


def test_serialize_record_fields_and_escaping():
    cache = TreeCache()
    cache.set_entry("k<1>", Service(host="1.2.3.4", port=80), "k.")
    text = cache.serialize()
    assert '"k\\u003c1\\u003e"' in text
    assert '"host": "1.2.3.4"' in text
    assert '"port": 80' in text