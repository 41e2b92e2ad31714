import threading

import pytest

from bindwire import Binding, BindingKind
from bindwire._bindings import BindingRegistry
from bindwire._cache import MISSING, InstanceCache


def test_instance_binding_is_always_shared():
    binding = Binding(BindingKind.INSTANCE, object(), shared=False)
    assert binding.shared


def test_binding_is_immutable():
    binding = Binding(BindingKind.FACTORY, lambda c: None)
    with pytest.raises(AttributeError):
        binding.shared = True


def test_registry_last_write_wins():
    registry = BindingRegistry()
    first = Binding(BindingKind.CONCRETE, dict)
    second = Binding(BindingKind.CONCRETE, list, shared=True)

    assert registry.set("k", first) is None
    assert registry.set("k", second) is first
    assert registry.get("k") is second
    assert "k" in registry


def test_registry_clear():
    registry = BindingRegistry()
    registry.set("a", Binding(BindingKind.CONCRETE, dict))

    registry.clear()
    assert registry.get("a") is None
    assert "a" not in registry


def test_cache_miss_is_distinct_from_none():
    cache = InstanceCache()
    assert cache.get("k") is MISSING
    cache.put("k", None)
    assert cache.get("k") is None
    assert "k" in cache


def test_cache_put_overwrites_and_evict_reports_hit():
    cache = InstanceCache()
    cache.put("k", 1)
    cache.put("k", 2)
    assert cache.get("k") == 2
    assert cache.evict("k")
    assert not cache.evict("k")
    assert cache.get("k") is MISSING


def test_cache_guard_is_reentrant_and_released():
    cache = InstanceCache()
    with cache.guard("k"), cache.guard("k"):
        assert cache._owners == {"k": threading.get_ident()}
    assert cache._owners == {}


def test_cache_guard_entries_do_not_outlive_builds():
    cache = InstanceCache()
    for key in range(100):
        with cache.guard(key):
            cache.put(key, key)
    cache.clear()
    assert cache._owners == {}
    assert cache.get(0) is MISSING


def test_cache_guard_serializes_other_threads():
    cache = InstanceCache()
    entered = threading.Event()
    order = []

    def contender():
        entered.wait(timeout=5)
        with cache.guard("k"):
            order.append("contender")

    worker = threading.Thread(target=contender)
    worker.start()
    with cache.guard("k"):
        entered.set()
        worker.join(timeout=0.1)
        order.append("owner")
    worker.join(timeout=5)

    assert order == ["owner", "contender"]
