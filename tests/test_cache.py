"""Tests for the size-dependent parameter cache."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

from bsim4jax.cache import SizeParameterCache, size_key


class TestSizeParameterCache:
    def test_miss_then_hit(self):
        cache = SizeParameterCache()
        calls = []

        def derive():
            calls.append(1)
            return object()

        key = size_key(1e-6, 1e-7, 1)
        first = cache.get(key, derive)
        second = cache.get(key, derive)
        assert first is second
        assert len(calls) == 1
        assert cache.hits == 1
        assert cache.misses == 1

    def test_finger_count_is_part_of_key(self):
        cache = SizeParameterCache()
        a = cache.get(size_key(1e-6, 1e-7, 1), object)
        b = cache.get(size_key(1e-6, 1e-7, 2), object)
        assert a is not b
        assert len(cache) == 2

    def test_store_keeps_first_record(self):
        cache = SizeParameterCache()
        key = size_key(1e-6, 1e-7, 1)
        first = cache.store(key, "first")
        second = cache.store(key, "second")
        assert first == second == "first"
        assert cache.lookup(key) == "first"

    def test_clear(self):
        cache = SizeParameterCache()
        key = size_key(1e-6, 1e-7, 1)
        cache.get(key, object)
        cache.clear()
        assert key not in cache
        assert cache.lookup(key) is None
        assert cache.hits == cache.misses == 0


class TestConcurrentAccess:
    def test_parallel_gets_derive_once(self):
        cache = SizeParameterCache()
        key = size_key(1e-6, 1e-7, 1)
        calls = []

        def derive():
            calls.append(1)
            time.sleep(0.01)
            return object()

        with ThreadPoolExecutor(max_workers=8) as pool:
            records = list(pool.map(lambda _: cache.get(key, derive), range(16)))
        assert len(calls) == 1
        assert all(record is records[0] for record in records)
        assert cache.misses == 1
        assert cache.hits == 15

    def test_len_and_membership_wait_for_writer(self):
        cache = SizeParameterCache()
        key = size_key(1e-6, 1e-7, 1)
        entered = threading.Event()
        release = threading.Event()
        seen = []

        def slow_derive():
            entered.set()
            release.wait(timeout=5.0)
            return object()

        writer = threading.Thread(target=cache.get, args=(key, slow_derive))
        writer.start()
        assert entered.wait(timeout=5.0)
        reader = threading.Thread(target=lambda: seen.append((len(cache), key in cache)))
        reader.start()
        reader.join(timeout=0.1)
        # the reader is blocked while the record is being derived
        assert reader.is_alive()
        release.set()
        writer.join(timeout=5.0)
        reader.join(timeout=5.0)
        assert seen == [(1, True)]


class TestModelOwnedCache:
    def test_devices_with_same_geometry_share_record(self, make_device, nmos_model):
        a = make_device(name="m1")
        b = make_device(name="m2")
        assert len(nmos_model.sizes) == 1
        assert nmos_model.sizes.hits >= 1
        # each device works on its own copy
        assert a.temps.size is not b.temps.size

    def test_setup_clears_cache(self, make_device, nmos_model):
        make_device()
        assert len(nmos_model.sizes) == 1
        nmos_model.setup()
        assert len(nmos_model.sizes) == 0

    def test_temperature_change_clears_cache(self, make_device, nmos_model):
        make_device()
        nmos_model.temperature(350.0)
        assert len(nmos_model.sizes) == 0
