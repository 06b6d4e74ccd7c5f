"""Tests for the fingerprint result cache."""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from facepath.attributes import AttributeKind, AttributeSet
from facepath.cache import LookupOutcome, ResultCache
from facepath.errors import CacheError


def _attrs(age=30):
    return AttributeSet({"age": age, "gender": "male"})


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached")
        time.sleep(0.005)


class Abandoned(BaseException):
    pass


class TestGetPut:
    def test_miss_then_hit(self):
        cache = ResultCache(capacity=4)
        assert cache.get("a") is None
        cache.put("a", _attrs())
        assert cache.get("a") == _attrs()
        stats = cache.stats()
        assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)

    def test_put_is_idempotent(self):
        cache = ResultCache(capacity=4)
        first = cache.put("a", _attrs(30))
        second = cache.put("a", _attrs(50))
        assert first == second == _attrs(30)
        assert len(cache) == 1

    def test_extend_adds_kinds(self):
        cache = ResultCache(capacity=4)
        cache.put("a", _attrs(30))
        extended = cache.extend("a", AttributeSet({"age": 99, "emotion": {"happy": 1.0}}))
        assert extended["age"].value == 30.0
        assert set(cache.get("a")) == {AttributeKind.AGE, AttributeKind.GENDER, AttributeKind.EMOTION}
        assert len(cache) == 1

    def test_extend_missing_entry_stores(self):
        cache = ResultCache(capacity=4)
        cache.extend("b", _attrs())
        assert cache.get("b") == _attrs()

        disabled = ResultCache(capacity=0)
        assert disabled.extend("b", _attrs()) == _attrs()
        assert len(disabled) == 0

    def test_put_rejects_plain_dict(self):
        with pytest.raises(TypeError):
            ResultCache().put("a", {"age": 30})

    def test_lru_eviction(self):
        cache = ResultCache(capacity=2)
        cache.put("a", _attrs(1))
        cache.put("b", _attrs(2))
        cache.get("a")
        cache.put("c", _attrs(3))
        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.stats().evictions == 1

    def test_zero_capacity(self):
        cache = ResultCache(capacity=0)
        cache.put("a", _attrs())
        assert len(cache) == 0
        result, outcome = cache.get_or_compute("a", _attrs)
        assert outcome is LookupOutcome.COMPUTED
        assert result == _attrs()

    def test_negative_capacity(self):
        with pytest.raises(ValueError):
            ResultCache(capacity=-1)

    def test_clear(self):
        cache = ResultCache()
        cache.put("a", _attrs())
        cache.clear()
        assert len(cache) == 0


class TestGetOrCompute:
    def test_computed_then_hit(self):
        cache = ResultCache()
        calls = []

        def compute():
            calls.append(1)
            return _attrs()

        assert cache.get_or_compute("k", compute)[1] is LookupOutcome.COMPUTED
        assert cache.get_or_compute("k", compute)[1] is LookupOutcome.HIT
        assert len(calls) == 1

    def test_single_flight(self):
        cache = ResultCache()
        release = threading.Event()
        calls = []

        def compute():
            calls.append(threading.get_ident())
            release.wait(2.0)
            return _attrs(42)

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(cache.get_or_compute, "k", compute) for _ in range(4)]
            _wait_for(lambda: cache.stats().coalesced == 3)
            release.set()
            results = [f.result(timeout=2.0) for f in futures]

        assert len(calls) == 1
        outcomes = sorted(outcome.value for _, outcome in results)
        assert outcomes == ["coalesced", "coalesced", "coalesced", "computed"]
        assert all(attrs == _attrs(42) for attrs, _ in results)
        assert cache.pending() == 0

    def test_leader_exception_shared(self):
        cache = ResultCache()
        release = threading.Event()

        def compute():
            release.wait(2.0)
            raise RuntimeError("model crashed")

        with ThreadPoolExecutor(max_workers=2) as pool:
            leader = pool.submit(cache.get_or_compute, "k", compute)
            _wait_for(lambda: cache.pending() == 1)
            waiter = pool.submit(cache.get_or_compute, "k", compute)
            _wait_for(lambda: cache.stats().coalesced == 1)
            release.set()
            for future in (leader, waiter):
                with pytest.raises(RuntimeError, match="model crashed"):
                    future.result(timeout=2.0)

        assert "k" not in cache
        assert cache.pending() == 0

    def test_abandoned_leader(self):
        cache = ResultCache()
        release = threading.Event()
        leader_error = []

        def compute():
            release.wait(2.0)
            raise Abandoned()

        def lead():
            try:
                cache.get_or_compute("k", compute)
            except Abandoned as exc:
                leader_error.append(exc)

        thread = threading.Thread(target=lead)
        thread.start()
        _wait_for(lambda: cache.pending() == 1)
        with ThreadPoolExecutor(max_workers=1) as pool:
            waiter = pool.submit(cache.get_or_compute, "k", _attrs)
            _wait_for(lambda: cache.stats().coalesced == 1)
            release.set()
            with pytest.raises(CacheError, match="abandoned"):
                waiter.result(timeout=2.0)
        thread.join()
        assert len(leader_error) == 1

    def test_store_if(self):
        cache = ResultCache()
        failed = AttributeSet({"age": 30}, {"gender": "timeout"})
        result, _ = cache.get_or_compute("k", lambda: failed, store_if=lambda a: a.complete)
        assert result == failed
        assert "k" not in cache
        cache.get_or_compute("k", _attrs, store_if=lambda a: a.complete)
        assert "k" in cache

    def test_hit_rate(self):
        cache = ResultCache()
        cache.get_or_compute("k", _attrs)
        cache.get_or_compute("k", _attrs)
        assert cache.stats().hit_rate == pytest.approx(0.5)


class TestPersistence:
    def test_save_and_load(self, tmp_path):
        cache = ResultCache(capacity=8)
        for i in range(3):
            cache.put(f"fp{i}", _attrs(20 + i))
        cache.get("fp0")
        path = tmp_path / "cache" / "results.json"
        cache.save(path)

        restored = ResultCache.load(path, capacity=2)
        assert len(restored) == 2
        assert "fp1" not in restored
        assert restored.get("fp0") == _attrs(20)
        assert restored.get("fp2") == _attrs(22)

    def test_errors_round_trip(self, tmp_path):
        cache = ResultCache()
        cache.put("k", AttributeSet({"age": 30}, {"emotion": "model missing"}))
        cache.save(tmp_path / "c.json")
        restored = ResultCache.load(tmp_path / "c.json").get("k")
        assert restored.errors[AttributeKind.EMOTION] == "model missing"

    def test_missing_file(self, tmp_path):
        with pytest.raises(CacheError, match="Cannot read"):
            ResultCache.load(tmp_path / "none.json")

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text("{not json")
        with pytest.raises(CacheError):
            ResultCache.load(path)

    def test_version_mismatch(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text(json.dumps({"entries": [], "_version": {"format": 99}}))
        with pytest.raises(CacheError, match="version"):
            ResultCache.load(path)

    def test_bad_entry(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text(json.dumps({
            "entries": [{"fingerprint": "k", "attributes": {"age": "old"}}],
            "_version": {"format": 1},
        }))
        with pytest.raises(CacheError, match="Corrupt"):
            ResultCache.load(path)
