"""
Тесты для кеша совместимости.
"""
import fnmatch
import pytest
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import MagicMock

from app.services.cache_service import CompatibilityCache, RedisCompatibilityCache
from app.services.matching.models import CompatibilityResult, ComponentScore
from app.services.redis_service import RedisService


def make_result(user_a_id, user_b_id, score=75, computed_at=None):
    result = CompatibilityResult(
        user_a_id=user_a_id,
        user_b_id=user_b_id,
        overall_score=score,
        grade='C',
        recommended=score >= 70,
        components={'questionnaire': ComponentScore(score=score, grade='C')},
        weight_profile='questionnaire_only',
    )
    if computed_at is not None:
        result.computed_at = computed_at
    return result


class FakeRedis:
    """Минимальный клиент Redis в памяти"""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def ping(self):
        return True

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)

    def scan_iter(self, match='*'):
        return [key for key in list(self.store) if fnmatch.fnmatch(key, match)]


@pytest.fixture
def cache(fake_clock):
    return CompatibilityCache(ttl_seconds=3600, clock=fake_clock)


class TestCompatibilityCache:
    """Тесты для in-memory кеша"""

    def test_put_then_get(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now))

        cached = cache.get(1, 2)
        assert cached is not None
        assert cached.overall_score == 75
        assert cached.expires_at == fake_clock.now + timedelta(seconds=3600)

    def test_pair_key_is_unordered(self, cache, fake_clock):
        cache.put(make_result(5, 3, computed_at=fake_clock.now))

        assert cache.get(3, 5) is not None
        assert cache.get(5, 3) is not None
        assert cache.size() == 1

    def test_expired_entry_is_miss(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now))

        fake_clock.advance(3600)

        assert cache.get(1, 2) is None
        assert cache.size() == 0

    def test_entry_valid_before_expiry(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now))

        fake_clock.advance(3599)

        assert cache.get(1, 2) is not None

    def test_stale_result_not_resurrected(self, cache, fake_clock):
        stale = make_result(1, 2, computed_at=fake_clock.now - timedelta(seconds=4000))

        assert cache.put(stale) is None
        assert cache.get(1, 2) is None

    def test_put_overwrites(self, cache, fake_clock):
        cache.put(make_result(1, 2, score=40, computed_at=fake_clock.now))
        cache.put(make_result(1, 2, score=90, computed_at=fake_clock.now))

        assert cache.get(1, 2).overall_score == 90

    def test_custom_ttl(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now), ttl_seconds=10)

        fake_clock.advance(11)

        assert cache.get(1, 2) is None

    def test_invalidate_user(self, cache, fake_clock):
        for other in (2, 3, 4):
            cache.put(make_result(1, other, computed_at=fake_clock.now))
        cache.put(make_result(2, 3, computed_at=fake_clock.now))

        assert cache.invalidate_user(1) == 3
        assert cache.size() == 1
        assert cache.get(2, 3) is not None

    def test_invalidate_pair(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now))
        cache.invalidate(2, 1)

        assert cache.get(1, 2) is None

    def test_cleanup_expired(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now), ttl_seconds=10)
        cache.put(make_result(1, 3, computed_at=fake_clock.now))

        fake_clock.advance(20)

        assert cache.cleanup_expired() == 1
        assert cache.size() == 1

    def test_clear(self, cache, fake_clock):
        cache.put(make_result(1, 2, computed_at=fake_clock.now))
        cache.clear()

        assert cache.size() == 0

    def test_concurrent_access(self, cache, fake_clock):
        def worker(index):
            pair = (index % 7, index % 7 + 10)
            cache.put(make_result(*pair, score=index % 100, computed_at=fake_clock.now))
            return cache.get(*pair)

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(worker, range(500)))

        assert all(result is not None for result in results)
        assert cache.size() == 7


class TestRedisCompatibilityCache:
    """Тесты для кеша в Redis"""

    @pytest.fixture
    def redis_cache(self, fake_clock):
        client = FakeRedis()
        return RedisCompatibilityCache(RedisService(client=client), ttl_seconds=3600, clock=fake_clock), client

    def test_put_then_get(self, redis_cache, fake_clock):
        cache, client = redis_cache
        cache.put(make_result(2, 1, computed_at=fake_clock.now))

        assert "compatibility:1:2" in client.store
        assert client.ttls["compatibility:1:2"] == 3600

        cached = cache.get(1, 2)
        assert cached.overall_score == 75
        assert cached.components['questionnaire'].score == 75

    def test_expired_payload_ignored(self, redis_cache, fake_clock):
        cache, client = redis_cache
        cache.put(make_result(1, 2, computed_at=fake_clock.now))

        fake_clock.advance(3601)

        assert cache.get(1, 2) is None
        assert "compatibility:1:2" not in client.store

    def test_corrupted_payload(self, redis_cache):
        cache, client = redis_cache
        client.store["compatibility:1:2"] = '{"user_a_id": 1}'

        assert cache.get(1, 2) is None

    def test_invalidate_user(self, redis_cache, fake_clock):
        cache, client = redis_cache
        cache.put(make_result(1, 2, computed_at=fake_clock.now))
        cache.put(make_result(3, 1, computed_at=fake_clock.now))
        cache.put(make_result(2, 3, computed_at=fake_clock.now))

        assert cache.invalidate_user(1) == 2
        assert cache.size() == 1

    def test_redis_errors_are_cache_misses(self, fake_clock):
        client = MagicMock()
        client.get.side_effect = ConnectionError("connection refused")
        client.setex.side_effect = ConnectionError("connection refused")
        cache = RedisCompatibilityCache(RedisService(client=client), clock=fake_clock)

        cache.put(make_result(1, 2, computed_at=fake_clock.now))

        assert cache.get(1, 2) is None

    def test_unavailable_redis(self, fake_clock):
        service = RedisService()
        service._redis_initialized = True
        service.redis_client = None
        cache = RedisCompatibilityCache(service, clock=fake_clock)

        assert cache.put(make_result(1, 2, computed_at=fake_clock.now)) is not None
        assert cache.get(1, 2) is None
        assert cache.size() == 0
