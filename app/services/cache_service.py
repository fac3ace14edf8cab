"""
Сервис кеширования результатов совместимости.

Ключ - неупорядоченная пара пользователей (min_id, max_id).
Срок жизни записи отсчитывается от момента расчета результата,
поэтому запоздалая запись старого результата не продлевает его жизнь.
"""
import logging
from datetime import datetime, timedelta, timezone
from dataclasses import replace
from typing import Callable, Dict, Optional, Tuple
from threading import Lock

from app.services.matching.config import MatchingConfig
from app.services.matching.models import CompatibilityResult
from app.services.matching.utils import ensure_aware, pair_key
from app.services.redis_service import RedisService, redis_service

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry:
    """Запись в кеше"""
    def __init__(self, result: CompatibilityResult, cached_at: datetime, expires_at: datetime):
        self.result = result
        self.cached_at = cached_at
        self.expires_at = expires_at


class CompatibilityCache:
    """In-memory кеш совместимости пар (потокобезопасный)"""

    def __init__(self, ttl_seconds: int = MatchingConfig.CACHE_TTL_SECONDS, clock: Optional[Clock] = None):
        """
        Args:
            ttl_seconds: Время жизни результата в секундах (по умолчанию 24 часа)
            clock: Источник текущего времени (для тестов)
        """
        self._cache: Dict[Tuple[int, int], CacheEntry] = {}
        self._lock = Lock()
        self.ttl_seconds = ttl_seconds
        self._clock = clock or _utc_now

    def get(self, user_a_id: int, user_b_id: int) -> Optional[CompatibilityResult]:
        """
        Получить результат из кеша.

        Returns:
            Результат или None, если записи нет или срок ее жизни истек
        """
        key = pair_key(user_a_id, user_b_id)
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            # Проверка срока жизни под той же блокировкой, что и чтение
            if self._clock() >= entry.expires_at:
                del self._cache[key]
                return None

            return entry.result

    def put(self, result: CompatibilityResult, ttl_seconds: Optional[int] = None) -> Optional[CompatibilityResult]:
        """
        Сохранить результат (перезаписывает существующий).

        Returns:
            Сохраненный результат с проставленным expires_at или None,
            если результат уже устарел к моменту записи
        """
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        computed_at = ensure_aware(result.computed_at)
        expires_at = computed_at + timedelta(seconds=ttl)

        with self._lock:
            now = self._clock()
            if now >= expires_at:
                logger.debug(f"Результат пары {result.pair_key} устарел до записи в кеш")
                return None

            stored = replace(result, expires_at=expires_at)
            self._cache[stored.pair_key] = CacheEntry(result=stored, cached_at=now, expires_at=expires_at)
            return stored

    def invalidate(self, user_a_id: int, user_b_id: int):
        """Инвалидировать кеш для пары"""
        with self._lock:
            self._cache.pop(pair_key(user_a_id, user_b_id), None)

    def invalidate_user(self, user_id: int) -> int:
        """
        Инвалидировать все пары с участием пользователя
        (вызывается при изменении карты, анкеты или предпочтений).

        Returns:
            Количество удаленных записей
        """
        with self._lock:
            keys = [key for key in self._cache if user_id in key]
            for key in keys:
                del self._cache[key]
            return len(keys)

    def clear(self):
        """Очистить весь кеш"""
        with self._lock:
            self._cache.clear()

    def size(self) -> int:
        """Получить количество записей в кеше"""
        with self._lock:
            return len(self._cache)

    def cleanup_expired(self) -> int:
        """Удалить устаревшие записи из кеша"""
        with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._cache.items() if now >= entry.expires_at]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)


class RedisCompatibilityCache:
    """Кеш совместимости в Redis. TTL записи обеспечивает сам Redis (SETEX)"""

    KEY_PREFIX = "compatibility"

    def __init__(
        self,
        redis: Optional[RedisService] = None,
        ttl_seconds: int = MatchingConfig.CACHE_TTL_SECONDS,
        clock: Optional[Clock] = None
    ):
        self.redis = redis or redis_service
        self.ttl_seconds = ttl_seconds
        self._clock = clock or _utc_now

    def _key(self, user_a_id: int, user_b_id: int) -> str:
        low, high = pair_key(user_a_id, user_b_id)
        return f"{self.KEY_PREFIX}:{low}:{high}"

    def get(self, user_a_id: int, user_b_id: int) -> Optional[CompatibilityResult]:
        key = self._key(user_a_id, user_b_id)
        payload = self.redis.cache_get(key)
        if not isinstance(payload, dict):
            return None

        try:
            result = CompatibilityResult.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Поврежденная запись кеша {key}: {str(e)}")
            self.redis.cache_delete(key)
            return None

        if result.is_expired(self._clock()):
            self.redis.cache_delete(key)
            return None
        return result

    def put(self, result: CompatibilityResult, ttl_seconds: Optional[int] = None) -> Optional[CompatibilityResult]:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = ensure_aware(result.computed_at) + timedelta(seconds=ttl)
        remaining = (expires_at - self._clock()).total_seconds()
        if remaining <= 0:
            return None

        stored = replace(result, expires_at=expires_at)
        self.redis.cache_set(self._key(*stored.pair_key), stored.to_dict(), ttl=int(remaining) or 1)
        return stored

    def invalidate(self, user_a_id: int, user_b_id: int):
        self.redis.cache_delete(self._key(user_a_id, user_b_id))

    def invalidate_user(self, user_id: int) -> int:
        deleted = self.redis.cache_delete_pattern(f"{self.KEY_PREFIX}:{user_id}:*")
        deleted += self.redis.cache_delete_pattern(f"{self.KEY_PREFIX}:*:{user_id}")
        return deleted

    def clear(self):
        self.redis.cache_delete_pattern(f"{self.KEY_PREFIX}:*")

    def size(self) -> int:
        return len(self.redis.cache_get_pattern(f"{self.KEY_PREFIX}:*"))

    def cleanup_expired(self) -> int:
        # Redis удаляет просроченные ключи самостоятельно
        return 0


def build_compatibility_cache(backend: Optional[str] = None):
    """Кеш совместимости по настройке COMPATIBILITY_CACHE_BACKEND"""
    backend = (backend or MatchingConfig.CACHE_BACKEND).lower()
    if backend == 'redis':
        logger.info("✅ Кеш совместимости: Redis")
        return RedisCompatibilityCache(ttl_seconds=MatchingConfig.CACHE_TTL_SECONDS)
    logger.info("✅ Кеш совместимости: in-memory")
    return CompatibilityCache(ttl_seconds=MatchingConfig.CACHE_TTL_SECONDS)


# Глобальный экземпляр кеша
compatibility_cache = build_compatibility_cache()
