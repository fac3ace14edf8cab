"""
Сервис для работы с Redis: кеширование результатов совместимости.
Кеш носит рекомендательный характер: при недоступности Redis операции
возвращают промах и не прерывают расчет.
"""
import os
import json
import logging
from typing import Optional, Any, List
from redis import Redis
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class RedisService:
    """Сервис для работы с Redis"""

    def __init__(self, client: Optional[Redis] = None):
        """
        Инициализация Redis клиента (ленивая загрузка)

        Args:
            client: Готовый клиент (для тестов); без него клиент создается при первом обращении
        """
        self.redis_host = os.getenv("REDIS_HOST", "localhost")
        self.redis_port = int(os.getenv("REDIS_PORT", 6379))
        self.redis_db = int(os.getenv("REDIS_DB", 0))
        self.redis_password = os.getenv("REDIS_PASSWORD", None)

        self.redis_client = client
        self._redis_initialized = client is not None

    def _ensure_redis_initialized(self):
        """Обеспечивает инициализацию Redis клиента (ленивая загрузка)"""
        if self._redis_initialized:
            return

        try:
            self.redis_client = Redis(
                host=self.redis_host,
                port=self.redis_port,
                db=self.redis_db,
                password=self.redis_password,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            # Проверка подключения
            self.redis_client.ping()
            logger.info(f"✅ Redis подключен: {self.redis_host}:{self.redis_port}")
        except Exception as e:
            logger.warning(f"⚠️ Redis недоступен: {str(e)}. Кеш совместимости будет работать без Redis.")
            self.redis_client = None

        self._redis_initialized = True

    @property
    def is_available(self) -> bool:
        self._ensure_redis_initialized()
        return self.redis_client is not None

    # ============ Кеширование ============

    def cache_set(
        self,
        key: str,
        value: Any,
        ttl: int = 3600
    ) -> bool:
        """
        Сохранение значения в кеш

        Args:
            key: Ключ кеша
            value: Значение (будет сериализовано в JSON)
            ttl: Время жизни в секундах (по умолчанию 1 час)

        Returns:
            True при успехе, False при ошибке
        """
        self._ensure_redis_initialized()

        if not self.redis_client:
            return False

        try:
            if isinstance(value, (dict, list)):
                value_str = json.dumps(value, ensure_ascii=False)
            else:
                value_str = str(value)

            self.redis_client.setex(key, max(1, int(ttl)), value_str)
            return True
        except Exception as e:
            logger.error(f"❌ Ошибка сохранения в кеш: {str(e)}")
            return False

    def cache_get(self, key: str) -> Optional[Any]:
        """
        Получение значения из кеша

        Args:
            key: Ключ кеша

        Returns:
            Значение или None
        """
        self._ensure_redis_initialized()

        if not self.redis_client:
            return None

        try:
            value_str = self.redis_client.get(key)
            if not value_str:
                return None

            try:
                return json.loads(value_str)
            except json.JSONDecodeError:
                return value_str
        except Exception as e:
            logger.error(f"❌ Ошибка получения из кеша: {str(e)}")
            return None

    def cache_delete(self, key: str) -> bool:
        """Удаление значения из кеша"""
        self._ensure_redis_initialized()

        if not self.redis_client:
            return False

        try:
            self.redis_client.delete(key)
            return True
        except Exception as e:
            logger.error(f"❌ Ошибка удаления из кеша: {str(e)}")
            return False

    def cache_get_pattern(self, pattern: str) -> List[str]:
        """Ключи кеша по шаблону (SCAN, без блокировки сервера)"""
        self._ensure_redis_initialized()

        if not self.redis_client:
            return []

        try:
            return list(self.redis_client.scan_iter(match=pattern))
        except Exception as e:
            logger.error(f"❌ Ошибка поиска ключей по шаблону {pattern}: {str(e)}")
            return []

    def cache_delete_pattern(self, pattern: str) -> int:
        """Удаление всех ключей по шаблону. Возвращает число удаленных ключей"""
        keys = self.cache_get_pattern(pattern)
        deleted = 0
        for key in keys:
            if self.cache_delete(key):
                deleted += 1
        return deleted


redis_service = RedisService()
