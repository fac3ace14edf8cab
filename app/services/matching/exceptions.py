"""
Исключения движка совместимости.

Наружу пробрасываются только ошибки хранилища и конфигурации.
Отсутствие данных исключением не считается: скореры возвращают нейтральный результат.
"""
from typing import Optional


class MatchingError(Exception):
    """Базовое исключение движка совместимости"""


class PersistenceFailure(MatchingError):
    """Ошибка чтения/записи в хранилище. Вызывающий код сам решает, повторять ли запрос."""

    def __init__(self, operation: str, message: str, user_id: Optional[int] = None):
        self.operation = operation
        self.user_id = user_id
        self.retryable = True
        details = f"{operation}: {message}"
        if user_id is not None:
            details = f"{operation} (user_id={user_id}): {message}"
        super().__init__(details)


class ConfigurationError(MatchingError):
    """Некорректная конфигурация (веса, орбисы, пороги). Фатальна при старте."""


class InvalidFilterParams(ConfigurationError):
    """Некорректные параметры фильтрации кандидатов"""


class InvalidGeometry(MatchingError):
    """Градус вне диапазона [0, 360) или нераспознанная метка знака"""
