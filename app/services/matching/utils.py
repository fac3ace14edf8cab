"""
Вспомогательные утилиты движка совместимости
"""
import math
import logging
from typing import Any, Optional, Tuple
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# Границы оценок: A >= 90, B >= 80, C >= 70, D >= 60, иначе F
GRADE_BANDS = [
    (90, 'A'),
    (80, 'B'),
    (70, 'C'),
    (60, 'D'),
]


def clamp(value: Any, lower: float = 0.0, upper: float = 100.0, default: float = 0.0) -> float:
    """
    Ограничивает значение диапазоном [lower, upper].
    None, NaN, бесконечность и нечисловые значения заменяются на default.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number) or math.isinf(number):
        return default
    return max(lower, min(upper, number))


def round_half_up(value: float) -> int:
    """Округление к ближайшему целому, половины от нуля (как ROUND в SQL)"""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def grade_for_score(score: float) -> str:
    """Буквенная оценка по баллу 0-100"""
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return 'F'


def pair_key(user_a_id: int, user_b_id: int) -> Tuple[int, int]:
    """Канонический ключ неупорядоченной пары"""
    return (min(user_a_id, user_b_id), max(user_a_id, user_b_id))


def normalize_label(value: Optional[str]) -> Optional[str]:
    """Приводит метку к виду 'super_middleweight': нижний регистр, пробелы и дефисы в '_'"""
    if value is None:
        return None
    label = str(value).strip().lower().replace('-', '_').replace(' ', '_')
    return label or None


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Расстояние по большому кругу между двумя точками в километрах"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(
    lat1: Optional[float],
    lon1: Optional[float],
    lat2: Optional[float],
    lon2: Optional[float]
) -> Optional[float]:
    """Расстояние между пользователями или None, если у кого-то нет координат"""
    if None in (lat1, lon1, lat2, lon2):
        return None
    return haversine_km(float(lat1), float(lon1), float(lat2), float(lon2))


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite возвращает naive datetime: считаем его UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
