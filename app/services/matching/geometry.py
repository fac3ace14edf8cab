"""
Геометрия синастрии: абсолютные градусы и классификация аспектов.
"""
import math
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from app.services.matching.config import MatchingConfig
from app.services.matching.exceptions import InvalidGeometry
from app.services.matching.utils import clamp

logger = logging.getLogger(__name__)

ZODIAC_SIGNS = [
    'aries', 'taurus', 'gemini', 'cancer', 'leo', 'virgo',
    'libra', 'scorpio', 'sagittarius', 'capricorn', 'aquarius', 'pisces'
]

SIGN_OFFSETS: Dict[str, int] = {sign: index * 30 for index, sign in enumerate(ZODIAC_SIGNS)}

MAX_ABSOLUTE_DEGREE = 359.99999


@dataclass(frozen=True)
class AspectMatch:
    """Найденный аспект: название, точный угол, отклонение и орбис"""
    name: str
    angle: int
    deviation: float
    orb: float


def normalize_sign(sign: Optional[str]) -> Optional[str]:
    """Название знака в нижнем регистре или None для нераспознанного"""
    if sign is None:
        return None
    normalized = str(sign).strip().lower()
    return normalized if normalized in SIGN_OFFSETS else None


def absolute_degree(sign: Optional[str], degree_in_sign: Optional[float]) -> float:
    """
    Абсолютная эклиптическая долгота по знаку и градусу в знаке.

    Неизвестный знак дает смещение 0 (с предупреждением), градус в знаке
    ограничивается диапазоном [0, 30]. Результат всегда в [0, 360).
    """
    normalized = normalize_sign(sign)
    if normalized is None:
        logger.warning(f"⚠️ Неизвестный знак зодиака: {sign!r}. Используется смещение 0")
        offset = 0
    else:
        offset = SIGN_OFFSETS[normalized]

    degree = clamp(degree_in_sign, 0.0, 30.0, default=0.0)
    result = (offset + degree) % 360
    return min(result, MAX_ABSOLUTE_DEGREE)


def angular_difference(degree_a: float, degree_b: float) -> float:
    """Кратчайшее угловое расстояние между двумя позициями (0-180)"""
    diff = abs(degree_a - degree_b)
    if diff > 180:
        diff = 360 - diff
    return diff


def _validate_degree(degree: float) -> float:
    try:
        value = float(degree)
    except (TypeError, ValueError):
        raise InvalidGeometry(f"Градус не является числом: {degree!r}")
    if math.isnan(value) or not (0 <= value < 360):
        raise InvalidGeometry(f"Градус вне диапазона [0, 360): {degree!r}")
    return value


def ordered_aspects(orbs: Optional[Dict[str, float]] = None) -> List[Tuple[int, str, float]]:
    """Аспекты (угол, название, орбис) по возрастанию орбиса: более узкий проверяется первым"""
    orbs = orbs if orbs is not None else MatchingConfig.get_orbs()
    aspects = [
        (angle, name, orbs[name])
        for angle, name, _ in MatchingConfig.ASPECTS
        if name in orbs
    ]
    # sorted стабилен: при равных орбисах сохраняется порядок ASPECTS
    return sorted(aspects, key=lambda aspect: aspect[2])


def classify_aspect(
    degree_a: float,
    degree_b: float,
    orbs: Optional[Dict[str, float]] = None
) -> Optional[AspectMatch]:
    """
    Классифицирует угловое отношение двух позиций.

    Returns:
        AspectMatch для первого аспекта (по возрастанию орбиса), в орбис которого
        попадает разница, или None

    Raises:
        InvalidGeometry: градус вне диапазона [0, 360)
    """
    a = _validate_degree(degree_a)
    b = _validate_degree(degree_b)
    diff = angular_difference(a, b)

    for angle, name, orb in ordered_aspects(orbs):
        deviation = abs(diff - angle)
        if deviation <= orb:
            return AspectMatch(name=name, angle=angle, deviation=deviation, orb=orb)

    return None
