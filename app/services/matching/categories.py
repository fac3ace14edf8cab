"""
Упорядоченные категории (весовые классы, уровни опыта) и словарь пола/категорий.
Соседние значения в упорядоченном списке (+/- 1 шаг) считаются совместимыми.
"""
import logging
from typing import Iterable, List, Optional

from app.services.matching.utils import normalize_label

logger = logging.getLogger(__name__)

WEIGHT_CLASSES = [
    'flyweight',
    'super_flyweight',
    'bantamweight',
    'super_bantamweight',
    'featherweight',
    'super_featherweight',
    'lightweight',
    'super_lightweight',
    'welterweight',
    'super_welterweight',
    'middleweight',
    'super_middleweight',
    'light_heavyweight',
    'cruiserweight',
    'heavyweight',
    'super_heavyweight',
]

EXPERIENCE_LEVELS = ['beginner', 'intermediate', 'advanced', 'pro']

# Значения фильтра, пропускающие всех
FILTER_WILDCARDS = {'any', 'all', 'any_date'}

# Значения предпочтения по полу, допускающие любую категорию
PREFERENCE_WILDCARDS = {'any', 'all', 'both', 'everyone'}

GENDER_ALIASES = {
    'male': 'male',
    'males': 'male',
    'man': 'male',
    'men': 'male',
    'female': 'female',
    'females': 'female',
    'woman': 'female',
    'women': 'female',
    'non_binary': 'non_binary',
    'nonbinary': 'non_binary',
    'other': 'non_binary',
}


def step_distance(ordered: List[str], value_a: Optional[str], value_b: Optional[str]) -> Optional[int]:
    """Число шагов между значениями в упорядоченном списке или None для неизвестных"""
    a = normalize_label(value_a)
    b = normalize_label(value_b)
    if a not in ordered or b not in ordered:
        return None
    return abs(ordered.index(a) - ordered.index(b))


def is_adjacent(ordered: List[str], value_a: Optional[str], value_b: Optional[str]) -> bool:
    """Значения совпадают или отличаются на один шаг"""
    distance = step_distance(ordered, value_a, value_b)
    return distance is not None and distance <= 1


def is_wildcard_filter(filter_value: Optional[str]) -> bool:
    label = normalize_label(filter_value)
    return label is None or label in FILTER_WILDCARDS


def matches_adjacency_filter(ordered: List[str], value: Optional[str], filter_value: Optional[str]) -> bool:
    """
    Фильтр с допуском соседних значений: 'any'/пустой пропускает всех,
    иначе значение кандидата должно совпадать с фильтром или быть соседним.
    """
    if is_wildcard_filter(filter_value):
        return True
    if normalize_label(filter_value) not in ordered:
        logger.warning(f"⚠️ Неизвестное значение фильтра: {filter_value!r}")
        return False
    return is_adjacent(ordered, value, filter_value)


def normalize_gender(value: Optional[str]) -> Optional[str]:
    """Каноническая категория пола ('male', 'female', 'non_binary') или None"""
    label = normalize_label(value)
    if label is None:
        return None
    return GENDER_ALIASES.get(label, label)


def preference_admits(looking_for: Optional[Iterable[str]], gender: Optional[str]) -> bool:
    """
    Допускает ли предпочтение категорию другого пользователя.
    Пустое предпочтение, wildcard или неизвестный пол другой стороны допускают всех.
    """
    labels = [normalize_label(item) for item in (looking_for or [])]
    labels = [label for label in labels if label]
    if not labels:
        return True
    if any(label in PREFERENCE_WILDCARDS for label in labels):
        return True
    candidate_gender = normalize_gender(gender)
    if candidate_gender is None:
        return True
    return candidate_gender in {GENDER_ALIASES.get(label, label) for label in labels}
