"""
Базовые компоненты совместимости: интересы, черты, взгляды, образование, дети, возраст.
Каждый компонент независимо ограничен диапазоном 0-100.
"""
import logging
from typing import Dict, Iterable, Optional

from app.services.matching.models import BasicAttributes, ComponentScore
from app.services.matching.utils import clamp, grade_for_score, normalize_label

logger = logging.getLogger(__name__)

# Политические лагеря
POLITICS_CAMPS = {
    'liberal': 'left',
    'progressive': 'left',
    'conservative': 'right',
    'traditional': 'right',
}
POLITICS_NEUTRAL = 'moderate'

POLITICS_EXACT = 100
POLITICS_SAME_CAMP = 75
POLITICS_NEUTRAL_SIDE = 50
POLITICS_OPPOSITE = 25

EDUCATION_EXACT = 100
EDUCATION_PARTIAL = 70

CHILDREN_EXACT = 100
CHILDREN_MAYBE = 60
CHILDREN_MISMATCH = 20

AGE_PENALTY_PER_YEAR = 5


def _normalize_tags(tags: Optional[Iterable[str]]) -> set:
    if not tags:
        return set()
    return {normalize_label(tag) for tag in tags if normalize_label(tag)}


def jaccard_similarity(tags_a: Optional[Iterable[str]], tags_b: Optional[Iterable[str]]) -> float:
    """Коэффициент Жаккара |A∩B| / |A∪B| * 100. Пустое множество с любой стороны дает 0"""
    set_a = _normalize_tags(tags_a)
    set_b = _normalize_tags(tags_b)
    if not set_a or not set_b:
        return 0.0
    return len(set_a & set_b) / len(set_a | set_b) * 100


def politics_affinity(politics_a: Optional[str], politics_b: Optional[str]) -> Optional[int]:
    a = normalize_label(politics_a)
    b = normalize_label(politics_b)
    if a is None or b is None:
        return None
    if a == b:
        return POLITICS_EXACT
    camp_a = POLITICS_CAMPS.get(a)
    camp_b = POLITICS_CAMPS.get(b)
    if camp_a is not None and camp_a == camp_b:
        return POLITICS_SAME_CAMP
    if POLITICS_NEUTRAL in (a, b):
        return POLITICS_NEUTRAL_SIDE
    return POLITICS_OPPOSITE


def education_match(education_a: Optional[str], education_b: Optional[str]) -> Optional[int]:
    a = normalize_label(education_a)
    b = normalize_label(education_b)
    if a is None or b is None:
        return None
    return EDUCATION_EXACT if a == b else EDUCATION_PARTIAL


def children_match(children_a: Optional[str], children_b: Optional[str]) -> Optional[int]:
    a = normalize_label(children_a)
    b = normalize_label(children_b)
    if a is None or b is None:
        return None
    if a == b:
        return CHILDREN_EXACT
    if 'maybe' in (a, b):
        return CHILDREN_MAYBE
    return CHILDREN_MISMATCH


def age_gap_score(age_a: Optional[int], age_b: Optional[int]) -> Optional[int]:
    if age_a is None or age_b is None:
        return None
    return max(0, 100 - AGE_PENALTY_PER_YEAR * abs(int(age_a) - int(age_b)))


class BasicAttributeScorer:
    """Расчет вспомогательных компонентов совместимости"""

    def score(self, attributes_a: BasicAttributes, attributes_b: BasicAttributes) -> Dict[str, ComponentScore]:
        """Все базовые компоненты. Нет данных с любой стороны: компонент равен 0 с причиной"""
        interests = jaccard_similarity(attributes_a.interests, attributes_b.interests)
        traits = jaccard_similarity(attributes_a.traits, attributes_b.traits)

        components = {
            'interests': self._component(
                interests,
                None if attributes_a.interests and attributes_b.interests else 'missing_interests'
            ),
            'traits': self._component(
                traits,
                None if attributes_a.traits and attributes_b.traits else 'missing_traits'
            ),
        }

        optional_components = {
            'politics': politics_affinity(attributes_a.politics, attributes_b.politics),
            'education': education_match(attributes_a.education, attributes_b.education),
            'children': children_match(attributes_a.children, attributes_b.children),
            'age': age_gap_score(attributes_a.age, attributes_b.age),
        }
        for name, value in optional_components.items():
            if value is None:
                components[name] = self._component(0, f'missing_{name}')
            else:
                components[name] = self._component(value)

        return components

    @staticmethod
    def _component(value: float, reason: Optional[str] = None) -> ComponentScore:
        score = round(clamp(value), 2)
        return ComponentScore(score=score, grade=grade_for_score(score), reason=reason)


basic_attribute_scorer = BasicAttributeScorer()
