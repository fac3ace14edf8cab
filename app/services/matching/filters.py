"""
Фильтрация пула кандидатов для зрителя.

Проверки выполняются в фиксированном порядке, первая неудачная исключает кандидата:
1. не сам зритель
2. не в множестве исключений зрителя и не в списке исключений запроса
3. нет блокировки ни в одну сторону
4. у кандидата активное право на подбор
5. правило организаций: своя группа, либо межгрупповой режим с согласием обеих групп
6. предпочтение по категории (полу) взаимно
7. возраст в диапазоне зрителя, расстояние не больше заданного
8. фильтры с допуском соседних значений (весовой класс, опыт) и знак зодиака
"""
import logging
from typing import Callable, Iterable, List, Optional, Set, Tuple

from app.services.matching.categories import (
    EXPERIENCE_LEVELS,
    WEIGHT_CLASSES,
    is_wildcard_filter,
    matches_adjacency_filter,
    preference_admits,
)
from app.services.matching.models import CandidateRecord, FilterDecision, FilterParams, Preferences
from app.services.matching.utils import distance_between, normalize_label

logger = logging.getLogger(__name__)

EligibilityLookup = Callable[[int], bool]


class CandidateFilterPipeline:
    """Последовательность проверок кандидата для одного запроса зрителя"""

    def __init__(
        self,
        viewer: CandidateRecord,
        viewer_preferences: Preferences,
        params: FilterParams,
        exclusion_set: Optional[Set[int]] = None,
        blocked_ids: Optional[Set[int]] = None,
        eligibility_lookup: Optional[EligibilityLookup] = None
    ):
        self.viewer = viewer
        self.viewer_preferences = viewer_preferences
        self.params = params
        self.exclusion_set = set(exclusion_set or ())
        self.blocked_ids = set(blocked_ids or ())
        self.eligibility_lookup = eligibility_lookup
        self.cross_group = bool(params.cross_group or viewer_preferences.allow_cross_group)
        self.max_distance_km = (
            params.max_distance_km if params.max_distance_km is not None
            else viewer_preferences.max_distance_km
        )

    def evaluate(self, candidate: CandidateRecord) -> FilterDecision:
        """
        Решение по одному кандидату.
        Исключения (например, ошибка чтения права на подбор) пробрасываются вызывающему.
        """
        candidate_id = candidate.user_id

        if candidate_id == self.viewer.user_id:
            return FilterDecision(False, 'self')

        if candidate_id in self.exclusion_set:
            return FilterDecision(False, 'already_acted')
        if candidate_id in self.params.exclude_ids:
            return FilterDecision(False, 'excluded_by_caller')

        if candidate_id in self.blocked_ids:
            return FilterDecision(False, 'blocked')

        if self.eligibility_lookup is not None and not self.eligibility_lookup(candidate_id):
            return FilterDecision(False, 'not_eligible')

        if not self._group_scope_allows(candidate):
            return FilterDecision(False, 'group_scope')

        candidate_preferences = candidate.preferences.looking_for if candidate.preferences else None
        if not preference_admits(self.viewer_preferences.looking_for, candidate.gender):
            return FilterDecision(False, 'category_preference')
        if not preference_admits(candidate_preferences, self.viewer.gender):
            return FilterDecision(False, 'category_preference')

        if not self._age_in_range(candidate.age):
            return FilterDecision(False, 'age_range')

        distance = distance_between(
            self.viewer.latitude, self.viewer.longitude,
            candidate.latitude, candidate.longitude
        )
        if self.max_distance_km is not None and distance is not None and distance > self.max_distance_km:
            return FilterDecision(False, 'distance', distance_km=distance)

        if not matches_adjacency_filter(WEIGHT_CLASSES, candidate.weight_class, self.params.category_filter):
            return FilterDecision(False, 'category_filter', distance_km=distance)
        if not matches_adjacency_filter(EXPERIENCE_LEVELS, candidate.experience_level, self.params.experience_filter):
            return FilterDecision(False, 'experience_filter', distance_km=distance)
        if not self._sign_matches(candidate.zodiac_sign):
            return FilterDecision(False, 'sign_filter', distance_km=distance)

        return FilterDecision(True, distance_km=distance)

    def is_same_group(self, candidate: CandidateRecord) -> bool:
        return self.viewer.organization_id is not None and candidate.organization_id == self.viewer.organization_id

    def filter(self, candidates: Iterable[CandidateRecord]) -> Tuple[List[CandidateRecord], List[int]]:
        """
        Последовательная фильтрация пула.

        Returns:
            (допущенные кандидаты, id кандидатов, на которых проверка упала)
        """
        admitted: List[CandidateRecord] = []
        failed: List[int] = []
        for candidate in candidates:
            try:
                decision = self.evaluate(candidate)
            except Exception as e:
                logger.error(f"❌ Ошибка проверки кандидата {candidate.user_id}: {str(e)}", exc_info=True)
                failed.append(candidate.user_id)
                continue
            if decision.admitted:
                self.apply(candidate, decision)
                admitted.append(candidate)
        return admitted, failed

    def apply(self, candidate: CandidateRecord, decision: FilterDecision):
        """Переносит вычисленные при фильтрации признаки в запись кандидата"""
        candidate.distance_km = decision.distance_km
        candidate.is_same_group = self.is_same_group(candidate)

    def _group_scope_allows(self, candidate: CandidateRecord) -> bool:
        if candidate.organization_id == self.viewer.organization_id:
            return True
        if not self.cross_group:
            return False
        return self.viewer.organization_cross_group and candidate.organization_cross_group

    def _age_in_range(self, age: Optional[int]) -> bool:
        # Возраст не указан: кандидат не отсекается
        if age is None:
            return True
        bounds_min = [value for value in (self.viewer_preferences.min_age, self.params.min_age) if value is not None]
        bounds_max = [value for value in (self.viewer_preferences.max_age, self.params.max_age) if value is not None]
        if bounds_min and age < max(bounds_min):
            return False
        if bounds_max and age > min(bounds_max):
            return False
        return True

    def _sign_matches(self, sign: Optional[str]) -> bool:
        if is_wildcard_filter(self.params.sign_filter):
            return True
        return normalize_label(sign) == normalize_label(self.params.sign_filter)
