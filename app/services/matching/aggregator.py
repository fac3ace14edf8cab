"""
Итоговый балл совместимости.

Вектор весов выбирается по тому, какие продвинутые компоненты (синастрия, анкета)
рассчитаны по реальным данным обоих пользователей:
- full: есть оба
- questionnaire_only / astrological_only: есть один
- basic_only: нет ни одного
"""
import logging
from typing import Dict, Optional

from app.services.matching.config import MatchingConfig
from app.services.matching.models import CompatibilityResult, ComponentScore, ScoringProfile
from app.services.matching.utils import clamp, grade_for_score, round_half_up

logger = logging.getLogger(__name__)


def select_weight_profile(has_astrological: bool, has_questionnaire: bool) -> str:
    """Название вектора весов по доступности продвинутых компонентов"""
    if has_astrological and has_questionnaire:
        return 'full'
    if has_questionnaire:
        return 'questionnaire_only'
    if has_astrological:
        return 'astrological_only'
    return 'basic_only'


class ScoreAggregator:
    """Взвешенное объединение компонентов в итоговый балл 0-100"""

    def __init__(
        self,
        weight_profiles: Optional[Dict[str, Dict[str, float]]] = None,
        threshold: Optional[int] = None
    ):
        self.weight_profiles = weight_profiles if weight_profiles is not None else MatchingConfig.get_weight_profiles()
        self.threshold = threshold if threshold is not None else MatchingConfig.get_recommendation_threshold(
            ScoringProfile.DATING.value
        )
        MatchingConfig.validate(weight_profiles=self.weight_profiles, threshold=self.threshold)

    def aggregate(
        self,
        user_a_id: int,
        user_b_id: int,
        astrological: Optional[ComponentScore],
        questionnaire: Optional[ComponentScore],
        basic: Dict[str, ComponentScore]
    ) -> CompatibilityResult:
        """
        Итоговый результат пары.

        Args:
            astrological: балл синастрии (reason != None означает, что данных нет)
            questionnaire: балл анкеты
            basic: базовые компоненты по названиям
        """
        has_astrological = astrological is not None and not astrological.is_default
        has_questionnaire = questionnaire is not None and not questionnaire.is_default
        profile_name = select_weight_profile(has_astrological, has_questionnaire)
        weights = self.weight_profiles[profile_name]

        components: Dict[str, ComponentScore] = dict(basic)
        if astrological is not None:
            components['astrological'] = astrological
        if questionnaire is not None:
            components['questionnaire'] = questionnaire

        total = 0.0
        for name, weight in weights.items():
            component = components.get(name)
            value = clamp(component.score) if component is not None else 0.0
            total += value * weight

        overall = int(clamp(round_half_up(total)))
        reasons = [
            component.reason
            for name, component in components.items()
            if name in ('astrological', 'questionnaire') and component.reason
        ]

        return CompatibilityResult(
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            overall_score=overall,
            grade=grade_for_score(overall),
            recommended=overall >= self.threshold,
            components=components,
            weight_profile=profile_name,
            scoring_profile=ScoringProfile.DATING.value,
            reasons=reasons,
        )
