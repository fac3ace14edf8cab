"""
Совместимость спарринг-партнеров (профиль развертывания training).

Алгоритм работы:
1. Физика (до 40): весовой класс совпадает 25 / соседний 15,
   уровень опыта совпадает 15 / соседний 10
2. Стиль (до 30): каждый общий тип тренировок 5 (не более 20), совпадение интенсивности 10
3. Локация (до 25): один клуб 20, у обоих указано расписание 5
"""
import logging
from typing import Optional

from app.services.matching.categories import EXPERIENCE_LEVELS, WEIGHT_CLASSES, step_distance
from app.services.matching.config import MatchingConfig
from app.services.matching.models import BasicAttributes, CompatibilityResult, ComponentScore, ScoringProfile
from app.services.matching.utils import clamp, grade_for_score, normalize_label, round_half_up

logger = logging.getLogger(__name__)

WEIGHT_CLASS_EXACT = 25
WEIGHT_CLASS_ADJACENT = 15
EXPERIENCE_EXACT = 15
EXPERIENCE_ADJACENT = 10
TRAINING_TYPE_POINTS = 5
TRAINING_TYPE_MAX = 20
INTENSITY_MATCH = 10
SAME_ORGANIZATION = 20
AVAILABILITY_BOTH = 5
LOCATION_MAX = SAME_ORGANIZATION + AVAILABILITY_BOTH


def physical_grade(points: float) -> str:
    if points >= 35:
        return 'A'
    if points >= 25:
        return 'B'
    return 'C'


def style_grade(score: float) -> str:
    if score >= 70:
        return 'A'
    if score >= 50:
        return 'B'
    return 'C'


class TrainingScorer:
    """Расчет совместимости для подбора спарринг-партнеров"""

    def __init__(self, threshold: Optional[int] = None):
        self.threshold = threshold if threshold is not None else MatchingConfig.get_recommendation_threshold(
            ScoringProfile.TRAINING.value
        )

    def score(self, attributes_a: BasicAttributes, attributes_b: BasicAttributes) -> CompatibilityResult:
        physical = self._physical_points(attributes_a, attributes_b)
        style = self._style_points(attributes_a, attributes_b)
        location = self._location_points(attributes_a, attributes_b)

        overall = int(clamp(round_half_up(physical + style + location)))
        reasons = []
        if attributes_a.weight_class is None or attributes_b.weight_class is None:
            reasons.append('missing_weight_class')
        if attributes_a.experience_level is None or attributes_b.experience_level is None:
            reasons.append('missing_experience_level')

        return CompatibilityResult(
            user_a_id=attributes_a.user_id,
            user_b_id=attributes_b.user_id,
            overall_score=overall,
            grade=grade_for_score(overall),
            recommended=overall >= self.threshold,
            components={
                'physical': ComponentScore(score=physical, grade=physical_grade(physical)),
                'style': ComponentScore(score=style, grade=style_grade(overall)),
                'location': ComponentScore(
                    score=location,
                    grade=grade_for_score(location / LOCATION_MAX * 100),
                ),
            },
            weight_profile='training',
            scoring_profile=ScoringProfile.TRAINING.value,
            reasons=reasons,
        )

    @staticmethod
    def _physical_points(attributes_a: BasicAttributes, attributes_b: BasicAttributes) -> int:
        points = 0
        weight_steps = step_distance(WEIGHT_CLASSES, attributes_a.weight_class, attributes_b.weight_class)
        if weight_steps == 0:
            points += WEIGHT_CLASS_EXACT
        elif weight_steps == 1:
            points += WEIGHT_CLASS_ADJACENT

        experience_steps = step_distance(EXPERIENCE_LEVELS, attributes_a.experience_level, attributes_b.experience_level)
        if experience_steps == 0:
            points += EXPERIENCE_EXACT
        elif experience_steps == 1:
            points += EXPERIENCE_ADJACENT
        return points

    @staticmethod
    def _style_points(attributes_a: BasicAttributes, attributes_b: BasicAttributes) -> int:
        types_a = {normalize_label(item) for item in attributes_a.training_types if normalize_label(item)}
        types_b = {normalize_label(item) for item in attributes_b.training_types if normalize_label(item)}
        points = min(len(types_a & types_b) * TRAINING_TYPE_POINTS, TRAINING_TYPE_MAX)

        intensity_a = normalize_label(attributes_a.intensity)
        if intensity_a is not None and intensity_a == normalize_label(attributes_b.intensity):
            points += INTENSITY_MATCH
        return points

    @staticmethod
    def _location_points(attributes_a: BasicAttributes, attributes_b: BasicAttributes) -> int:
        points = 0
        if attributes_a.organization_id is not None and attributes_a.organization_id == attributes_b.organization_id:
            points += SAME_ORGANIZATION
        if attributes_a.has_availability and attributes_b.has_availability:
            points += AVAILABILITY_BOTH
        return points
