"""
Совместимость по анкете.

Алгоритм работы:
1. Анкета состоит из групп по N вопросов (по умолчанию 5 x 5 = 25 ответов)
2. Для каждого вопроса: расхождение = |ответ A - ответ B|, балл вопроса = 4 - расхождение
3. Балл группы = среднее баллов вопросов / 4 * 100
4. Итог = среднее по группам, ограниченное диапазоном 0-100
"""
import math
import logging
from typing import Any, List, Optional, Sequence

from app.services.matching.config import MatchingConfig
from app.services.matching.models import ComponentScore
from app.services.matching.utils import clamp, grade_for_score, round_half_up

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
NEUTRAL_GRADE = 'C'


class QuestionnaireScorer:
    """Расчет совместимости по ответам анкеты"""

    def __init__(
        self,
        groups: int = MatchingConfig.QUESTIONNAIRE_GROUPS,
        per_group: int = MatchingConfig.QUESTIONNAIRE_PER_GROUP,
        answer_min: int = MatchingConfig.ANSWER_MIN,
        answer_max: int = MatchingConfig.ANSWER_MAX,
        neutral_answer: int = MatchingConfig.NEUTRAL_ANSWER
    ):
        self.groups = groups
        self.per_group = per_group
        self.answer_min = answer_min
        self.answer_max = answer_max
        self.neutral_answer = neutral_answer

    @property
    def required_answers(self) -> int:
        return self.groups * self.per_group

    @property
    def max_divergence(self) -> int:
        return self.answer_max - self.answer_min

    def normalize_answer(self, value: Any) -> int:
        """Нечисловой ответ заменяется нейтральным, числовой ограничивается шкалой"""
        if isinstance(value, bool) or value is None:
            return self.neutral_answer
        try:
            number = float(value)
        except (TypeError, ValueError):
            return self.neutral_answer
        if math.isnan(number) or math.isinf(number):
            return self.neutral_answer
        return int(clamp(round_half_up(number), self.answer_min, self.answer_max))

    def score(
        self,
        answers_a: Optional[Sequence[Any]],
        answers_b: Optional[Sequence[Any]]
    ) -> ComponentScore:
        """Балл совместимости по анкете (симметричен относительно A и B)"""
        if answers_a is None or answers_b is None:
            return self._neutral('missing_questionnaire')
        if len(answers_a) < self.required_answers or len(answers_b) < self.required_answers:
            logger.debug(
                f"Неполная анкета: {len(answers_a)}/{len(answers_b)} ответов, "
                f"требуется {self.required_answers}"
            )
            return self._neutral('incomplete_questionnaire')

        group_scores: List[float] = []
        for group in range(self.groups):
            start = group * self.per_group
            raw_scores = []
            for index in range(start, start + self.per_group):
                answer_a = self.normalize_answer(answers_a[index])
                answer_b = self.normalize_answer(answers_b[index])
                raw_scores.append(self.max_divergence - abs(answer_a - answer_b))

            if raw_scores:
                group_scores.append(sum(raw_scores) / len(raw_scores) / self.max_divergence * 100)

        if not group_scores:
            return self._neutral('no_valid_groups')

        overall = round_half_up(clamp(sum(group_scores) / len(group_scores)))
        return ComponentScore(
            score=overall,
            grade=grade_for_score(overall),
            details={
                'group_scores': [round(score, 1) for score in group_scores],
                'valid_groups': len(group_scores),
            },
        )

    @staticmethod
    def _neutral(reason: str) -> ComponentScore:
        return ComponentScore(
            score=NEUTRAL_SCORE,
            grade=NEUTRAL_GRADE,
            details={'valid_groups': 0},
            reason=reason,
        )


questionnaire_scorer = QuestionnaireScorer()
