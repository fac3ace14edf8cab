"""
Астрологическая совместимость (синастрия) двух натальных карт.

Алгоритм работы:
1. Для каждой неупорядоченной пары основных точек (Солнце, Луна, Асцендент,
   Меркурий, Венера, Марс) берется положение первой точки в карте A и второй в карте B
2. Определяется аспект между позициями (самый узкий орбис проверяется первым)
3. Вес пары зависит от участвующих точек и точности аспекта
4. Балл = 50 + (средневзвешенная гармония) * 25, ограничен диапазоном 0-100
"""
import logging
from typing import Dict, List, Optional

from app.services.matching.config import MatchingConfig
from app.services.matching.exceptions import InvalidGeometry
from app.services.matching.geometry import absolute_degree, classify_aspect
from app.services.matching.models import BodyPlacement, ComponentScore, NatalChart
from app.services.matching.utils import clamp, grade_for_score, round_half_up

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
NEUTRAL_GRADE = 'C'


class SynastryService:
    def __init__(self, orbs: Optional[Dict[str, float]] = None):
        self.orbs = orbs
        self.core_bodies = list(MatchingConfig.CORE_BODIES)
        self.harmony = dict(MatchingConfig.ASPECT_HARMONY)
        self.aspects_interpretation = {
            'conjunction': 'сильное соединение энергий',
            'sextile': 'гармоничное взаимодействие',
            'square': 'напряжение и конфликты',
            'trine': 'естественная поддержка',
            'opposition': 'полярность и противостояние',
            'quincunx': 'необходимость постоянной подстройки',
        }

    def score(self, chart_a: Optional[NatalChart], chart_b: Optional[NatalChart]) -> ComponentScore:
        """Балл синастрии. Без карты у любого из пользователей возвращает нейтральные 50/C"""
        if chart_a is None or chart_b is None:
            return self._neutral('missing_natal_chart')
        if not self._has_core_data(chart_a) or not self._has_core_data(chart_b):
            return self._neutral('missing_placements')

        orbs = self.orbs if self.orbs is not None else MatchingConfig.get_orbs()
        aspects: List[Dict] = []
        weighted_harmony = 0.0
        total_weight = 0.0
        processed = set()

        for body_a in self.core_bodies:
            for body_b in self.core_bodies:
                key = tuple(sorted((body_a, body_b)))
                if key in processed:
                    continue
                processed.add(key)

                degree_a = self._placement_degree(chart_a.get(body_a))
                degree_b = self._placement_degree(chart_b.get(body_b))
                if degree_a is None or degree_b is None:
                    continue

                try:
                    aspect = classify_aspect(degree_a, degree_b, orbs)
                except InvalidGeometry as e:
                    logger.warning(
                        f"⚠️ Пропуск пары {body_a}/{body_b} "
                        f"(пользователи {chart_a.user_id}/{chart_b.user_id}): {str(e)}"
                    )
                    continue

                if aspect is None:
                    continue

                weight = self._pair_weight(body_a, body_b)
                tightness = clamp(1 - aspect.deviation / aspect.orb, 0.0, 1.0) if aspect.orb > 0 else 0.0
                weight *= 1 + tightness * MatchingConfig.TIGHTNESS_BONUS
                harmony = self.harmony.get(aspect.name, 0.0)

                weighted_harmony += harmony * weight
                total_weight += weight
                aspects.append({
                    'body_a': body_a,
                    'body_b': body_b,
                    'aspect': aspect.name,
                    'angle': aspect.angle,
                    'deviation': round(aspect.deviation, 4),
                    'weight': round(weight, 4),
                    'harmony': harmony,
                    'interpretation': self.aspects_interpretation.get(aspect.name),
                })

        if total_weight > 0:
            harmony_score = weighted_harmony / total_weight
            raw_score = clamp(NEUTRAL_SCORE + harmony_score * 25)
        else:
            harmony_score = 0.0
            raw_score = NEUTRAL_SCORE

        overall = round_half_up(raw_score)
        return ComponentScore(
            score=overall,
            grade=grade_for_score(raw_score),
            details={
                'aspects_found': len(aspects),
                'harmony_score': round(harmony_score, 4),
                'total_weight': round(total_weight, 4),
                'aspects': aspects,
                'summary': self._generate_synastry_summary(aspects),
            },
        )

    def _has_core_data(self, chart: NatalChart) -> bool:
        return any(self._placement_degree(chart.get(body)) is not None for body in self.core_bodies)

    @staticmethod
    def _placement_degree(placement: Optional[BodyPlacement]) -> Optional[float]:
        """Абсолютный градус точки: предрасчитанный или по знаку и градусу в знаке"""
        if placement is None:
            return None
        if placement.absolute_degree is not None:
            return placement.absolute_degree
        if placement.sign is None:
            return None
        return absolute_degree(placement.sign, placement.degree)

    @staticmethod
    def _pair_weight(body_a: str, body_b: str) -> float:
        """Базовый вес пары точек"""
        pair = {body_a, body_b}
        if pair == {'sun', 'moon'}:
            return MatchingConfig.BODY_WEIGHT_SUN_MOON
        if pair == {'venus', 'mars'}:
            return MatchingConfig.BODY_WEIGHT_VENUS_MARS
        if pair & MatchingConfig.LUMINARIES:
            return MatchingConfig.BODY_WEIGHT_LUMINARY
        return MatchingConfig.BODY_WEIGHT_DEFAULT

    def _generate_synastry_summary(self, aspects: List[Dict]) -> str:
        """Генерация сводки по синастрии"""
        if not aspects:
            return "Минимальные аспекты взаимодействия"

        harmony_aspects = [a for a in aspects if a['harmony'] > 0]
        challenge_aspects = [a for a in aspects if a['harmony'] < 0]

        summary = f"Всего аспектов: {len(aspects)} "
        summary += f"(гармоничные: {len(harmony_aspects)}, напряженные: {len(challenge_aspects)})"

        return summary

    @staticmethod
    def _neutral(reason: str) -> ComponentScore:
        return ComponentScore(
            score=NEUTRAL_SCORE,
            grade=NEUTRAL_GRADE,
            details={'aspects_found': 0},
            reason=reason,
        )


synastry_service = SynastryService()
