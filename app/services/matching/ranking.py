"""
Ранжирование кандидатов и пагинация.

Порядок сортировки (все по убыванию):
1. кандидат из той же организации
2. признак "рекомендован"
3. итоговый балл совместимости
4. количество проведенных сессий
5. давность активности (свежие выше)

Пагинация применяется только после сортировки всего отфильтрованного набора.
"""
import logging
from datetime import datetime, timezone
from typing import List, Tuple

from app.services.matching.models import CandidateRecord
from app.services.matching.utils import ensure_aware

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def ranking_key(candidate: CandidateRecord) -> Tuple[bool, bool, int, int, datetime]:
    compatibility = candidate.compatibility
    recommended = bool(compatibility.recommended) if compatibility else False
    score = compatibility.overall_score if compatibility else 0
    last_active = ensure_aware(candidate.last_active) or _EPOCH
    return (
        candidate.is_same_group,
        recommended,
        score,
        candidate.session_count or 0,
        last_active,
    )


class RankingEngine:
    """Сортировка и пагинация кандидатов"""

    def rank(self, candidates: List[CandidateRecord]) -> List[CandidateRecord]:
        return sorted(candidates, key=ranking_key, reverse=True)

    def paginate(self, candidates: List[CandidateRecord], limit: int, offset: int) -> List[CandidateRecord]:
        return candidates[offset:offset + limit]

    def rank_and_paginate(self, candidates: List[CandidateRecord], limit: int, offset: int) -> List[CandidateRecord]:
        return self.paginate(self.rank(candidates), limit, offset)


ranking_engine = RankingEngine()
