"""
Движок совместимости: расчет для пары и подбор кандидатов для зрителя.

Алгоритм подбора:
1. Чтение зрителя, его предпочтений, исключений и блокировок
   (ошибка хранилища на этом шаге прерывает запрос)
2. Грубый пул кандидатов из хранилища
3. Параллельно для каждого кандидата: фильтры и балл (из кеша или расчет);
   ошибка по одному кандидату исключает только его
4. Сортировка всех допущенных кандидатов, затем пагинация
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Tuple, Union

from app.core.database import SessionLocal
from app.services.cache_service import CompatibilityCache, RedisCompatibilityCache, compatibility_cache
from app.services.matching.aggregator import ScoreAggregator
from app.services.matching.attributes import BasicAttributeScorer, basic_attribute_scorer
from app.services.matching.config import MatchingConfig
from app.services.matching.filters import CandidateFilterPipeline
from app.services.matching.models import (
    CandidateRecord,
    CompatibilityResult,
    EligibilityReport,
    FilterParams,
    RankedCandidates,
    ScoringProfile,
)
from app.services.matching.questionnaire import QuestionnaireScorer, questionnaire_scorer
from app.services.matching.ranking import RankingEngine, ranking_engine
from app.services.matching.repository import MatchingRepository, SqlAlchemyMatchingRepository
from app.services.matching.training import TrainingScorer
from app.services.matching.utils import distance_between, pair_key
from app.services.synastry_service import SynastryService, synastry_service

logger = logging.getLogger(__name__)

Cache = Union[CompatibilityCache, RedisCompatibilityCache]

_ADMITTED = 'admitted'
_EXCLUDED = 'excluded'
_FAILED = 'failed'


class CompatibilityEngine:
    """Точка входа для расчета совместимости и подбора кандидатов"""

    def __init__(
        self,
        repository: MatchingRepository,
        cache: Optional[Cache] = None,
        profile: Optional[str] = None,
        aggregator: Optional[ScoreAggregator] = None,
        training_scorer: Optional[TrainingScorer] = None,
        synastry: Optional[SynastryService] = None,
        questionnaire: Optional[QuestionnaireScorer] = None,
        attributes: Optional[BasicAttributeScorer] = None,
        ranking: Optional[RankingEngine] = None,
        max_workers: int = MatchingConfig.MAX_WORKERS,
        max_limit: int = MatchingConfig.MAX_LIMIT,
        pool_size: int = MatchingConfig.CANDIDATE_POOL_SIZE,
        ttl_seconds: Optional[int] = None
    ):
        self.repository = repository
        self.cache = cache if cache is not None else CompatibilityCache()
        self.profile = ScoringProfile(profile or MatchingConfig.SCORING_PROFILE)
        self.aggregator = aggregator or ScoreAggregator()
        self.training_scorer = training_scorer or TrainingScorer()
        self.synastry = synastry or synastry_service
        self.questionnaire = questionnaire or questionnaire_scorer
        self.attributes = attributes or basic_attribute_scorer
        self.ranking = ranking or ranking_engine
        self.max_workers = max_workers
        self.max_limit = max_limit
        self.pool_size = pool_size
        self.ttl_seconds = ttl_seconds

    # ============ Совместимость пары ============

    def calculate_compatibility(self, user_a_id: int, user_b_id: int, use_cache: bool = True) -> CompatibilityResult:
        """
        Совместимость пары. Отсутствие данных не является ошибкой: результат деградирует
        к нейтральным значениям с указанием причин.

        Raises:
            PersistenceFailure: ошибка чтения из хранилища
        """
        if use_cache:
            cached = self.cache.get(user_a_id, user_b_id)
            if cached is not None:
                return cached

        result = self._compute(user_a_id, user_b_id)
        stored = self.cache.put(result, self.ttl_seconds)
        return stored or result

    def _compute(self, user_a_id: int, user_b_id: int) -> CompatibilityResult:
        # Данные читаются в каноническом порядке пары: результат не зависит от порядка аргументов
        user_a_id, user_b_id = pair_key(user_a_id, user_b_id)
        attributes_a = self.repository.get_basic_attributes(user_a_id)
        attributes_b = self.repository.get_basic_attributes(user_b_id)

        if self.profile == ScoringProfile.TRAINING:
            return self.training_scorer.score(attributes_a, attributes_b)

        astrological = self.synastry.score(
            self.repository.get_natal_chart(user_a_id),
            self.repository.get_natal_chart(user_b_id)
        )
        response_a = self.repository.get_questionnaire_responses(user_a_id)
        response_b = self.repository.get_questionnaire_responses(user_b_id)
        questionnaire = self.questionnaire.score(
            response_a.answers if response_a else None,
            response_b.answers if response_b else None
        )
        basic = self.attributes.score(attributes_a, attributes_b)
        return self.aggregator.aggregate(user_a_id, user_b_id, astrological, questionnaire, basic)

    def invalidate_user(self, user_id: int) -> int:
        """Сброс кеша пар пользователя после изменения его карты, анкеты или предпочтений"""
        removed = self.cache.invalidate_user(user_id)
        logger.info(f"✅ Кеш совместимости пользователя {user_id} сброшен ({removed} записей)")
        return removed

    # ============ Подбор кандидатов ============

    def get_ranked_candidates(
        self,
        viewer_id: int,
        params: Optional[FilterParams] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None
    ) -> RankedCandidates:
        """
        Отфильтрованные и отсортированные кандидаты с результатами совместимости.

        Raises:
            InvalidFilterParams: некорректные параметры фильтрации
            PersistenceFailure: ошибка чтения данных зрителя или пула кандидатов
        """
        params = params or FilterParams()
        if limit is not None:
            params = replace(params, limit=limit)
        if offset is not None:
            params = replace(params, offset=offset)
        params = params.validated(self.max_limit)

        viewer = self.repository.get_user_record(viewer_id)
        if viewer is None:
            logger.warning(f"⚠️ Зритель {viewer_id} не найден")
            return RankedCandidates(candidates=[], total_admitted=0, pool_size=0)

        pipeline = CandidateFilterPipeline(
            viewer=viewer,
            viewer_preferences=self.repository.get_preferences(viewer_id),
            params=params,
            exclusion_set=self.repository.get_exclusion_set(viewer_id),
            blocked_ids=self.repository.get_blocked_ids(viewer_id),
            eligibility_lookup=self.repository.get_eligibility_status,
        )
        pool = self.repository.list_candidate_pool(viewer_id, params, self.pool_size)

        admitted: List[CandidateRecord] = []
        skipped: List[int] = []
        if pool:
            workers = max(1, min(self.max_workers, len(pool)))
            with ThreadPoolExecutor(max_workers=workers) as executor:
                outcomes = list(executor.map(
                    lambda candidate: self._process_candidate(pipeline, viewer_id, candidate),
                    pool
                ))
            for status, candidate in outcomes:
                if status == _ADMITTED:
                    admitted.append(candidate)
                elif status == _FAILED:
                    skipped.append(candidate.user_id)

        page = self.ranking.rank_and_paginate(admitted, params.limit, params.offset)
        logger.info(
            f"✅ Подбор для {viewer_id}: пул {len(pool)}, допущено {len(admitted)}, "
            f"пропущено из-за ошибок {len(skipped)}, на странице {len(page)}"
        )
        return RankedCandidates(
            candidates=page,
            total_admitted=len(admitted),
            pool_size=len(pool),
            skipped_ids=skipped,
        )

    def _process_candidate(
        self,
        pipeline: CandidateFilterPipeline,
        viewer_id: int,
        candidate: CandidateRecord
    ) -> Tuple[str, CandidateRecord]:
        try:
            decision = pipeline.evaluate(candidate)
            if not decision.admitted:
                logger.debug(f"Кандидат {candidate.user_id} исключен: {decision.reason}")
                return _EXCLUDED, candidate

            pipeline.apply(candidate, decision)
            candidate.compatibility = self.calculate_compatibility(viewer_id, candidate.user_id)
            return _ADMITTED, candidate
        except Exception as e:
            logger.error(f"❌ Кандидат {candidate.user_id} пропущен: {str(e)}", exc_info=True)
            return _FAILED, candidate

    # ============ Взаимная проверка пары ============

    def check_match_eligibility(self, user_a_id: int, user_b_id: int) -> EligibilityReport:
        """
        Взаимная проверка пары: возраст каждого в диапазоне другого (по умолчанию 18-100)
        и расстояние не больше предела каждого (по умолчанию 50 км).
        Без координат у любого из пользователей расстояние не проверяется.
        """
        user_a = self.repository.get_user_record(user_a_id)
        user_b = self.repository.get_user_record(user_b_id)
        if user_a is None or user_b is None:
            return EligibilityReport(user_a_id, user_b_id, eligible=False, reasons=['user_not_found'])

        preferences_a = self.repository.get_preferences(user_a_id)
        preferences_b = self.repository.get_preferences(user_b_id)
        reasons = []

        for preferences, other in ((preferences_a, user_b), (preferences_b, user_a)):
            if other.age is None:
                continue
            min_age = preferences.min_age if preferences.min_age is not None else MatchingConfig.DEFAULT_MIN_AGE
            max_age = preferences.max_age if preferences.max_age is not None else MatchingConfig.DEFAULT_MAX_AGE
            if not (min_age <= other.age <= max_age):
                reasons.append(f'age_out_of_range_for_{preferences.user_id}')

        distance = distance_between(user_a.latitude, user_a.longitude, user_b.latitude, user_b.longitude)
        if distance is not None:
            for preferences in (preferences_a, preferences_b):
                max_distance = (
                    preferences.max_distance_km if preferences.max_distance_km is not None
                    else MatchingConfig.DEFAULT_MAX_DISTANCE_KM
                )
                if distance > max_distance:
                    reasons.append(f'distance_exceeds_limit_for_{preferences.user_id}')

        return EligibilityReport(
            user_a_id=user_a_id,
            user_b_id=user_b_id,
            eligible=not reasons,
            reasons=reasons,
            distance_km=round(distance, 2) if distance is not None else None,
        )


def build_matching_engine() -> CompatibilityEngine:
    """Движок с репозиторием SQLAlchemy и глобальным кешем"""
    return CompatibilityEngine(
        repository=SqlAlchemyMatchingRepository(SessionLocal),
        cache=compatibility_cache,
    )
