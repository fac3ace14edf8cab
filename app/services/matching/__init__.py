"""
Движок совместимости пользователей и подбора кандидатов.

Модули:
- geometry: абсолютные градусы и аспекты
- questionnaire: совместимость по анкете
- attributes: базовые компоненты (интересы, черты, взгляды, образование, дети, возраст)
- aggregator: итоговый балл по векторам весов
- training: совместимость спарринг-партнеров
- filters: фильтрация пула кандидатов
- ranking: сортировка и пагинация
- repository: доступ к хранилищу
- engine: расчет для пары и подбор кандидатов (импортируется напрямую:
  зависит от app.services.cache_service и app.services.synastry_service)
"""

from app.services.matching.config import MatchingConfig, matching_config
from app.services.matching.exceptions import (
    MatchingError,
    PersistenceFailure,
    ConfigurationError,
    InvalidFilterParams,
    InvalidGeometry,
)
from app.services.matching.models import (
    BasicAttributes,
    BodyPlacement,
    CandidateRecord,
    CompatibilityResult,
    ComponentScore,
    EligibilityReport,
    FilterParams,
    NatalChart,
    Preferences,
    RankedCandidates,
    ScoringProfile,
    SwipeAction,
)
from app.services.matching.aggregator import ScoreAggregator
from app.services.matching.attributes import BasicAttributeScorer
from app.services.matching.questionnaire import QuestionnaireScorer
from app.services.matching.training import TrainingScorer
from app.services.matching.filters import CandidateFilterPipeline
from app.services.matching.ranking import RankingEngine
from app.services.matching.repository import MatchingRepository, SqlAlchemyMatchingRepository

__all__ = [
    'MatchingConfig',
    'matching_config',
    'MatchingError',
    'PersistenceFailure',
    'ConfigurationError',
    'InvalidFilterParams',
    'InvalidGeometry',
    'BasicAttributes',
    'BodyPlacement',
    'CandidateRecord',
    'CompatibilityResult',
    'ComponentScore',
    'EligibilityReport',
    'FilterParams',
    'NatalChart',
    'Preferences',
    'RankedCandidates',
    'ScoringProfile',
    'SwipeAction',
    'ScoreAggregator',
    'BasicAttributeScorer',
    'QuestionnaireScorer',
    'TrainingScorer',
    'CandidateFilterPipeline',
    'RankingEngine',
    'MatchingRepository',
    'SqlAlchemyMatchingRepository',
]
