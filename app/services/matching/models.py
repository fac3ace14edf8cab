"""
Модели данных движка совместимости.

Значения по умолчанию применяются здесь, на границе десериализации,
чтобы скореры работали с типизированными структурами без проверок на None.
"""
from typing import List, Optional, Dict, Any, Set, Tuple
from datetime import datetime, timezone
from dataclasses import dataclass, field, replace
from enum import Enum

from app.services.matching.exceptions import InvalidFilterParams


class ScoringProfile(str, Enum):
    """Профиль развертывания"""
    DATING = "dating"
    TRAINING = "training"


class SwipeAction(str, Enum):
    """Действие пользователя над кандидатом"""
    LIKE = "like"
    PASS = "pass"
    SUPER_LIKE = "super_like"


class MatchRequestStatus(str, Enum):
    """Статус запроса на знакомство/спарринг"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


@dataclass
class BodyPlacement:
    """Положение точки карты: знак, градус в знаке, опционально абсолютный градус"""
    sign: Optional[str] = None
    degree: Optional[float] = None
    absolute_degree: Optional[float] = None


@dataclass
class NatalChart:
    """Натальная карта пользователя (только чтение)"""
    user_id: int
    placements: Dict[str, BodyPlacement] = field(default_factory=dict)
    calculated_at: Optional[datetime] = None

    def get(self, body: str) -> Optional[BodyPlacement]:
        return self.placements.get(body.lower())


@dataclass
class QuestionnaireResponse:
    """Ответы анкеты. Значения могут быть любыми: нормализуются при расчете"""
    user_id: int
    answers: List[Any] = field(default_factory=list)
    submitted_at: Optional[datetime] = None


@dataclass
class Preferences:
    """Предпочтения пользователя для подбора"""
    user_id: int
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    looking_for: List[str] = field(default_factory=list)
    max_distance_km: Optional[float] = None
    allow_cross_group: bool = False


@dataclass
class BasicAttributes:
    """Базовые атрибуты профиля (вспомогательные компоненты и профиль тренировок)"""
    user_id: int
    interests: Set[str] = field(default_factory=set)
    traits: Set[str] = field(default_factory=set)
    politics: Optional[str] = None
    education: Optional[str] = None
    children: Optional[str] = None
    age: Optional[int] = None
    # Профиль тренировок
    weight_class: Optional[str] = None
    experience_level: Optional[str] = None
    training_types: Set[str] = field(default_factory=set)
    intensity: Optional[str] = None
    organization_id: Optional[int] = None
    has_availability: bool = False


@dataclass
class ComponentScore:
    """Балл одного компонента совместимости"""
    score: float
    grade: str
    details: Dict[str, Any] = field(default_factory=dict)
    reason: Optional[str] = None  # Причина деградации к значению по умолчанию

    @property
    def is_default(self) -> bool:
        return self.reason is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'score': self.score,
            'grade': self.grade,
            'details': self.details,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentScore":
        return cls(
            score=float(data.get('score', 0)),
            grade=data.get('grade', 'F'),
            details=data.get('details') or {},
            reason=data.get('reason'),
        )


@dataclass
class CompatibilityResult:
    """Результат расчета совместимости для неупорядоченной пары"""
    user_a_id: int
    user_b_id: int
    overall_score: int
    grade: str
    recommended: bool
    components: Dict[str, ComponentScore] = field(default_factory=dict)
    weight_profile: str = 'basic_only'
    scoring_profile: str = ScoringProfile.DATING.value
    reasons: List[str] = field(default_factory=list)
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        # Канонический порядок пары: (min, max)
        if self.user_a_id > self.user_b_id:
            self.user_a_id, self.user_b_id = self.user_b_id, self.user_a_id

    @property
    def pair_key(self) -> Tuple[int, int]:
        return (self.user_a_id, self.user_b_id)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'user_a_id': self.user_a_id,
            'user_b_id': self.user_b_id,
            'overall_score': self.overall_score,
            'grade': self.grade,
            'recommended': self.recommended,
            'components': {name: component.to_dict() for name, component in self.components.items()},
            'weight_profile': self.weight_profile,
            'scoring_profile': self.scoring_profile,
            'reasons': list(self.reasons),
            'computed_at': self.computed_at.isoformat(),
            'expires_at': self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompatibilityResult":
        expires_at = data.get('expires_at')
        return cls(
            user_a_id=int(data['user_a_id']),
            user_b_id=int(data['user_b_id']),
            overall_score=int(data['overall_score']),
            grade=data['grade'],
            recommended=bool(data['recommended']),
            components={
                name: ComponentScore.from_dict(component)
                for name, component in (data.get('components') or {}).items()
            },
            weight_profile=data.get('weight_profile', 'basic_only'),
            scoring_profile=data.get('scoring_profile', ScoringProfile.DATING.value),
            reasons=list(data.get('reasons') or []),
            computed_at=datetime.fromisoformat(data['computed_at']),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


@dataclass
class CandidateRecord:
    """Кандидат в рамках одного запроса: публичные атрибуты, предпочтения и совместимость"""
    user_id: int
    name: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    zodiac_sign: Optional[str] = None
    weight_class: Optional[str] = None
    experience_level: Optional[str] = None
    organization_id: Optional[int] = None
    organization_cross_group: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    session_count: int = 0
    last_active: Optional[datetime] = None
    preferences: Optional[Preferences] = None
    compatibility: Optional[CompatibilityResult] = None
    is_same_group: bool = False
    distance_km: Optional[float] = None


@dataclass
class FilterParams:
    """Параметры фильтрации списка кандидатов"""
    category_filter: Optional[str] = None
    experience_filter: Optional[str] = None
    sign_filter: Optional[str] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    max_distance_km: Optional[float] = None
    cross_group: bool = False
    exclude_ids: Set[int] = field(default_factory=set)
    limit: int = 20
    offset: int = 0

    def validated(self, max_limit: int) -> "FilterParams":
        """
        Проверяет параметры и возвращает копию с ограниченным limit.

        Raises:
            InvalidFilterParams: отрицательные limit/offset, min_age > max_age и т.п.
        """
        if self.limit is None or self.limit < 0:
            raise InvalidFilterParams(f"limit должен быть неотрицательным: {self.limit}")
        if self.offset is None or self.offset < 0:
            raise InvalidFilterParams(f"offset должен быть неотрицательным: {self.offset}")
        if self.min_age is not None and self.min_age < 0:
            raise InvalidFilterParams(f"min_age должен быть неотрицательным: {self.min_age}")
        if self.max_age is not None and self.max_age < 0:
            raise InvalidFilterParams(f"max_age должен быть неотрицательным: {self.max_age}")
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise InvalidFilterParams(f"min_age ({self.min_age}) больше max_age ({self.max_age})")
        if self.max_distance_km is not None and self.max_distance_km < 0:
            raise InvalidFilterParams(f"max_distance_km должен быть неотрицательным: {self.max_distance_km}")
        return replace(
            self,
            limit=min(self.limit, max_limit),
            exclude_ids=set(self.exclude_ids or ()),
        )


@dataclass
class FilterDecision:
    """Решение фильтра по одному кандидату"""
    admitted: bool
    reason: Optional[str] = None
    distance_km: Optional[float] = None


@dataclass
class RankedCandidates:
    """Результат подбора: страница кандидатов и статистика"""
    candidates: List[CandidateRecord]
    total_admitted: int
    pool_size: int
    skipped_ids: List[int] = field(default_factory=list)


@dataclass
class EligibilityReport:
    """Результат взаимной проверки пары по возрасту и расстоянию"""
    user_a_id: int
    user_b_id: int
    eligible: bool
    reasons: List[str] = field(default_factory=list)
    distance_km: Optional[float] = None
