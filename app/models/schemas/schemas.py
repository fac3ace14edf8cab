from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import validator, Field

from app.services.matching.models import (
    CandidateRecord,
    CompatibilityResult,
    EligibilityReport,
    RankedCandidates,
    SwipeAction,
)


# Compatibility Schemas
class ComponentScoreResponse(BaseModel):
    """Балл одного компонента совместимости"""
    score: float = Field(..., ge=0, le=100, description="Балл 0-100")
    grade: str = Field(..., description="Буквенная оценка A-F")
    details: Dict[str, Any] = Field(default_factory=dict)
    reason: Optional[str] = Field(None, description="Причина деградации к значению по умолчанию")


class CompatibilityResponse(BaseModel):
    """Результат совместимости пары пользователей"""
    user_a_id: int
    user_b_id: int
    overall_score: int = Field(..., ge=0, le=100)
    grade: str
    recommended: bool
    weight_profile: str = Field(..., description="Вектор весов: full, questionnaire_only, astrological_only, basic_only, training")
    scoring_profile: str
    components: Dict[str, ComponentScoreResponse]
    reasons: List[str] = Field(default_factory=list)
    computed_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, result: CompatibilityResult) -> "CompatibilityResponse":
        return cls(
            user_a_id=result.user_a_id,
            user_b_id=result.user_b_id,
            overall_score=result.overall_score,
            grade=result.grade,
            recommended=result.recommended,
            weight_profile=result.weight_profile,
            scoring_profile=result.scoring_profile,
            components={
                name: ComponentScoreResponse(**component.to_dict())
                for name, component in result.components.items()
            },
            reasons=list(result.reasons),
            computed_at=result.computed_at,
            expires_at=result.expires_at,
        )


# Matching Schemas
class CandidateResponse(BaseModel):
    """Кандидат в списке подбора"""
    user_id: int
    name: Optional[str] = None
    gender: Optional[str] = None
    age: Optional[int] = None
    zodiac_sign: Optional[str] = None
    weight_class: Optional[str] = None
    experience_level: Optional[str] = None
    organization_id: Optional[int] = None
    is_same_group: bool = False
    distance_km: Optional[float] = None
    session_count: int = 0
    last_active: Optional[datetime] = None
    compatibility: Optional[CompatibilityResponse] = None

    @classmethod
    def from_record(cls, record: CandidateRecord) -> "CandidateResponse":
        return cls(
            user_id=record.user_id,
            name=record.name,
            gender=record.gender,
            age=record.age,
            zodiac_sign=record.zodiac_sign,
            weight_class=record.weight_class,
            experience_level=record.experience_level,
            organization_id=record.organization_id,
            is_same_group=record.is_same_group,
            distance_km=round(record.distance_km, 2) if record.distance_km is not None else None,
            session_count=record.session_count,
            last_active=record.last_active,
            compatibility=CompatibilityResponse.from_result(record.compatibility) if record.compatibility else None,
        )


class MatchListResponse(BaseModel):
    """Страница подобранных кандидатов"""
    viewer_id: int
    candidates: List[CandidateResponse]
    total_admitted: int = Field(..., description="Сколько кандидатов прошло фильтры")
    pool_size: int = Field(..., description="Размер исходного пула")
    skipped_ids: List[int] = Field(default_factory=list, description="Кандидаты, пропущенные из-за ошибок")
    limit: int
    offset: int

    @classmethod
    def from_ranked(cls, viewer_id: int, ranked: RankedCandidates, limit: int, offset: int) -> "MatchListResponse":
        return cls(
            viewer_id=viewer_id,
            candidates=[CandidateResponse.from_record(record) for record in ranked.candidates],
            total_admitted=ranked.total_admitted,
            pool_size=ranked.pool_size,
            skipped_ids=ranked.skipped_ids,
            limit=limit,
            offset=offset,
        )


class EligibilityResponse(BaseModel):
    """Взаимная проверка пары по возрасту и расстоянию"""
    user_a_id: int
    user_b_id: int
    eligible: bool
    reasons: List[str] = Field(default_factory=list)
    distance_km: Optional[float] = None

    @classmethod
    def from_report(cls, report: EligibilityReport) -> "EligibilityResponse":
        return cls(
            user_a_id=report.user_a_id,
            user_b_id=report.user_b_id,
            eligible=report.eligible,
            reasons=report.reasons,
            distance_km=report.distance_km,
        )


# Swipe / Block Schemas
class SwipeCreate(BaseModel):
    """Решение пользователя по кандидату"""
    swiper_id: int = Field(..., gt=0)
    swiped_id: int = Field(..., gt=0)
    action: SwipeAction = Field(..., description="like, pass или super_like")

    @validator('swiped_id')
    def validate_not_self(cls, v, values):
        """Нельзя свайпнуть самого себя"""
        if values.get('swiper_id') == v:
            raise ValueError('Нельзя принять решение по собственному профилю')
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "swiper_id": 1,
                "swiped_id": 2,
                "action": "like"
            }
        }


class BlockCreate(BaseModel):
    """Блокировка пользователя"""
    blocking_user_id: int = Field(..., gt=0)
    blocked_user_id: int = Field(..., gt=0)

    @validator('blocked_user_id')
    def validate_not_self(cls, v, values):
        """Нельзя заблокировать самого себя"""
        if values.get('blocking_user_id') == v:
            raise ValueError('Нельзя заблокировать собственный профиль')
        return v


class ActionResponse(BaseModel):
    """Результат операции записи"""
    success: bool
    message: str


class InvalidationResponse(BaseModel):
    """Результат сброса кеша совместимости"""
    user_id: int
    invalidated: int
