from fastapi import APIRouter, HTTPException, Depends, Query
from typing import List, Optional
import logging

from app.models.schemas.schemas import (
    ActionResponse,
    BlockCreate,
    CompatibilityResponse,
    EligibilityResponse,
    InvalidationResponse,
    MatchListResponse,
    SwipeCreate,
)
from app.services.matching.engine import CompatibilityEngine, build_matching_engine
from app.services.matching.models import FilterParams

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Совместимость и подбор"])

_matching_engine: Optional[CompatibilityEngine] = None


def get_matching_engine() -> CompatibilityEngine:
    """Зависимость FastAPI: движок совместимости (создается при первом обращении)"""
    global _matching_engine
    if _matching_engine is None:
        _matching_engine = build_matching_engine()
    return _matching_engine


def _ensure_users_exist(engine: CompatibilityEngine, *user_ids: int):
    for user_id in user_ids:
        if engine.repository.get_user_record(user_id) is None:
            raise HTTPException(status_code=404, detail=f"Пользователь {user_id} не найден")


@router.get(
    "/api/compatibility/{user_a_id}/{user_b_id}",
    response_model=CompatibilityResponse,
    summary="Совместимость пары пользователей"
)
def get_compatibility(
    user_a_id: int,
    user_b_id: int,
    refresh: bool = Query(False, description="Пересчитать, игнорируя кеш"),
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    """
    Балл совместимости 0-100, буквенная оценка и баллы компонентов.

    При отсутствии натальной карты или анкеты у кого-либо из пользователей
    используется вектор весов без соответствующего компонента, причина указывается в `reasons`.
    """
    if user_a_id == user_b_id:
        raise HTTPException(status_code=400, detail="Нужны два разных пользователя")
    _ensure_users_exist(engine, user_a_id, user_b_id)

    result = engine.calculate_compatibility(user_a_id, user_b_id, use_cache=not refresh)
    return CompatibilityResponse.from_result(result)


@router.get(
    "/api/matches/{viewer_id}",
    response_model=MatchListResponse,
    summary="Подбор кандидатов"
)
def get_matches(
    viewer_id: int,
    category_filter: Optional[str] = Query(None, description="Весовой класс или 'any' (допускаются соседние классы)"),
    experience_filter: Optional[str] = Query(None, description="Уровень опыта или 'any' (допускаются соседние уровни)"),
    sign_filter: Optional[str] = Query(None, description="Знак зодиака или 'any'"),
    min_age: Optional[int] = Query(None, ge=0),
    max_age: Optional[int] = Query(None, ge=0),
    max_distance_km: Optional[float] = Query(None, ge=0),
    cross_group: bool = Query(False, description="Искать в других организациях (если обе согласны)"),
    exclude_ids: List[int] = Query([], description="Дополнительно исключить пользователей"),
    limit: int = Query(20, ge=0, description="Размер страницы (ограничен сверху настройкой)"),
    offset: int = Query(0, ge=0),
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    """
    Отфильтрованные кандидаты, отсортированные по:
    своя организация, рекомендован, балл, число сессий, давность активности.
    """
    _ensure_users_exist(engine, viewer_id)

    params = FilterParams(
        category_filter=category_filter,
        experience_filter=experience_filter,
        sign_filter=sign_filter,
        min_age=min_age,
        max_age=max_age,
        max_distance_km=max_distance_km,
        cross_group=cross_group,
        exclude_ids=set(exclude_ids),
        limit=limit,
        offset=offset,
    )
    ranked = engine.get_ranked_candidates(viewer_id, params)
    return MatchListResponse.from_ranked(viewer_id, ranked, min(limit, engine.max_limit), offset)


@router.get(
    "/api/eligibility/{user_a_id}/{user_b_id}",
    response_model=EligibilityResponse,
    summary="Взаимная проверка пары по возрасту и расстоянию"
)
def get_eligibility(
    user_a_id: int,
    user_b_id: int,
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    report = engine.check_match_eligibility(user_a_id, user_b_id)
    if 'user_not_found' in report.reasons:
        raise HTTPException(status_code=404, detail="Пользователь не найден")
    return EligibilityResponse.from_report(report)


@router.post("/api/swipes", response_model=ActionResponse, summary="Записать решение по кандидату")
def create_swipe(
    swipe: SwipeCreate,
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    _ensure_users_exist(engine, swipe.swiper_id, swipe.swiped_id)
    engine.repository.record_swipe(swipe.swiper_id, swipe.swiped_id, swipe.action)
    return ActionResponse(success=True, message="Решение сохранено")


@router.post("/api/blocks", response_model=ActionResponse, summary="Заблокировать пользователя")
def create_block(
    block: BlockCreate,
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    _ensure_users_exist(engine, block.blocking_user_id, block.blocked_user_id)
    created = engine.repository.block_user(block.blocking_user_id, block.blocked_user_id)
    message = "Пользователь заблокирован" if created else "Блокировка уже существует"
    return ActionResponse(success=True, message=message)


@router.delete(
    "/api/blocks/{blocking_user_id}/{blocked_user_id}",
    response_model=ActionResponse,
    summary="Снять блокировку"
)
def delete_block(
    blocking_user_id: int,
    blocked_user_id: int,
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    if not engine.repository.unblock_user(blocking_user_id, blocked_user_id):
        raise HTTPException(status_code=404, detail="Блокировка не найдена")
    return ActionResponse(success=True, message="Блокировка снята")


@router.post(
    "/api/compatibility/invalidate/{user_id}",
    response_model=InvalidationResponse,
    summary="Сбросить кеш совместимости пользователя"
)
def invalidate_compatibility(
    user_id: int,
    engine: CompatibilityEngine = Depends(get_matching_engine)
):
    """Вызывается после изменения натальной карты, анкеты или предпочтений пользователя"""
    removed = engine.invalidate_user(user_id)
    return InvalidationResponse(user_id=user_id, invalidated=removed)
