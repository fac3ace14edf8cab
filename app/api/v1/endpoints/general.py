from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from app.core.database import get_db
from app.services.matching.config import MatchingConfig
from app.services.redis_service import redis_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["General"])


@router.get("/health", summary="Проверка работы API")
def health_check(db: Session = Depends(get_db)):
    """Состояние сервиса, базы данных и кеша, активный профиль подбора"""
    try:
        db.execute(text("SELECT 1"))
        database_status = "ok"
    except SQLAlchemyError as e:
        logger.error(f"❌ База данных недоступна: {str(e)}")
        database_status = "unavailable"

    cache_status = "ok"
    if MatchingConfig.CACHE_BACKEND == "redis" and not redis_service.is_available:
        cache_status = "unavailable"

    return {
        "status": "ok" if database_status == "ok" else "degraded",
        "database": database_status,
        "cache": cache_status,
        "scoring_profile": MatchingConfig.SCORING_PROFILE,
        "cache_backend": MatchingConfig.CACHE_BACKEND,
    }
