"""
Конфигурация для pytest тестов.
"""
import os
import tempfile

# До импорта приложения: база по умолчанию не должна создаваться в рабочем каталоге
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "astromatch_test_app.db")
)

import pytest
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.database import Base
from app.models.database.models import (
    MatchPreferences,
    NatalChart,
    Organization,
    PlanetPosition,
    QuestionnaireResponse,
    Subscription,
    User,
    UserBlock,
    UserSwipe,
)
from app.services.cache_service import CompatibilityCache
from app.services.matching.engine import CompatibilityEngine
from app.services.matching.repository import SqlAlchemyMatchingRepository

class FakeClock:
    """Управляемые часы для проверки TTL"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def db_engine(tmp_path):
    """Отдельная SQLite база на файле для каждого теста (доступна из пула потоков)"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'matching.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def repository(session_factory):
    return SqlAlchemyMatchingRepository(session_factory, require_subscription=True)


@pytest.fixture
def memory_cache():
    return CompatibilityCache(ttl_seconds=3600)


@pytest.fixture
def matching_engine(repository, memory_cache):
    return CompatibilityEngine(
        repository=repository,
        cache=memory_cache,
        profile='dating',
        max_workers=4,
        max_limit=100,
    )


class DataFactory:
    """Создание тестовых пользователей и связанных данных"""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def organization(self, name: str = "Клуб", cross_group: bool = False) -> int:
        db = self.session_factory()
        try:
            organization = Organization(name=name, cross_group_matching_enabled=cross_group)
            db.add(organization)
            db.commit()
            return organization.id
        finally:
            db.close()

    def user(
        self,
        name: str = "user",
        gender: Optional[str] = "female",
        age: Optional[int] = 30,
        subscription: bool = True,
        preferences: Optional[Dict] = None,
        chart: Optional[Dict[str, Tuple[str, float]]] = None,
        answers: Optional[List] = None,
        **fields
    ) -> int:
        db = self.session_factory()
        try:
            user = User(name=name, gender=gender, age=age, **fields)
            db.add(user)
            db.flush()

            if subscription:
                db.add(Subscription(user_id=user.id, status='active', allows_matching=True))
            if preferences is not None:
                db.add(MatchPreferences(user_id=user.id, **preferences))
            if chart:
                natal_chart = NatalChart(user_profile_id=user.id)
                db.add(natal_chart)
                db.flush()
                for body, (sign, degree) in chart.items():
                    db.add(PlanetPosition(
                        natal_chart_id=natal_chart.id,
                        planet_name=body,
                        zodiac_sign=sign,
                        degree_in_sign=degree
                    ))
            if answers is not None:
                db.add(QuestionnaireResponse(user_id=user.id, answers=answers))

            db.commit()
            return user.id
        finally:
            db.close()

    def swipe(self, swiper_id: int, swiped_id: int, action: str = 'pass'):
        db = self.session_factory()
        try:
            db.add(UserSwipe(swiper_id=swiper_id, swiped_id=swiped_id, action=action))
            db.commit()
        finally:
            db.close()

    def block(self, blocking_user_id: int, blocked_user_id: int):
        db = self.session_factory()
        try:
            db.add(UserBlock(blocking_user_id=blocking_user_id, blocked_user_id=blocked_user_id))
            db.commit()
        finally:
            db.close()


@pytest.fixture
def factory(session_factory):
    return DataFactory(session_factory)
