from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON, Float, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from app.core.database import Base
import os

# JSONB для PostgreSQL, JSON для SQLite
try:
    from sqlalchemy.dialects.postgresql import JSONB
    USE_JSONB = os.getenv("DATABASE_URL", "").startswith("postgresql")
except ImportError:
    USE_JSONB = False


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    cross_group_matching_enabled = Column(Boolean, default=False, nullable=False)  # Согласие на межклубный подбор
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    members = relationship("User", back_populates="organization")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=True)
    gender = Column(String(20), nullable=True)  # 'male', 'female', 'non_binary'
    age = Column(Integer, nullable=True)
    zodiac_sign = Column(String(20), nullable=True)  # Солнечный знак: 'aries', 'taurus', ...

    # Базовые атрибуты для совместимости
    interests = Column(JSONB if USE_JSONB else JSON, nullable=True)  # список тегов
    traits = Column(JSONB if USE_JSONB else JSON, nullable=True)  # список тегов
    politics = Column(String(30), nullable=True)  # 'liberal', 'conservative', 'moderate', ...
    education_level = Column(String(50), nullable=True)
    wants_kids = Column(String(10), nullable=True)  # 'yes', 'no', 'maybe'

    # Профиль тренировок
    weight_class = Column(String(30), nullable=True)  # 'lightweight', 'super_middleweight', ...
    experience_level = Column(String(20), nullable=True)  # 'beginner', 'intermediate', 'advanced', 'pro'
    training_types = Column(JSONB if USE_JSONB else JSON, nullable=True)  # ['boxing', 'muay_thai', ...]
    intensity_preference = Column(String(20), nullable=True)  # 'light', 'medium', 'hard'
    availability = Column(JSONB if USE_JSONB else JSON, nullable=True)  # расписание тренировок
    total_sessions = Column(Integer, default=0, nullable=False)

    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)

    # Текущее местоположение
    current_latitude = Column(Float, nullable=True)
    current_longitude = Column(Float, nullable=True)

    # Право участвовать в подборе
    matching_enabled = Column(Boolean, default=True, nullable=False)
    onboarding_completed = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))
    last_active_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    organization = relationship("Organization", back_populates="members")
    natal_charts = relationship("NatalChart", back_populates="user_profile", cascade="all, delete-orphan")
    questionnaire = relationship("QuestionnaireResponse", back_populates="user", uselist=False,
                                 cascade="all, delete-orphan")
    preferences = relationship("MatchPreferences", back_populates="user", uselist=False,
                               cascade="all, delete-orphan")
    subscriptions = relationship("Subscription", back_populates="user", cascade="all, delete-orphan")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan = Column(String(50), nullable=False, default='basic')
    status = Column(String(20), nullable=False, default='active')  # 'active', 'cancelled', 'expired'
    allows_matching = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=True)  # None = бессрочная
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="subscriptions")


class NatalChart(Base):
    __tablename__ = "natal_charts_natalchart"

    id = Column(Integer, primary_key=True, index=True)
    user_profile_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    calculated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    houses_system = Column(String(20), default='placidus', nullable=False)  # Система домов
    zodiac_type = Column(String(10), default='tropical', nullable=False)  # Тип зодиака

    user_profile = relationship("User", back_populates="natal_charts")
    planet_positions = relationship("PlanetPosition", back_populates="natal_chart", cascade="all, delete-orphan")


class PlanetPosition(Base):
    __tablename__ = "natal_charts_planetposition"

    id = Column(Integer, primary_key=True, index=True)
    natal_chart_id = Column(Integer, ForeignKey("natal_charts_natalchart.id"), nullable=False)
    planet_name = Column(String(20), nullable=False)  # 'sun', 'moon', 'ascendant', 'mercury', ...
    zodiac_sign = Column(String(20), nullable=True)  # 'aries', 'taurus', ...
    degree_in_sign = Column(Float, nullable=True)  # Градус внутри знака (0-30)
    longitude = Column(Float, nullable=True)  # Абсолютная долгота (0-360), если рассчитана заранее
    house = Column(Integer, nullable=True)  # Номер дома (1-12)
    is_retrograde = Column(Integer, default=0, nullable=False)  # 0 = директная, 1 = ретроградная

    natal_chart = relationship("NatalChart", back_populates="planet_positions")


class QuestionnaireResponse(Base):
    __tablename__ = "questionnaire_responses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    answers = Column(JSONB if USE_JSONB else JSON, nullable=False)  # 25 ответов по шкале 1-5
    submitted_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="questionnaire")


class MatchPreferences(Base):
    __tablename__ = "match_preferences"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    min_age = Column(Integer, nullable=True)
    max_age = Column(Integer, nullable=True)
    looking_for = Column(JSONB if USE_JSONB else JSON, nullable=True)  # ['female'], ['everyone'], ...
    max_distance_km = Column(Float, nullable=True)
    allow_cross_group = Column(Boolean, default=False, nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))

    user = relationship("User", back_populates="preferences")


class UserSwipe(Base):
    __tablename__ = "user_swipes"
    __table_args__ = (
        UniqueConstraint('swiper_id', 'swiped_id', name='uq_user_swipes_pair'),
        Index('idx_user_swipes_swiper', 'swiper_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    swiper_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    swiped_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    action = Column(String(20), nullable=False)  # 'like', 'pass', 'super_like'
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class UserBlock(Base):
    __tablename__ = "user_blocks"
    __table_args__ = (
        UniqueConstraint('blocking_user_id', 'blocked_user_id', name='uq_user_blocks_pair'),
    )

    id = Column(Integer, primary_key=True, index=True)
    blocking_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    blocked_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))


class MatchRequest(Base):
    __tablename__ = "match_requests"
    __table_args__ = (
        Index('idx_match_requests_requester', 'requester_id', 'status'),
        Index('idx_match_requests_target', 'target_id', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    target_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String(20), nullable=False, default='pending')  # 'pending', 'confirmed', 'rejected', 'cancelled'
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
