"""
Доступ движка совместимости к хранилищу.

MatchingRepository описывает узкий интерфейс чтения, которым пользуется движок.
SqlAlchemyMatchingRepository открывает отдельную сессию на каждый вызов,
поэтому его можно использовать из пула потоков.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models.database.models import (
    MatchPreferences,
    MatchRequest,
    NatalChart as NatalChartModel,
    Organization,
    QuestionnaireResponse as QuestionnaireResponseModel,
    Subscription,
    User,
    UserBlock,
    UserSwipe,
)
from app.services.matching.config import MatchingConfig
from app.services.matching.exceptions import PersistenceFailure
from app.services.matching.models import (
    BasicAttributes,
    BodyPlacement,
    CandidateRecord,
    FilterParams,
    MatchRequestStatus,
    NatalChart,
    Preferences,
    QuestionnaireResponse,
    SwipeAction,
)
from app.services.matching.utils import ensure_aware

logger = logging.getLogger(__name__)

# Статусы запросов, после которых пользователь больше не показывается
EXCLUDING_REQUEST_STATUSES = (
    MatchRequestStatus.PENDING.value,
    MatchRequestStatus.CONFIRMED.value,
    MatchRequestStatus.REJECTED.value,
)


class MatchingRepository(ABC):
    """Интерфейс чтения данных для расчета совместимости и подбора"""

    @abstractmethod
    def get_natal_chart(self, user_id: int) -> Optional[NatalChart]:
        ...

    @abstractmethod
    def get_questionnaire_responses(self, user_id: int) -> Optional[QuestionnaireResponse]:
        ...

    @abstractmethod
    def get_preferences(self, user_id: int) -> Preferences:
        ...

    @abstractmethod
    def get_basic_attributes(self, user_id: int) -> BasicAttributes:
        ...

    @abstractmethod
    def get_exclusion_set(self, user_id: int) -> Set[int]:
        """Пользователи, по которым зритель уже принял решение (свайп, запрос)"""

    @abstractmethod
    def get_blocked_ids(self, user_id: int) -> Set[int]:
        """Блокировки в обе стороны"""

    @abstractmethod
    def get_eligibility_status(self, user_id: int) -> bool:
        ...

    @abstractmethod
    def get_user_record(self, user_id: int) -> Optional[CandidateRecord]:
        ...

    @abstractmethod
    def list_candidate_pool(self, viewer_id: int, params: FilterParams, pool_size: int) -> List[CandidateRecord]:
        """Грубый предварительный отбор: область организаций и окно выборки"""

    # Запись выполняется вне расчета: из API по действиям пользователя

    def record_swipe(self, swiper_id: int, swiped_id: int, action: SwipeAction) -> None:
        raise NotImplementedError

    def block_user(self, blocking_user_id: int, blocked_user_id: int) -> bool:
        raise NotImplementedError

    def unblock_user(self, blocking_user_id: int, blocked_user_id: int) -> bool:
        raise NotImplementedError


class SqlAlchemyMatchingRepository(MatchingRepository):
    """Репозиторий поверх SQLAlchemy"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        require_subscription: bool = MatchingConfig.REQUIRE_ACTIVE_SUBSCRIPTION
    ):
        self.session_factory = session_factory
        self.require_subscription = require_subscription

    def _run(self, operation: str, user_id: Optional[int], func: Callable[[Session], Any], write: bool = False):
        db = self.session_factory()
        try:
            result = func(db)
            if write:
                db.commit()
            return result
        except SQLAlchemyError as e:
            if write:
                db.rollback()
            logger.error(f"❌ Ошибка хранилища в {operation} (user_id={user_id}): {str(e)}")
            raise PersistenceFailure(operation, str(e), user_id) from e
        finally:
            db.close()

    # ============ Чтение ============

    def get_natal_chart(self, user_id: int) -> Optional[NatalChart]:
        def query(db: Session) -> Optional[NatalChart]:
            chart = db.query(NatalChartModel).options(
                joinedload(NatalChartModel.planet_positions)
            ).filter(
                NatalChartModel.user_profile_id == user_id
            ).order_by(NatalChartModel.calculated_at.desc()).first()

            if not chart:
                return None

            placements = {}
            for position in chart.planet_positions:
                placements[position.planet_name.lower()] = BodyPlacement(
                    sign=position.zodiac_sign,
                    degree=position.degree_in_sign,
                    absolute_degree=position.longitude,
                )
            return NatalChart(
                user_id=user_id,
                placements=placements,
                calculated_at=ensure_aware(chart.calculated_at),
            )

        return self._run("get_natal_chart", user_id, query)

    def get_questionnaire_responses(self, user_id: int) -> Optional[QuestionnaireResponse]:
        def query(db: Session) -> Optional[QuestionnaireResponse]:
            response = db.query(QuestionnaireResponseModel).filter(
                QuestionnaireResponseModel.user_id == user_id
            ).first()
            if not response or response.answers is None:
                return None
            return QuestionnaireResponse(
                user_id=user_id,
                answers=list(response.answers),
                submitted_at=ensure_aware(response.submitted_at),
            )

        return self._run("get_questionnaire_responses", user_id, query)

    def get_preferences(self, user_id: int) -> Preferences:
        def query(db: Session) -> Preferences:
            row = db.query(MatchPreferences).filter(MatchPreferences.user_id == user_id).first()
            return self._to_preferences(user_id, row)

        return self._run("get_preferences", user_id, query)

    def get_basic_attributes(self, user_id: int) -> BasicAttributes:
        def query(db: Session) -> BasicAttributes:
            user = db.query(User).filter(User.id == user_id).first()
            if not user:
                return BasicAttributes(user_id=user_id)
            return BasicAttributes(
                user_id=user.id,
                interests=set(user.interests or []),
                traits=set(user.traits or []),
                politics=user.politics,
                education=user.education_level,
                children=user.wants_kids,
                age=user.age,
                weight_class=user.weight_class,
                experience_level=user.experience_level,
                training_types=set(user.training_types or []),
                intensity=user.intensity_preference,
                organization_id=user.organization_id,
                has_availability=bool(user.availability),
            )

        return self._run("get_basic_attributes", user_id, query)

    def get_exclusion_set(self, user_id: int) -> Set[int]:
        def query(db: Session) -> Set[int]:
            excluded = {
                swiped_id for (swiped_id,) in db.query(UserSwipe.swiped_id).filter(UserSwipe.swiper_id == user_id)
            }
            requests = db.query(MatchRequest.requester_id, MatchRequest.target_id).filter(
                or_(MatchRequest.requester_id == user_id, MatchRequest.target_id == user_id),
                MatchRequest.status.in_(EXCLUDING_REQUEST_STATUSES)
            )
            for requester_id, target_id in requests:
                excluded.add(target_id if requester_id == user_id else requester_id)
            return excluded

        return self._run("get_exclusion_set", user_id, query)

    def get_blocked_ids(self, user_id: int) -> Set[int]:
        def query(db: Session) -> Set[int]:
            blocks = db.query(UserBlock.blocking_user_id, UserBlock.blocked_user_id).filter(
                or_(UserBlock.blocking_user_id == user_id, UserBlock.blocked_user_id == user_id)
            )
            return {
                blocked_id if blocking_id == user_id else blocking_id
                for blocking_id, blocked_id in blocks
            }

        return self._run("get_blocked_ids", user_id, query)

    def get_eligibility_status(self, user_id: int) -> bool:
        def query(db: Session) -> bool:
            user = db.query(User).filter(User.id == user_id).first()
            if not user or not user.matching_enabled or not user.onboarding_completed:
                return False
            if not self.require_subscription:
                return True

            now = datetime.now(timezone.utc)
            subscriptions = db.query(Subscription).filter(
                Subscription.user_id == user_id,
                Subscription.status == 'active',
                Subscription.allows_matching.is_(True)
            ).all()
            return any(
                subscription.expires_at is None or ensure_aware(subscription.expires_at) > now
                for subscription in subscriptions
            )

        return self._run("get_eligibility_status", user_id, query)

    def get_user_record(self, user_id: int) -> Optional[CandidateRecord]:
        def query(db: Session) -> Optional[CandidateRecord]:
            user = db.query(User).options(
                joinedload(User.preferences),
                joinedload(User.organization)
            ).filter(User.id == user_id).first()
            return self._to_record(user) if user else None

        return self._run("get_user_record", user_id, query)

    def list_candidate_pool(self, viewer_id: int, params: FilterParams, pool_size: int) -> List[CandidateRecord]:
        def query(db: Session) -> List[CandidateRecord]:
            viewer = db.query(User).options(joinedload(User.preferences)).filter(User.id == viewer_id).first()
            if not viewer:
                return []

            candidates = db.query(User).options(
                joinedload(User.preferences),
                joinedload(User.organization)
            ).outerjoin(Organization, User.organization_id == Organization.id).filter(
                User.id != viewer_id,
                User.matching_enabled.is_(True),
                User.onboarding_completed.is_(True)
            )

            cross_group = params.cross_group or bool(viewer.preferences and viewer.preferences.allow_cross_group)
            if viewer.organization_id is None:
                if not cross_group:
                    candidates = candidates.filter(User.organization_id.is_(None))
            elif cross_group:
                candidates = candidates.filter(or_(
                    User.organization_id == viewer.organization_id,
                    Organization.cross_group_matching_enabled.is_(True)
                ))
            else:
                candidates = candidates.filter(User.organization_id == viewer.organization_id)

            rows = candidates.order_by(User.last_active_at.desc(), User.id).limit(pool_size).all()
            return [self._to_record(user) for user in rows]

        return self._run("list_candidate_pool", viewer_id, query)

    # ============ Запись (вызывается из API, вне расчета) ============

    def record_swipe(self, swiper_id: int, swiped_id: int, action: SwipeAction) -> None:
        def command(db: Session) -> None:
            swipe = db.query(UserSwipe).filter(
                UserSwipe.swiper_id == swiper_id,
                UserSwipe.swiped_id == swiped_id
            ).first()
            if swipe:
                swipe.action = action.value
            else:
                db.add(UserSwipe(swiper_id=swiper_id, swiped_id=swiped_id, action=action.value))

        self._run("record_swipe", swiper_id, command, write=True)

    def block_user(self, blocking_user_id: int, blocked_user_id: int) -> bool:
        """Returns: True, если блокировка создана (False - уже существовала)"""
        def command(db: Session) -> bool:
            exists = db.query(UserBlock).filter(
                UserBlock.blocking_user_id == blocking_user_id,
                UserBlock.blocked_user_id == blocked_user_id
            ).first()
            if exists:
                return False
            db.add(UserBlock(blocking_user_id=blocking_user_id, blocked_user_id=blocked_user_id))
            return True

        return self._run("block_user", blocking_user_id, command, write=True)

    def unblock_user(self, blocking_user_id: int, blocked_user_id: int) -> bool:
        """Returns: True, если блокировка была снята"""
        def command(db: Session) -> bool:
            deleted = db.query(UserBlock).filter(
                UserBlock.blocking_user_id == blocking_user_id,
                UserBlock.blocked_user_id == blocked_user_id
            ).delete(synchronize_session=False)
            return deleted > 0

        return self._run("unblock_user", blocking_user_id, command, write=True)

    # ============ Преобразование ============

    @staticmethod
    def _to_preferences(user_id: int, row: Optional[MatchPreferences]) -> Preferences:
        if row is None:
            return Preferences(user_id=user_id)
        return Preferences(
            user_id=user_id,
            min_age=row.min_age,
            max_age=row.max_age,
            looking_for=list(row.looking_for or []),
            max_distance_km=row.max_distance_km,
            allow_cross_group=bool(row.allow_cross_group),
        )

    def _to_record(self, user: User) -> CandidateRecord:
        return CandidateRecord(
            user_id=user.id,
            name=user.name,
            gender=user.gender,
            age=user.age,
            zodiac_sign=user.zodiac_sign,
            weight_class=user.weight_class,
            experience_level=user.experience_level,
            organization_id=user.organization_id,
            organization_cross_group=bool(user.organization and user.organization.cross_group_matching_enabled),
            latitude=user.current_latitude,
            longitude=user.current_longitude,
            session_count=user.total_sessions or 0,
            last_active=ensure_aware(user.last_active_at or user.updated_at),
            preferences=self._to_preferences(user.id, user.preferences),
        )
