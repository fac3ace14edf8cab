"""
Тесты для движка совместимости: расчет пары, подбор кандидатов, взаимная проверка.
"""
import pytest

from app.services.cache_service import CompatibilityCache
from app.services.matching.engine import CompatibilityEngine
from app.services.matching.exceptions import InvalidFilterParams, PersistenceFailure
from app.services.matching.models import FilterParams
from app.services.matching.repository import SqlAlchemyMatchingRepository

MOSCOW = (55.7558, 37.6173)
SAINT_PETERSBURG = (59.9343, 30.3351)

NEUTRAL_ANSWERS = [3] * 25
OPPOSITE_ANSWERS = [1] * 25


def candidate_ids(ranked):
    return [candidate.user_id for candidate in ranked.candidates]


class TestCalculateCompatibility:
    """Тесты для расчета совместимости пары"""

    def test_identical_answers_without_charts(self, factory, matching_engine, memory_cache):
        user_a = factory.user("Анна", answers=NEUTRAL_ANSWERS)
        user_b = factory.user("Борис", gender='male', answers=NEUTRAL_ANSWERS)

        result = matching_engine.calculate_compatibility(user_a, user_b)

        assert result.overall_score == 65
        assert result.weight_profile == 'questionnaire_only'
        assert result.components['questionnaire'].score == 100
        assert result.components['astrological'].reason == 'missing_natal_chart'
        assert result.reasons == ['missing_natal_chart']
        assert result.recommended is False
        assert result.expires_at is not None
        assert memory_cache.size() == 1

    def test_score_does_not_depend_on_argument_order(self, factory, matching_engine):
        """Несимметричные карты: балл пары одинаков при любом порядке пользователей"""
        user_a = factory.user("Анна", chart={'venus': ('aries', 0.0), 'mars': ('cancer', 0.0)})
        user_b = factory.user("Борис", chart={'venus': ('aries', 0.0), 'mars': ('leo', 0.0)})

        forward = matching_engine.calculate_compatibility(user_a, user_b, use_cache=False)
        backward = matching_engine.calculate_compatibility(user_b, user_a, use_cache=False)

        assert forward.overall_score == backward.overall_score
        assert forward.components['astrological'].score == backward.components['astrological'].score
        assert forward.components['astrological'].details['aspects'] == backward.components['astrological'].details['aspects']

    def test_cached_score_matches_fresh_score(self, factory, matching_engine):
        user_a = factory.user("Анна", chart={'venus': ('aries', 0.0), 'mars': ('cancer', 0.0)})
        user_b = factory.user("Борис", chart={'venus': ('aries', 0.0), 'mars': ('leo', 0.0)})

        cached = matching_engine.calculate_compatibility(user_b, user_a)
        fresh = matching_engine.calculate_compatibility(user_a, user_b, use_cache=False)

        assert cached.overall_score == fresh.overall_score

    def test_questionnaire_response_record(self, factory, repository):
        user_id = factory.user("Анна", answers=NEUTRAL_ANSWERS)

        response = repository.get_questionnaire_responses(user_id)

        assert response.user_id == user_id
        assert response.answers == NEUTRAL_ANSWERS
        assert response.submitted_at.tzinfo is not None
        assert repository.get_questionnaire_responses(9999) is None

    def test_result_is_cached(self, factory, matching_engine):
        user_a = factory.user("Анна", answers=NEUTRAL_ANSWERS)
        user_b = factory.user("Борис", answers=NEUTRAL_ANSWERS)

        first = matching_engine.calculate_compatibility(user_a, user_b)
        second = matching_engine.calculate_compatibility(user_b, user_a)

        assert second is first

    def test_refresh_bypasses_cache(self, factory, matching_engine):
        user_a = factory.user("Анна", answers=NEUTRAL_ANSWERS)
        user_b = factory.user("Борис", answers=NEUTRAL_ANSWERS)

        first = matching_engine.calculate_compatibility(user_a, user_b)
        refreshed = matching_engine.calculate_compatibility(user_a, user_b, use_cache=False)

        assert refreshed is not first
        assert refreshed.overall_score == first.overall_score

    def test_full_profile_with_charts(self, factory, matching_engine):
        chart = {'sun': ('aries', 10.0), 'moon': ('cancer', 5.0)}
        user_a = factory.user("Анна", chart=chart, answers=NEUTRAL_ANSWERS)
        user_b = factory.user("Борис", chart=chart, answers=NEUTRAL_ANSWERS)

        result = matching_engine.calculate_compatibility(user_a, user_b)

        assert result.weight_profile == 'full'
        assert result.reasons == []
        assert result.components['astrological'].details['aspects_found'] >= 1

    def test_unknown_users_degrade(self, matching_engine):
        result = matching_engine.calculate_compatibility(1001, 1002)

        assert result.weight_profile == 'basic_only'
        assert result.overall_score == 0
        assert 'missing_questionnaire' in result.reasons

    def test_invalidate_user(self, factory, matching_engine, memory_cache):
        user_a = factory.user("Анна", answers=NEUTRAL_ANSWERS)
        user_b = factory.user("Борис", answers=NEUTRAL_ANSWERS)
        user_c = factory.user("Вера", answers=NEUTRAL_ANSWERS)

        matching_engine.calculate_compatibility(user_a, user_b)
        matching_engine.calculate_compatibility(user_b, user_c)

        assert matching_engine.invalidate_user(user_a) == 1
        assert memory_cache.size() == 1


class TestRankedCandidates:
    """Тесты для подбора кандидатов"""

    @pytest.fixture
    def dating_pool(self, factory):
        viewer = factory.user(
            "Зритель", gender='male', answers=NEUTRAL_ANSWERS,
            preferences={'looking_for': ['female']}
        )
        close_match = factory.user("Анна", answers=NEUTRAL_ANSWERS)
        weak_match = factory.user("Вера", answers=OPPOSITE_ANSWERS)
        swiped = factory.user("Галина", answers=NEUTRAL_ANSWERS)
        blocker = factory.user("Дарья", answers=NEUTRAL_ANSWERS)
        unsubscribed = factory.user("Елена", answers=NEUTRAL_ANSWERS, subscription=False)
        wrong_gender = factory.user("Жорж", gender='male', answers=NEUTRAL_ANSWERS)

        factory.swipe(viewer, swiped, 'pass')
        factory.block(blocker, viewer)

        return {
            'viewer': viewer,
            'close_match': close_match,
            'weak_match': weak_match,
            'swiped': swiped,
            'blocker': blocker,
            'unsubscribed': unsubscribed,
            'wrong_gender': wrong_gender,
        }

    def test_filters_and_order(self, dating_pool, matching_engine):
        ranked = matching_engine.get_ranked_candidates(dating_pool['viewer'])

        assert candidate_ids(ranked) == [dating_pool['close_match'], dating_pool['weak_match']]
        assert ranked.total_admitted == 2
        assert ranked.pool_size == 6
        assert ranked.skipped_ids == []

        scores = [candidate.compatibility.overall_score for candidate in ranked.candidates]
        assert scores == [65, 35]

    def test_swiped_candidate_never_shown(self, dating_pool, matching_engine):
        """Кандидат, по которому уже было решение, не появляется ни на одной странице"""
        for offset in range(0, 6):
            ranked = matching_engine.get_ranked_candidates(dating_pool['viewer'], limit=1, offset=offset)
            assert dating_pool['swiped'] not in candidate_ids(ranked)
            assert dating_pool['blocker'] not in candidate_ids(ranked)

    def test_caller_exclusions(self, dating_pool, matching_engine):
        params = FilterParams(exclude_ids={dating_pool['close_match']})
        ranked = matching_engine.get_ranked_candidates(dating_pool['viewer'], params)

        assert candidate_ids(ranked) == [dating_pool['weak_match']]

    def test_params_not_mutated(self, dating_pool, matching_engine):
        params = FilterParams(limit=500)
        matching_engine.get_ranked_candidates(dating_pool['viewer'], params, offset=1)

        assert params.limit == 500
        assert params.offset == 0

    def test_limit_is_capped(self, dating_pool, repository):
        engine = CompatibilityEngine(repository=repository, cache=CompatibilityCache(), profile='dating', max_limit=1)

        ranked = engine.get_ranked_candidates(dating_pool['viewer'], limit=50)

        assert candidate_ids(ranked) == [dating_pool['close_match']]
        assert ranked.total_admitted == 2

    def test_invalid_params(self, dating_pool, matching_engine):
        with pytest.raises(InvalidFilterParams):
            matching_engine.get_ranked_candidates(dating_pool['viewer'], FilterParams(min_age=40, max_age=30))
        with pytest.raises(InvalidFilterParams):
            matching_engine.get_ranked_candidates(dating_pool['viewer'], limit=-1)

    def test_unknown_viewer(self, matching_engine):
        ranked = matching_engine.get_ranked_candidates(9999)

        assert ranked.candidates == []
        assert ranked.total_admitted == 0

    def test_viewer_read_failure_propagates(self, dating_pool, session_factory):
        class FailingRepository(SqlAlchemyMatchingRepository):
            def get_exclusion_set(self, user_id):
                raise PersistenceFailure("get_exclusion_set", "database is locked", user_id)

        engine = CompatibilityEngine(
            repository=FailingRepository(session_factory),
            cache=CompatibilityCache(),
            profile='dating',
        )

        with pytest.raises(PersistenceFailure) as exc_info:
            engine.get_ranked_candidates(dating_pool['viewer'])
        assert exc_info.value.retryable

    def test_candidate_failure_is_skipped(self, dating_pool, session_factory):
        weak_match = dating_pool['weak_match']

        class FlakyRepository(SqlAlchemyMatchingRepository):
            def get_eligibility_status(self, user_id):
                if user_id == weak_match:
                    raise PersistenceFailure("get_eligibility_status", "timeout", user_id)
                return super().get_eligibility_status(user_id)

        engine = CompatibilityEngine(
            repository=FlakyRepository(session_factory),
            cache=CompatibilityCache(),
            profile='dating',
        )

        ranked = engine.get_ranked_candidates(dating_pool['viewer'])

        assert candidate_ids(ranked) == [dating_pool['close_match']]
        assert ranked.skipped_ids == [weak_match]

    def test_other_organization_hidden_by_default(self, factory, matching_engine):
        club = factory.organization("Клуб", cross_group=True)
        other_club = factory.organization("Другой клуб", cross_group=True)
        viewer = factory.user("Зритель", organization_id=club)
        same_club = factory.user("Анна", organization_id=club)
        factory.user("Вера", organization_id=other_club)
        factory.user("Галина")

        ranked = matching_engine.get_ranked_candidates(viewer)

        assert candidate_ids(ranked) == [same_club]
        assert ranked.candidates[0].is_same_group


class TestTrainingProfile:
    """Тесты для профиля подбора спарринг-партнеров"""

    def test_same_gym_ranked_first(self, factory, repository):
        gym = factory.organization("Зал", cross_group=True)
        other_gym = factory.organization("Другой зал", cross_group=True)
        closed_gym = factory.organization("Закрытый зал", cross_group=False)

        viewer = factory.user(
            "Зритель", organization_id=gym, weight_class='lightweight', experience_level='intermediate',
            training_types=['boxing', 'muay_thai'], intensity_preference='hard'
        )
        gym_mate = factory.user(
            "Партнер по залу", organization_id=gym, weight_class='heavyweight', experience_level='beginner'
        )
        strong_match = factory.user(
            "Сильная пара", organization_id=other_gym, weight_class='lightweight',
            experience_level='intermediate', training_types=['boxing', 'muay_thai'], intensity_preference='hard'
        )
        factory.user(
            "Закрытый", organization_id=closed_gym, weight_class='lightweight', experience_level='intermediate'
        )

        engine = CompatibilityEngine(repository=repository, cache=CompatibilityCache(), profile='training')
        ranked = engine.get_ranked_candidates(viewer, FilterParams(cross_group=True))

        assert candidate_ids(ranked) == [gym_mate, strong_match]
        gym_result, strong_result = [candidate.compatibility for candidate in ranked.candidates]
        assert gym_result.overall_score == 30
        assert strong_result.overall_score == 60
        assert strong_result.recommended
        assert gym_result.weight_profile == 'training'

    def test_category_filter(self, factory, repository):
        viewer = factory.user("Зритель", weight_class='lightweight')
        adjacent = factory.user("Соседний", weight_class='super_lightweight')
        factory.user("Далекий", weight_class='heavyweight')

        engine = CompatibilityEngine(repository=repository, cache=CompatibilityCache(), profile='training')
        ranked = engine.get_ranked_candidates(viewer, FilterParams(category_filter='lightweight'))

        assert candidate_ids(ranked) == [adjacent]


class TestMatchEligibility:
    """Тесты для взаимной проверки пары"""

    def test_eligible_pair(self, factory, matching_engine):
        user_a = factory.user("Анна", current_latitude=MOSCOW[0], current_longitude=MOSCOW[1])
        user_b = factory.user("Борис", current_latitude=55.80, current_longitude=37.70)

        report = matching_engine.check_match_eligibility(user_a, user_b)

        assert report.eligible
        assert report.reasons == []
        assert report.distance_km < 10

    def test_age_out_of_range(self, factory, matching_engine):
        user_a = factory.user("Анна", age=30, preferences={'min_age': 25, 'max_age': 35})
        user_b = factory.user("Борис", age=40)

        report = matching_engine.check_match_eligibility(user_a, user_b)

        assert not report.eligible
        assert report.reasons == [f'age_out_of_range_for_{user_a}']
        assert report.distance_km is None

    def test_default_age_range(self, factory, matching_engine):
        user_a = factory.user("Анна", age=30)
        user_b = factory.user("Борис", age=17)

        report = matching_engine.check_match_eligibility(user_a, user_b)

        assert report.reasons == [f'age_out_of_range_for_{user_a}']

    def test_distance_uses_default_limit(self, factory, matching_engine):
        user_a = factory.user("Анна", current_latitude=MOSCOW[0], current_longitude=MOSCOW[1])
        user_b = factory.user(
            "Борис", current_latitude=SAINT_PETERSBURG[0], current_longitude=SAINT_PETERSBURG[1],
            preferences={'max_distance_km': 1000}
        )

        report = matching_engine.check_match_eligibility(user_a, user_b)

        assert report.reasons == [f'distance_exceeds_limit_for_{user_a}']
        assert 620 < report.distance_km < 650

    def test_unknown_user(self, factory, matching_engine):
        user_a = factory.user("Анна")

        report = matching_engine.check_match_eligibility(user_a, 9999)

        assert not report.eligible
        assert report.reasons == ['user_not_found']
