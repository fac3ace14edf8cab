"""
Тесты для геометрии синастрии: абсолютные градусы и аспекты.
"""
import logging
import pytest

from app.services.matching.config import MatchingConfig
from app.services.matching.exceptions import InvalidGeometry
from app.services.matching.geometry import (
    ZODIAC_SIGNS,
    absolute_degree,
    angular_difference,
    classify_aspect,
    ordered_aspects,
)


class TestAbsoluteDegree:
    """Тесты для абсолютного градуса"""

    def test_sign_offsets(self):
        assert absolute_degree('aries', 15) == 15
        assert absolute_degree('leo', 10) == 130
        assert absolute_degree('pisces', 29.5) == 359.5

    def test_sign_is_case_insensitive(self):
        assert absolute_degree(' LEO ', 10) == 130
        assert absolute_degree('Capricorn', 0) == 270

    def test_degree_is_clamped(self):
        assert absolute_degree('taurus', 45) == 60
        assert absolute_degree('taurus', -5) == 30

    def test_full_circle_wraps(self):
        assert absolute_degree('pisces', 30) == 0.0

    def test_unknown_sign_defaults_to_zero_offset(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert absolute_degree('ophiuchus', 10) == 10
        assert 'ophiuchus' in caplog.text

    def test_missing_values(self):
        assert absolute_degree(None, None) == 0.0
        assert absolute_degree('gemini', None) == 60

    def test_result_always_in_range(self):
        degrees = [step / 2 for step in range(0, 61)]
        for sign in ZODIAC_SIGNS + ['unknown']:
            for degree in degrees:
                result = absolute_degree(sign, degree)
                assert 0 <= result < 360


class TestClassifyAspect:
    """Тесты для классификации аспектов"""

    def test_angular_difference_wraps(self):
        assert angular_difference(350, 10) == 20
        assert angular_difference(10, 190) == 180

    def test_exact_trine(self):
        aspect = classify_aspect(10, 130)

        assert aspect.name == 'trine'
        assert aspect.angle == 120
        assert aspect.deviation == 0

    def test_sextile_within_orb(self):
        aspect = classify_aspect(0, 61)

        assert aspect.name == 'sextile'
        assert aspect.deviation == 1

    def test_quincunx(self):
        aspect = classify_aspect(0, 152)

        assert aspect.name == 'quincunx'
        assert aspect.deviation == 2

    def test_conjunction_across_zero(self):
        aspect = classify_aspect(355, 3)

        assert aspect.name == 'conjunction'
        assert aspect.deviation == 8

    def test_square_and_opposition(self):
        assert classify_aspect(0, 95).name == 'square'
        assert classify_aspect(10, 185).name == 'opposition'

    def test_no_aspect(self):
        assert classify_aspect(350, 5) is None
        assert classify_aspect(0, 40) is None

    def test_symmetry(self):
        positions = [0, 7.5, 33, 61, 89.9, 120, 151, 178, 200, 269.5, 300, 359.9]
        for a in positions:
            for b in positions:
                assert classify_aspect(a, b) == classify_aspect(b, a)

    @pytest.mark.parametrize("degree", [360, -1, 400.5, float('nan')])
    def test_invalid_degree_rejected(self, degree):
        with pytest.raises(InvalidGeometry):
            classify_aspect(degree, 10)

    def test_tightest_orb_checked_first(self):
        names = [name for _, name, _ in ordered_aspects()]

        assert names == ['quincunx', 'sextile', 'conjunction', 'square', 'trine', 'opposition']

    def test_custom_orbs(self):
        orbs = dict(MatchingConfig.DEFAULT_ORBS, conjunction=12.0)

        assert classify_aspect(0, 10) is None
        assert classify_aspect(0, 10, orbs=orbs).name == 'conjunction'
