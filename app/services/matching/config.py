"""
Конфигурация движка совместимости и подбора кандидатов.
Пороги, веса и орбисы можно изменять через переменные окружения.
"""
import os
import copy
import math
import logging
from typing import Dict, Any, Optional
from dotenv import load_dotenv

from app.services.matching.exceptions import ConfigurationError

load_dotenv()

logger = logging.getLogger(__name__)


class MatchingConfig:
    """Конфигурация для расчета совместимости и ранжирования кандидатов"""

    # Профиль развертывания: dating (астрология + анкета) или training (спарринг-партнеры)
    SCORING_PROFILE = os.getenv("MATCHING_PROFILE", "dating").lower()

    # Порог "рекомендован" по умолчанию для каждого профиля
    DEFAULT_RECOMMENDATION_THRESHOLDS = {
        'dating': 70,
        'training': 60,
    }

    # Анкета: группы x вопросы, шкала ответов
    QUESTIONNAIRE_GROUPS = int(os.getenv("QUESTIONNAIRE_GROUPS", "5"))
    QUESTIONNAIRE_PER_GROUP = int(os.getenv("QUESTIONNAIRE_PER_GROUP", "5"))
    ANSWER_MIN = 1
    ANSWER_MAX = 5
    NEUTRAL_ANSWER = 3

    # Орбисы аспектов синастрии
    DEFAULT_ORBS = {
        'conjunction': 8.0,
        'opposition': 8.0,
        'trine': 8.0,
        'square': 8.0,
        'sextile': 6.0,
        'quincunx': 3.0,
    }

    # Аспекты с их углами
    ASPECTS = [
        (0, 'conjunction', 'соединение'),
        (60, 'sextile', 'секстиль'),
        (90, 'square', 'квадрат'),
        (120, 'trine', 'трин'),
        (150, 'quincunx', 'квинконс'),
        (180, 'opposition', 'оппозиция'),
    ]

    # Вклад аспекта в гармонию пары
    ASPECT_HARMONY = {
        'trine': 1.0,
        'sextile': 0.7,
        'conjunction': 0.3,
        'quincunx': -0.3,
        'opposition': -0.5,
        'square': -0.7,
    }

    # Точки карты, участвующие в расчете
    CORE_BODIES = ['sun', 'moon', 'ascendant', 'mercury', 'venus', 'mars']
    LUMINARIES = {'sun', 'moon', 'ascendant'}

    # Базовые веса пар точек
    BODY_WEIGHT_DEFAULT = 1.0
    BODY_WEIGHT_LUMINARY = 1.5
    BODY_WEIGHT_SUN_MOON = 2.0
    BODY_WEIGHT_VENUS_MARS = 1.7
    TIGHTNESS_BONUS = 0.5

    # Компоненты итогового балла
    COMPONENTS = (
        'astrological',
        'questionnaire',
        'interests',
        'traits',
        'politics',
        'education',
        'children',
        'age',
    )

    # Векторы весов: выбираются по наличию данных для продвинутых скореров
    WEIGHT_PROFILES = {
        'full': {
            'astrological': 0.40,
            'questionnaire': 0.40,
            'interests': 0.05,
            'traits': 0.05,
            'politics': 0.025,
            'education': 0.025,
            'children': 0.025,
            'age': 0.025,
        },
        'questionnaire_only': {
            'questionnaire': 0.60,
            'interests': 0.10,
            'traits': 0.10,
            'politics': 0.05,
            'education': 0.05,
            'children': 0.05,
            'age': 0.05,
        },
        'astrological_only': {
            'astrological': 0.60,
            'interests': 0.10,
            'traits': 0.10,
            'politics': 0.05,
            'education': 0.05,
            'children': 0.05,
            'age': 0.05,
        },
        'basic_only': {
            'interests': 0.25,
            'traits': 0.20,
            'politics': 0.15,
            'children': 0.15,
            'age': 0.15,
            'education': 0.10,
        },
    }
    WEIGHT_SUM_TOLERANCE = 1e-9

    # Кеш совместимости
    CACHE_TTL_SECONDS = int(os.getenv("COMPATIBILITY_CACHE_TTL", "86400"))  # 24 часа
    CACHE_BACKEND = os.getenv("COMPATIBILITY_CACHE_BACKEND", "memory").lower()

    # Подбор кандидатов
    MAX_WORKERS = int(os.getenv("MATCHING_MAX_WORKERS", "8"))
    DEFAULT_LIMIT = int(os.getenv("MATCHING_DEFAULT_LIMIT", "20"))
    MAX_LIMIT = int(os.getenv("MATCHING_MAX_LIMIT", "100"))
    CANDIDATE_POOL_SIZE = int(os.getenv("MATCHING_CANDIDATE_POOL_SIZE", "500"))
    REQUIRE_ACTIVE_SUBSCRIPTION = os.getenv("MATCHING_REQUIRE_SUBSCRIPTION", "true").lower() == "true"

    # Значения по умолчанию для проверки пары
    DEFAULT_MIN_AGE = 18
    DEFAULT_MAX_AGE = 100
    DEFAULT_MAX_DISTANCE_KM = float(os.getenv("MATCHING_DEFAULT_MAX_DISTANCE_KM", "50"))

    @classmethod
    def get_orbs(cls) -> Dict[str, float]:
        """
        Получает орбисы аспектов.
        Приоритет: переменные окружения > значения по умолчанию

        Переменные окружения:
        - ASPECT_ORB_CONJUNCTION
        - ASPECT_ORB_OPPOSITION
        - ASPECT_ORB_TRINE
        - ASPECT_ORB_SQUARE
        - ASPECT_ORB_SEXTILE
        - ASPECT_ORB_QUINCUNX
        """
        orbs = cls.DEFAULT_ORBS.copy()

        for aspect_name in orbs.keys():
            env_key = f"ASPECT_ORB_{aspect_name.upper()}"
            env_value = os.getenv(env_key)
            if env_value:
                try:
                    orbs[aspect_name] = float(env_value)
                except ValueError:
                    logger.warning(f"⚠️ Неверное значение для {env_key}: {env_value}. Используется значение по умолчанию.")

        return orbs

    @classmethod
    def get_orb(cls, aspect_name: str) -> float:
        """Орбис для конкретного аспекта (0.0 для неизвестного)"""
        return cls.get_orbs().get(aspect_name, 0.0)

    @classmethod
    def get_recommendation_threshold(cls, profile: Optional[str] = None) -> int:
        """
        Порог рекомендации для профиля развертывания.
        MATCHING_RECOMMENDATION_THRESHOLD переопределяет значение профиля.
        """
        profile = profile or cls.SCORING_PROFILE
        env_value = os.getenv("MATCHING_RECOMMENDATION_THRESHOLD")
        if env_value:
            try:
                return int(env_value)
            except ValueError:
                logger.warning(f"⚠️ Неверное значение MATCHING_RECOMMENDATION_THRESHOLD: {env_value}")
        return cls.DEFAULT_RECOMMENDATION_THRESHOLDS.get(profile, 70)

    @classmethod
    def get_weight_profiles(cls) -> Dict[str, Dict[str, float]]:
        """Копия векторов весов (изменения копии не затрагивают конфигурацию)"""
        return copy.deepcopy(cls.WEIGHT_PROFILES)

    @classmethod
    def validate(
        cls,
        weight_profiles: Optional[Dict[str, Dict[str, float]]] = None,
        orbs: Optional[Dict[str, float]] = None,
        threshold: Optional[int] = None,
    ) -> None:
        """
        Проверка конфигурации. Вызывается при старте приложения.

        Raises:
            ConfigurationError: веса не суммируются в 1.0, неизвестный компонент,
                отрицательный вес, некорректный орбис/порог/число воркеров
        """
        profiles = weight_profiles if weight_profiles is not None else cls.WEIGHT_PROFILES
        required = {'full', 'questionnaire_only', 'astrological_only', 'basic_only'}
        missing = required - set(profiles.keys())
        if missing:
            raise ConfigurationError(f"Отсутствуют векторы весов: {sorted(missing)}")

        for name, weights in profiles.items():
            unknown = set(weights.keys()) - set(cls.COMPONENTS)
            if unknown:
                raise ConfigurationError(f"Вектор '{name}' содержит неизвестные компоненты: {sorted(unknown)}")
            negative = [component for component, weight in weights.items() if weight < 0]
            if negative:
                raise ConfigurationError(f"Вектор '{name}' содержит отрицательные веса: {negative}")
            total = math.fsum(weights.values())
            if abs(total - 1.0) > cls.WEIGHT_SUM_TOLERANCE:
                raise ConfigurationError(f"Сумма весов вектора '{name}' равна {total}, ожидается 1.0")

        for aspect_name, orb in (orbs if orbs is not None else cls.get_orbs()).items():
            if not (0 < orb < 30):
                raise ConfigurationError(f"Орбис аспекта '{aspect_name}' вне диапазона (0, 30): {orb}")

        threshold = threshold if threshold is not None else cls.get_recommendation_threshold()
        if not (0 <= threshold <= 100):
            raise ConfigurationError(f"Порог рекомендации вне диапазона [0, 100]: {threshold}")

        if cls.SCORING_PROFILE not in cls.DEFAULT_RECOMMENDATION_THRESHOLDS:
            raise ConfigurationError(f"Неизвестный профиль подбора: {cls.SCORING_PROFILE}")
        if cls.MAX_WORKERS < 1:
            raise ConfigurationError(f"MATCHING_MAX_WORKERS должен быть >= 1: {cls.MAX_WORKERS}")
        if cls.MAX_LIMIT < 1:
            raise ConfigurationError(f"MATCHING_MAX_LIMIT должен быть >= 1: {cls.MAX_LIMIT}")
        if cls.QUESTIONNAIRE_GROUPS < 1 or cls.QUESTIONNAIRE_PER_GROUP < 1:
            raise ConfigurationError("Анкета должна содержать хотя бы одну группу и один вопрос")
        if cls.CACHE_BACKEND not in ('memory', 'redis'):
            raise ConfigurationError(f"Неизвестный бэкенд кеша: {cls.CACHE_BACKEND}")

    @classmethod
    def get_module_config(cls, module_name: str) -> Dict[str, Any]:
        """Получить конфигурацию для конкретного модуля"""
        configs = {
            "synastry": {
                "orbs": cls.get_orbs(),
                "core_bodies": list(cls.CORE_BODIES),
                "harmony": dict(cls.ASPECT_HARMONY),
            },
            "questionnaire": {
                "groups": cls.QUESTIONNAIRE_GROUPS,
                "per_group": cls.QUESTIONNAIRE_PER_GROUP,
                "answer_min": cls.ANSWER_MIN,
                "answer_max": cls.ANSWER_MAX,
                "neutral_answer": cls.NEUTRAL_ANSWER,
            },
            "aggregator": {
                "weight_profiles": cls.get_weight_profiles(),
                "threshold": cls.get_recommendation_threshold(),
            },
            "cache": {
                "ttl_seconds": cls.CACHE_TTL_SECONDS,
                "backend": cls.CACHE_BACKEND,
            },
            "pipeline": {
                "max_workers": cls.MAX_WORKERS,
                "default_limit": cls.DEFAULT_LIMIT,
                "max_limit": cls.MAX_LIMIT,
                "pool_size": cls.CANDIDATE_POOL_SIZE,
                "require_subscription": cls.REQUIRE_ACTIVE_SUBSCRIPTION,
            },
        }
        return configs.get(module_name, {})


# Глобальный экземпляр конфигурации
matching_config = MatchingConfig()
