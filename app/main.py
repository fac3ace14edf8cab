from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import os
import logging
from dotenv import load_dotenv

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Импорты из наших модулей
from app.core.database import engine, Base
from app.api.v1.endpoints import general_router, matching_router
from app.services.matching.config import MatchingConfig
from app.services.matching.exceptions import ConfigurationError, InvalidFilterParams, PersistenceFailure

# Загружаем переменные окружения
load_dotenv()

# Некорректная конфигурация весов/орбисов/порогов останавливает запуск
try:
    MatchingConfig.validate()
    logger.info(f"✅ Конфигурация подбора проверена (профиль: {MatchingConfig.SCORING_PROFILE})")
except ConfigurationError as e:
    logger.error(f"❌ Некорректная конфигурация подбора: {str(e)}")
    raise

tags_metadata = [
    {"name": "General", "description": "Общие сервисные эндпоинты: проверка работы API."},
    {"name": "Совместимость и подбор", "description": "Совместимость пар, подбор кандидатов, свайпы и блокировки."},
]

# FastAPI приложение
app = FastAPI(
    title="Astromatch API",
    description="API совместимости пользователей и подбора кандидатов",
    version="1.0.0",
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# CORS (для удобной работы Swagger UI и внешних клиентов в DEV)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(general_router)
app.include_router(matching_router)

# Создаем таблицы только если их нет
try:
    from sqlalchemy import inspect
    inspector = inspect(engine)
    existing_tables = inspector.get_table_names()

    if existing_tables:
        logger.info(f"✅ Таблицы базы данных уже существуют ({len(existing_tables)} таблиц)")
    Base.metadata.create_all(bind=engine)
except Exception as e:
    logger.error(f"❌ Ошибка при создании таблиц: {str(e)}", exc_info=True)


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request, exc: PersistenceFailure):
    logger.error(f"❌ Ошибка хранилища: {str(exc)}")
    return JSONResponse(
        status_code=503,
        content={
            "detail": "Хранилище временно недоступно, повторите запрос",
            "operation": exc.operation,
            "retryable": exc.retryable
        }
    )


@app.exception_handler(InvalidFilterParams)
async def invalid_filter_params_handler(request, exc: InvalidFilterParams):
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=os.getenv("APP_HOST", "0.0.0.0"),
        port=int(os.getenv("APP_PORT", 8000)),
        reload=True
    )
