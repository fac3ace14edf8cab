"""
Подключение к базе данных: движок, фабрика сессий и декларативная база моделей.
"""
import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./matching.db")

# SQLite требует check_same_thread=False: сессии открываются из пула потоков
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(DATABASE_URL, connect_args={"check_same_thread": False})
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Зависимость FastAPI: сессия БД на время запроса"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
