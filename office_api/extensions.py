# office_api/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()


def normalize_db_url(url: str) -> str:
    if not url:
        return url
    # Render / Heroku style -> SQLAlchemy psycopg driver
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def engine_options(url: str) -> dict:
    # sqlite (tests, local) takes no pool tuning
    if not url or url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 270,
        "pool_size": 5,
        "max_overflow": 2,
        "pool_timeout": 30,
    }
