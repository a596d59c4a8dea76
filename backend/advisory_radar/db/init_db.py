# backend/advisory_radar/db/init_db.py

from sqlalchemy.engine import Engine

from advisory_radar.db.base_class import Base

# Import models so they are registered with Base.metadata
from advisory_radar import models  # noqa: F401


def init_db(engine: Engine) -> None:
    """
    Create all tables (development only).
    In production, replace this with Alembic migrations.
    """
    Base.metadata.create_all(bind=engine)
