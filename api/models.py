# file: models.py

import os
import logging

from sqlalchemy import Column, Integer, Text, create_engine
from sqlalchemy.engine import URL
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

Base = declarative_base()


class Goal(Base):
    __tablename__ = "goals"
    id = Column(Integer, primary_key=True, autoincrement=True)
    goal_name = Column(Text, nullable=False)

    def to_dict(self):
        return {"id": self.id, "goal_name": self.goal_name}


# ============================================================================
# Database Configuration
# ============================================================================

def get_database_url():
    """
    Resolve the database URL from the environment.

    DATABASE_URL wins; otherwise DB_HOST selects PostgreSQL (the managed
    server in the cloud deployment); otherwise a local SQLite file is used.
    """
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit

    db_host = os.getenv("DB_HOST")
    if db_host:
        query = {}
        if os.getenv("DB_SSLMODE"):
            query["sslmode"] = os.getenv("DB_SSLMODE")
        return URL.create(
            "postgresql+psycopg2",
            username=os.getenv("DB_USER", "postgres"),
            password=os.getenv("DB_PASSWORD"),
            host=db_host,
            port=int(os.getenv("DB_PORT", 5432)),
            database=os.getenv("DB_NAME", "goalsdb"),
            query=query,
        )

    db_dir = os.getenv("DB_DIR", "/tmp")
    db_path = os.getenv("DB_PATH", os.path.join(db_dir, "goals.db"))
    if db_path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
    return f"sqlite:///{db_path}"


def make_engine(url=None):
    url = url or get_database_url()
    connect_args = {}
    if str(url).startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def init_db(bind):
    """Create the goals table if it does not exist yet."""
    Base.metadata.create_all(bind=bind)
    logger.info("Schema ready: %s", ", ".join(Base.metadata.tables))


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
