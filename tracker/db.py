# tracker/db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .config import DATABASE_URL
from .models import Base

IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def make_session_factory(database_url: str = DATABASE_URL) -> sessionmaker:
    """Engine + Session-Factory anlegen und die Tabellen sicherstellen."""
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}  # nur für SQLite nötig
    if database_url in IN_MEMORY_URLS:
        # eine einzige Verbindung, sonst sieht jede Session eine leere DB
        kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine):
    """Einmalig beim Start aufrufen, um die Tabellen zu erstellen."""
    Base.metadata.create_all(bind=engine)
