from shared.database import Base, get_engine, get_session

from .config import SCHEDULING_DB

if not SCHEDULING_DB:
    raise RuntimeError("SCHEDULING_DB environment variable is not set")

engine = get_engine(SCHEDULING_DB)

SessionLocal = get_session(engine)

__all__ = ["Base", "engine", "SessionLocal"]
