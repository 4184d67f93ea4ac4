from .session import engine, SessionLocal, get_db, init_db, close_db, task_session
from .base import Base

__all__ = ["engine", "SessionLocal", "get_db", "init_db", "close_db", "task_session", "Base"]
