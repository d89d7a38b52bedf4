# app/db/session.py
from app.db.mongo import get_database


def get_db():
    """
    FastAPI dependency that returns Mongo database instance
    """
    return get_database()
