"""User model."""

from sqlalchemy import Column, Integer, String

from src.database import Base
from src.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """User model for authentication and task ownership."""

    __tablename__ = "users"
    # AUTOINCREMENT keeps SQLite from handing out a deleted max id again
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    # Compared verbatim; no case folding
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
