from sqlalchemy import Column, String, Integer, DateTime, Text, Boolean, Index
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()


class CommandLog(Base):
    """Append-only audit row for every routed command."""
    __tablename__ = "command_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(String(40), nullable=False)
    user_id = Column(String(200), nullable=False)
    user_name = Column(String(200), nullable=False)
    chat_id = Column(String(500), nullable=False)
    command = Column(Text, nullable=False)
    result = Column(String(20), nullable=False)
    details = Column(Text, default="")
    created_at = Column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("idx_command_logs_user_id", "user_id"),
        Index("idx_command_logs_timestamp", "timestamp"),
        Index("idx_command_logs_chat_id", "chat_id"),
    )


class UserSessionLog(Base):
    """One row per completed sign-in."""
    __tablename__ = "user_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(200), nullable=False, index=True)
    user_name = Column(String(200), nullable=False)
    user_principal_name = Column(String(255))
    department = Column(String(200))
    login_time = Column(String(40), nullable=False)
    mfa_verified = Column(Boolean, default=False)
    created_at = Column(DateTime, default=_utcnow)
