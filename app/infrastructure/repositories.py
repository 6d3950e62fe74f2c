"""Infrastructure layer: directory and audit interfaces plus the SQLAlchemy audit store."""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.domain.commands import AuditRecord, AuditStatus, TargetRecord
from database.models import CommandLog, UserSessionLog
from utils.time import iso_utc, normalize_iso

logger = logging.getLogger(__name__)


class DirectoryResolver(ABC):
    """Read-only lookups of people in the corporate directory."""

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[TargetRecord]:
        """Resolve a bare username; None when nobody matches."""
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[TargetRecord]:
        """Resolve a mail address or UPN; None when nobody matches."""
        pass


class AuditRecorder(ABC):
    """Append-only trail of command executions and sign-ins."""

    @abstractmethod
    async def record(self, entry: AuditRecord) -> None:
        pass

    @abstractmethod
    async def record_session(self, user_id: str, user_name: str, user_principal_name: Optional[str],
                             department: Optional[str], mfa_verified: bool) -> None:
        pass


def _row_to_dict(row: CommandLog) -> Dict:
    return {
        "id": row.id,
        "timestamp": row.timestamp,
        "user_id": row.user_id,
        "user_name": row.user_name,
        "chat_id": row.chat_id,
        "command": row.command,
        "result": row.result,
        "details": row.details,
    }


class SqlAlchemyAuditRecorder(AuditRecorder):
    """SQLAlchemy implementation of AuditRecorder.

    Opens a short-lived session per write so it can be shared by concurrent
    requests; the blocking work runs in a worker thread.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _insert(self, row) -> int:
        db = self.session_factory()
        try:
            db.add(row)
            db.commit()
            db.refresh(row)
            return row.id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def record(self, entry: AuditRecord) -> None:
        row = CommandLog(
            timestamp=normalize_iso(entry.timestamp),
            user_id=entry.actor_id,
            user_name=entry.actor_name,
            chat_id=entry.chat_id,
            command=entry.command_text,
            result=entry.status.value,
            details=entry.details or "",
        )
        row_id = await asyncio.to_thread(self._insert, row)
        logger.info(f"📝 Command logged with ID: {row_id}")

    async def record_session(self, user_id: str, user_name: str, user_principal_name: Optional[str],
                             department: Optional[str], mfa_verified: bool) -> None:
        row = UserSessionLog(
            user_id=user_id,
            user_name=user_name or "",
            user_principal_name=user_principal_name,
            department=department,
            login_time=iso_utc(),
            mfa_verified=mfa_verified,
        )
        await asyncio.to_thread(self._insert, row)

    def get_command_history(self, user_id: Optional[str] = None, limit: int = 100) -> List[Dict]:
        db = self.session_factory()
        try:
            query = db.query(CommandLog)
            if user_id:
                query = query.filter(CommandLog.user_id == user_id)
            rows = query.order_by(CommandLog.id.desc()).limit(limit).all()
            return [_row_to_dict(r) for r in rows]
        finally:
            db.close()

    def get_audit_report(self, start: str, end: str, user_id: Optional[str] = None) -> List[Dict]:
        """Rows whose ISO timestamp falls in [start, end], oldest first.

        Bounds are re-rendered in the stored fixed-width form before the text
        comparison; raises ValueError for unparseable bounds.
        """
        start, end = normalize_iso(start), normalize_iso(end)
        db = self.session_factory()
        try:
            query = db.query(CommandLog).filter(CommandLog.timestamp >= start, CommandLog.timestamp <= end)
            if user_id:
                query = query.filter(CommandLog.user_id == user_id)
            return [_row_to_dict(r) for r in query.order_by(CommandLog.timestamp).all()]
        finally:
            db.close()

    def get_stats(self) -> Dict:
        db = self.session_factory()
        try:
            total = db.query(func.count(CommandLog.id)).scalar() or 0
            successful = db.query(func.count(CommandLog.id)).filter(
                CommandLog.result == AuditStatus.SUCCESS.value
            ).scalar() or 0
            unique_users = db.query(func.count(func.distinct(CommandLog.user_id))).scalar() or 0
            last = db.query(CommandLog).order_by(CommandLog.id.desc()).first()
            return {
                "total_commands": total,
                "successful_commands": successful,
                "failed_commands": total - successful,
                "unique_users": unique_users,
                "last_command": _row_to_dict(last) if last else None,
            }
        finally:
            db.close()
