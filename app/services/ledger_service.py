"""
Entry ledger: the durable record of who joined which waitlist, and when.

One row per (project, normalized email). Rows are only ever mutated to add
referral credit. Every write commits its own transaction so that a failure
in a best-effort step never rolls back a membership.
"""
import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import StorageUnavailableError
from app.models.waitlist_entry import WaitlistEntry

logger = logging.getLogger(__name__)

# First attempt plus one retry after a referral token collision
MAX_INSERT_ATTEMPTS = 2


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_referral_token() -> str:
    return secrets.token_urlsafe(6)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_midnight(now: Optional[datetime] = None) -> datetime:
    """Start of the current day in UTC, the boundary for 'today' counters."""
    now = (now or utc_now()).astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class LedgerService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.clock = clock

    def find_by_email(self, project_id: uuid.UUID, email: str) -> Optional[WaitlistEntry]:
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.project_id == project_id,
            WaitlistEntry.email == normalize_email(email),
        ).first()

    def find_by_referral_token(self, project_id: uuid.UUID, token: str) -> Optional[WaitlistEntry]:
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.project_id == project_id,
            WaitlistEntry.referral_token == token,
        ).first()

    def insert_or_fetch(
        self,
        project_id: uuid.UUID,
        email: str,
        referred_by: Optional[str] = None,
        priority_score: int = 0,
    ) -> Tuple[WaitlistEntry, bool]:
        """Insert a new entry, or return the one that already holds (project, email).

        Returns (entry, created). The unique constraints decide: on an
        IntegrityError the email is looked up again; if a concurrent join
        won the race its row is returned with created=False, otherwise the
        failure was a referral token collision and the insert is retried
        with a fresh token.
        """
        normalized = normalize_email(email)
        for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
            entry = WaitlistEntry(
                project_id=project_id,
                email=normalized,
                joined_at=self.clock(),
                referral_token=generate_referral_token(),
                referred_by=referred_by,
                priority_score=priority_score,
            )
            self.db.add(entry)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                existing = self.find_by_email(project_id, normalized)
                if existing is not None:
                    logger.info("Concurrent join for project %s resolved to existing entry %s", project_id, existing.id)
                    return existing, False
                logger.warning("Referral token collision for project %s (attempt %d)", project_id, attempt)
                continue
            self.db.refresh(entry)
            return entry, True

        raise StorageUnavailableError(
            "Could not allocate a unique referral token",
            details=f"project_id={project_id} attempts={MAX_INSERT_ATTEMPTS}",
        )

    def credit_referrer(self, entry_id: uuid.UUID, credit: int = 1) -> None:
        """Add credit to an entry's priority score in a single atomic UPDATE."""
        try:
            self.db.execute(
                update(WaitlistEntry)
                .where(WaitlistEntry.id == entry_id)
                .values(priority_score=WaitlistEntry.priority_score + credit)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def rank_counts(self, project_id: uuid.UUID, joined_at: datetime) -> Tuple[int, int]:
        """Return (position, total) for a join timestamp from one statement.

        Position is the inclusive count of entries that joined at or before
        joined_at, so entries sharing a timestamp all count each other.
        """
        position, total = self.db.query(
            func.coalesce(func.sum(case((WaitlistEntry.joined_at <= joined_at, 1), else_=0)), 0),
            func.count(WaitlistEntry.id),
        ).filter(WaitlistEntry.project_id == project_id).one()
        return int(position), int(total)

    def list_entries(self, project_id: uuid.UUID, limit: Optional[int] = None, offset: int = 0) -> List[WaitlistEntry]:
        """Entries for the dashboard, newest first."""
        query = self.db.query(WaitlistEntry).filter(
            WaitlistEntry.project_id == project_id
        ).order_by(WaitlistEntry.joined_at.desc(), WaitlistEntry.id)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_total(self, project_id: uuid.UUID) -> int:
        return self.db.query(WaitlistEntry).filter(WaitlistEntry.project_id == project_id).count()

    def count_since(self, project_id: uuid.UUID, since: datetime) -> int:
        return self.db.query(WaitlistEntry).filter(
            WaitlistEntry.project_id == project_id,
            WaitlistEntry.joined_at >= since,
        ).count()

    def stats(self, project_id: uuid.UUID) -> dict:
        return {
            "total": self.count_total(project_id),
            "today": self.count_since(project_id, utc_midnight(self.clock())),
        }
