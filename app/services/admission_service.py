"""
Admission controller for the public join endpoint.

Steps run in a fixed order and each one can end the request:
input validation, API key resolution, freeze check, rate limit, duplicate
lookup, referral lookup, insert, referral credit, rank. A repeat join is
reported as success with already_member=True; it never creates a row,
consumes a referral or moves credit.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import (
    InvalidInputError,
    RateLimitedError,
    StorageUnavailableError,
    UnauthorizedError,
    WaitlistClosedError,
)
from app.models.waitlist_entry import WaitlistEntry
from app.services.ledger_service import LedgerService, normalize_email
from app.services.project_service import ProjectService
from app.services.rank_calculator import Rank, RankCalculator
from app.utils.audit import (
    JOIN_ACCEPTED,
    JOIN_DUPLICATE,
    REFERRAL_CREDIT_FAILED,
    REFERRAL_CREDITED,
    REJECT_CLOSED,
    REJECT_INVALID_INPUT,
    REJECT_RATE_LIMITED,
    REJECT_UNAUTHORIZED,
    audit,
    audit_join_rejected,
)
from app.utils.rate_limiter import RateLimitResult, allow_for_credential

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 255

ALREADY_MEMBER_MESSAGE = "You are already on the waitlist!"


@dataclass(frozen=True)
class JoinResult:
    accepted: bool
    already_member: bool
    rank: Rank
    referral_token: str
    message: Optional[str] = None

    @property
    def position(self) -> Optional[int]:
        return self.rank.position

    @property
    def tier(self) -> Optional[str]:
        return self.rank.tier


def validate_email(email: str) -> bool:
    return len(email) <= MAX_EMAIL_LENGTH and EMAIL_PATTERN.match(email) is not None


class AdmissionController:
    def __init__(
        self,
        db: Session,
        rate_limit: Callable[[str], RateLimitResult] = allow_for_credential,
        ledger: Optional[LedgerService] = None,
        referral_credit: Optional[int] = None,
    ):
        self.db = db
        self.rate_limit = rate_limit
        self.projects = ProjectService(db)
        self.ledger = ledger or LedgerService(db)
        self.ranks = RankCalculator(self.ledger)
        self.referral_credit = settings.REFERRAL_CREDIT if referral_credit is None else referral_credit

    def join(self, api_key: Optional[str], email: Optional[str], referral_token: Optional[str] = None) -> JoinResult:
        api_key = (api_key or "").strip()
        email = (email or "").strip()
        referral_token = (referral_token or "").strip() or None

        # 1. Input validation
        if not api_key:
            self._reject(REJECT_INVALID_INPUT, api_key, email)
            raise InvalidInputError("API key is required")
        if not email:
            self._reject(REJECT_INVALID_INPUT, api_key, email)
            raise InvalidInputError("Email is required")
        if not validate_email(email):
            self._reject(REJECT_INVALID_INPUT, api_key, email)
            raise InvalidInputError("Invalid email format")

        # 2. Credential resolution
        project = self._storage(lambda: self.projects.get_by_api_key(api_key), "resolve api key")
        if project is None:
            self._reject(REJECT_UNAUTHORIZED, api_key, email)
            raise UnauthorizedError()

        # Every commit below expires ORM state; past this point only these plain values are read
        project_id = project.id
        show_position = bool(project.show_position)

        # 3. Freeze check, before any rate limit slot is spent
        if project.is_frozen:
            self._reject(REJECT_CLOSED, api_key, email, project_id)
            raise WaitlistClosedError()

        # 4. Rate limit
        budget = self.rate_limit(api_key)
        if not budget.allowed:
            self._reject(REJECT_RATE_LIMITED, api_key, email, project_id)
            raise RateLimitedError(retry_after=budget.reset_in)

        # 5. Duplicate check
        normalized = normalize_email(email)
        existing = self._storage(lambda: self.ledger.find_by_email(project_id, normalized), "duplicate lookup")
        if existing is not None:
            return self._already_member(project_id, show_position, _Admitted.of(existing))

        # 6. Referral lookup (best-effort)
        referrer_id = self._find_referrer(project_id, referral_token)
        received_credit = self.referral_credit if referrer_id is not None else 0

        # 7. Insert; a lost race against an identical join resolves to the winner's row
        admitted, created = self._storage(
            lambda: self._insert(project_id, normalized, referral_token, received_credit),
            "insert entry",
        )
        if not created:
            return self._already_member(project_id, show_position, admitted)

        if referrer_id is not None:
            self._credit_referrer(project_id, referrer_id)

        # 8. Rank
        rank = self._rank(project_id, show_position, admitted)
        audit(
            JOIN_ACCEPTED,
            project_id=project_id,
            email=normalized,
            referred=referrer_id is not None,
            position=rank.position,
            tier=rank.tier,
        )
        logger.info("New signup for project %s, position: %s", project_id, rank.position)
        return JoinResult(
            accepted=True,
            already_member=False,
            rank=rank,
            referral_token=admitted.referral_token,
        )

    def _insert(self, project_id, email: str, referral_token: Optional[str], priority_score: int):
        entry, created = self.ledger.insert_or_fetch(
            project_id,
            email,
            referred_by=referral_token,
            priority_score=priority_score,
        )
        # insert_or_fetch hands back a loaded row; read it before anything else commits
        return _Admitted.of(entry), created

    def _already_member(self, project_id, show_position: bool, admitted: "_Admitted") -> JoinResult:
        rank = self._rank(project_id, show_position, admitted)
        audit(JOIN_DUPLICATE, project_id=project_id, email=admitted.email)
        return JoinResult(
            accepted=True,
            already_member=True,
            rank=rank,
            referral_token=admitted.referral_token,
            message=ALREADY_MEMBER_MESSAGE,
        )

    def _find_referrer(self, project_id, referral_token: Optional[str]):
        if not referral_token:
            return None
        try:
            referrer = self.ledger.find_by_referral_token(project_id, referral_token)
            return referrer.id if referrer is not None else None
        except SQLAlchemyError:
            self._rollback()
            logger.exception("Referral lookup failed for project %s; joining without referral", project_id)
            return None

    def _credit_referrer(self, project_id, referrer_id) -> None:
        # Membership is already committed; a failed credit must not undo it
        try:
            self.ledger.credit_referrer(referrer_id, self.referral_credit)
        except SQLAlchemyError as e:
            logger.exception("Referral credit failed for entry %s in project %s", referrer_id, project_id)
            audit(REFERRAL_CREDIT_FAILED, project_id=project_id, entry_id=referrer_id, error=type(e).__name__)
            return
        audit(REFERRAL_CREDITED, project_id=project_id, entry_id=referrer_id, credit=self.referral_credit)

    def _rank(self, project_id, show_position: bool, admitted: "_Admitted") -> Rank:
        try:
            return self.ranks.rank_for(project_id, admitted.joined_at, show_position)
        except SQLAlchemyError:
            self._rollback()
            logger.exception("Rank computation failed for entry %s in project %s", admitted.id, project_id)
            return Rank.unknown()

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback failed; session will be discarded with the request")

    def _storage(self, operation, what: str):
        try:
            return operation()
        except SQLAlchemyError as e:
            self._rollback()
            logger.exception("Storage failure during %s", what)
            raise StorageUnavailableError("Storage unavailable", details=f"{what}: {e}") from e

    def _reject(self, reason: str, api_key: str, email: str, project_id=None) -> None:
        audit_join_rejected(reason, api_key=api_key, email=email, project_id=project_id)


@dataclass(frozen=True)
class _Admitted:
    """Detached copy of the entry a join resolved to"""
    id: uuid.UUID
    email: str
    referral_token: str
    joined_at: datetime

    @classmethod
    def of(cls, entry: WaitlistEntry) -> "_Admitted":
        return cls(
            id=entry.id,
            email=entry.email,
            referral_token=entry.referral_token,
            joined_at=entry.joined_at,
        )
