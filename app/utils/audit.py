"""
Audit trail for the join endpoint, one JSON object per line on the "audit" logger.

Rejections are recorded even when they write nothing (frozen projects,
exhausted budgets, unknown keys) so abuse can be measured per key. Emails
and API keys only ever appear as truncated SHA-256 fingerprints.
"""
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

_logger = logging.getLogger("audit")

JOIN_ACCEPTED = "JOIN_ACCEPTED"
JOIN_DUPLICATE = "JOIN_DUPLICATE"
JOIN_REJECTED = "JOIN_REJECTED"
REFERRAL_CREDITED = "REFERRAL_CREDITED"
REFERRAL_CREDIT_FAILED = "REFERRAL_CREDIT_FAILED"
RATE_LIMIT_STORE_UNAVAILABLE = "RATE_LIMIT_STORE_UNAVAILABLE"

# JOIN_REJECTED reasons
REJECT_INVALID_INPUT = "invalid_input"
REJECT_UNAUTHORIZED = "unauthorized"
REJECT_CLOSED = "closed"
REJECT_RATE_LIMITED = "rate_limited"


def fingerprint(value: str, length: int = 12) -> str:
    return hashlib.sha256(value.encode()).hexdigest()[:length]


def audit(
    event: str,
    *,
    project_id: Any = None,
    email: Optional[str] = None,
    api_key: Optional[str] = None,
    entry_id: Any = None,
    **fields: Any,
) -> None:
    record = {"ts": datetime.now(timezone.utc).isoformat(), "event": event}
    if project_id is not None:
        record["project_id"] = str(project_id)
    if entry_id is not None:
        record["entry_id"] = str(entry_id)
    if email:
        record["email_hash"] = fingerprint(email.strip().lower())
    if api_key:
        record["key_fingerprint"] = fingerprint(api_key)
    record.update(fields)
    _logger.info(json.dumps(record, ensure_ascii=False, default=str))


def audit_join_rejected(reason: str, *, api_key: Optional[str], email: Optional[str], project_id: Any = None) -> None:
    """A join that ended before touching the ledger"""
    audit(JOIN_REJECTED, project_id=project_id, email=email, api_key=api_key, reason=reason)
