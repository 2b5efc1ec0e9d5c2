import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    InvalidInputError,
    RateLimitedError,
    StorageUnavailableError,
    UnauthorizedError,
    WaitlistClosedError,
)
from app.models.waitlist_entry import WaitlistEntry
from app.services.admission_service import AdmissionController, validate_email
from app.services.rank_calculator import ON_THE_LIST, TOP_10
from app.utils.rate_limiter import RateLimitResult


def _db_error():
    return OperationalError("SELECT 1", {}, Exception("statement timeout"))


def _entries(db_session, project):
    return db_session.query(WaitlistEntry).filter(WaitlistEntry.project_id == project.id).all()


@pytest.fixture
def outage_after_insert(db_session, controller, monkeypatch):
    """Drop the database connection right after the join's insert commits."""
    down = {"armed": True, "on": False}
    bind = db_session.get_bind()

    def refuse(conn, cursor, statement, parameters, context, executemany):
        if down["on"]:
            raise OperationalError(statement, parameters, Exception("server closed the connection unexpectedly"))

    real_insert = controller.ledger.insert_or_fetch

    def insert_then_fail(*args, **kwargs):
        result = real_insert(*args, **kwargs)
        down["on"] = down["armed"]
        return result

    event.listen(bind, "before_cursor_execute", refuse)
    monkeypatch.setattr(controller.ledger, "insert_or_fetch", insert_then_fail)
    try:
        yield down
    finally:
        event.remove(bind, "before_cursor_execute", refuse)
        down["on"] = False


def test_join_then_rejoin_returns_same_entry(controller, project):
    first = controller.join(project.api_key, "a@x.com")
    second = controller.join(project.api_key, "a@x.com")

    assert first.accepted and second.accepted
    assert first.already_member is False
    assert second.already_member is True
    assert second.referral_token == first.referral_token
    assert second.position == first.position == 1
    assert second.message == "You are already on the waitlist!"


def test_positions_follow_join_order(controller, project):
    results = [controller.join(project.api_key, email) for email in ("a@x.com", "b@x.com", "c@x.com")]
    assert [r.position for r in results] == [1, 2, 3]
    assert all(r.tier is None for r in results)

    again = controller.join(project.api_key, "a@x.com")
    assert again.already_member is True
    assert again.position == 1


def test_tiers_when_positions_hidden(controller, make_project):
    project = make_project("hidden", show_position=False)
    for i in range(10):
        controller.join(project.api_key, f"user{i}@x.com")

    first = controller.join(project.api_key, "user0@x.com")
    last = controller.join(project.api_key, "user9@x.com")
    assert first.position is None and first.tier == TOP_10
    assert last.position is None and last.tier == ON_THE_LIST


def test_email_is_normalized(controller, project, db_session):
    first = controller.join(project.api_key, "  Alice@Example.COM ")
    second = controller.join(project.api_key, "alice@example.com")
    assert second.already_member is True
    assert second.referral_token == first.referral_token
    assert [e.email for e in _entries(db_session, project)] == ["alice@example.com"]


@pytest.mark.parametrize(
    "api_key,email,message",
    [
        (None, "a@x.com", "API key is required"),
        ("", "a@x.com", "API key is required"),
        ("key", None, "Email is required"),
        ("key", "   ", "Email is required"),
        ("key", "not-an-email", "Invalid email format"),
        ("key", "a b@x.com", "Invalid email format"),
        ("key", "a@nodot", "Invalid email format"),
        ("key", "a" * 250 + "@x.com", "Invalid email format"),
    ],
)
def test_invalid_input(controller, api_key, email, message):
    with pytest.raises(InvalidInputError) as exc:
        controller.join(api_key, email)
    assert exc.value.message == message


def test_validate_email_length_boundary():
    local = "a" * (255 - len("@x.com"))
    assert validate_email(local + "@x.com")
    assert not validate_email("a" + local + "@x.com")


def test_unknown_api_key(controller, project):
    with pytest.raises(UnauthorizedError) as exc:
        controller.join("wl_live_doesnotexist", "a@x.com")
    assert exc.value.message == "Invalid API key"


def test_frozen_project_rejects_without_spending_budget(db_session, make_project):
    project = make_project("closed", is_frozen=True)
    calls = []

    def exhausted(api_key):
        calls.append(api_key)
        return RateLimitResult(allowed=False, remaining=0)

    controller = AdmissionController(db_session, rate_limit=exhausted)
    with pytest.raises(WaitlistClosedError):
        controller.join(project.api_key, "a@x.com")
    assert calls == []
    assert _entries(db_session, project) == []


def test_rate_limited_join_writes_nothing(db_session, project):
    controller = AdmissionController(
        db_session, rate_limit=lambda key: RateLimitResult(allowed=False, remaining=0, reset_in=42)
    )
    with pytest.raises(RateLimitedError) as exc:
        controller.join(project.api_key, "a@x.com")
    assert exc.value.retry_after == 42
    assert _entries(db_session, project) == []


def test_budget_exhausted_after_limit(db_session, ledger, fake_redis, project):
    from functools import partial
    from app.utils.rate_limiter import allow_for_credential

    controller = AdmissionController(
        db_session,
        rate_limit=partial(allow_for_credential, limit=3, window_seconds=60, client=fake_redis),
        ledger=ledger,
    )
    for i in range(3):
        controller.join(project.api_key, f"u{i}@x.com")
    with pytest.raises(RateLimitedError):
        controller.join(project.api_key, "u3@x.com")
    # Repeat joins count against the budget too
    with pytest.raises(RateLimitedError):
        controller.join(project.api_key, "u0@x.com")


def test_referral_credits_referrer_once(controller, project, db_session):
    a = controller.join(project.api_key, "a@x.com")
    b = controller.join(project.api_key, "b@x.com", a.referral_token)
    c = controller.join(project.api_key, "c@x.com", b.referral_token)

    scores = {e.email: e.priority_score for e in _entries(db_session, project)}
    # b got 1 for being referred and 1 for referring c; a is not credited for c
    assert scores == {"a@x.com": 1, "b@x.com": 2, "c@x.com": 1}

    entry_c = db_session.query(WaitlistEntry).filter(WaitlistEntry.email == "c@x.com").one()
    assert entry_c.referred_by == b.referral_token
    assert c.referral_token not in (a.referral_token, b.referral_token)


def test_repeat_join_with_referral_moves_no_credit(controller, project, db_session):
    a = controller.join(project.api_key, "a@x.com")
    controller.join(project.api_key, "b@x.com")
    again = controller.join(project.api_key, "b@x.com", a.referral_token)

    assert again.already_member is True
    scores = {e.email: e.priority_score for e in _entries(db_session, project)}
    assert scores == {"a@x.com": 0, "b@x.com": 0}


def test_unknown_referral_token_is_ignored(controller, project, db_session):
    controller.join(project.api_key, "a@x.com", "nosuchtoken")
    entry = _entries(db_session, project)[0]
    assert entry.priority_score == 0
    assert entry.referred_by == "nosuchtoken"


def test_referral_token_from_other_project_is_ignored(controller, project, make_project, db_session):
    other = make_project("other")
    outsider = controller.join(other.api_key, "a@x.com")
    controller.join(project.api_key, "b@x.com", outsider.referral_token)

    assert _entries(db_session, other)[0].priority_score == 0
    assert _entries(db_session, project)[0].priority_score == 0


def test_referral_credit_failure_does_not_block_join(controller, project, db_session, monkeypatch):
    a = controller.join(project.api_key, "a@x.com")

    def broken(entry_id, credit=1):
        raise _db_error()

    monkeypatch.setattr(controller.ledger, "credit_referrer", broken)
    b = controller.join(project.api_key, "b@x.com", a.referral_token)

    assert b.accepted and not b.already_member
    assert b.position == 2
    scores = {e.email: e.priority_score for e in _entries(db_session, project)}
    assert scores["a@x.com"] == 0


def test_rank_failure_omits_rank(controller, project, monkeypatch):
    def broken(project_id, joined_at):
        raise _db_error()

    monkeypatch.setattr(controller.ledger, "rank_counts", broken)
    result = controller.join(project.api_key, "a@x.com")
    assert result.accepted and result.referral_token
    assert result.position is None and result.tier is None


def test_storage_failure_on_lookup(controller, project, monkeypatch):
    def broken(api_key):
        raise _db_error()

    monkeypatch.setattr(controller.projects, "get_by_api_key", broken)
    with pytest.raises(StorageUnavailableError) as exc:
        controller.join(project.api_key, "a@x.com")
    assert "resolve api key" in exc.value.details


def test_lost_insert_race_reports_existing_member(controller, project, db_session, monkeypatch):
    winner = controller.join(project.api_key, "a@x.com")

    real_find = controller.ledger.find_by_email
    calls = {"n": 0}

    def stale_first_read(project_id, email):
        # The duplicate check runs before the concurrent insert is visible
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real_find(project_id, email)

    monkeypatch.setattr(controller.ledger, "find_by_email", stale_first_read)
    loser = controller.join(project.api_key, "a@x.com")

    assert loser.already_member is True
    assert loser.referral_token == winner.referral_token
    assert loser.position == 1
    assert len(_entries(db_session, project)) == 1


def test_lost_race_with_referral_moves_no_credit(controller, project, db_session, monkeypatch):
    a = controller.join(project.api_key, "a@x.com")
    controller.join(project.api_key, "b@x.com")

    real_find = controller.ledger.find_by_email
    calls = {"n": 0}

    def stale_first_read(project_id, email):
        calls["n"] += 1
        return None if calls["n"] == 1 else real_find(project_id, email)

    monkeypatch.setattr(controller.ledger, "find_by_email", stale_first_read)
    result = controller.join(project.api_key, "b@x.com", a.referral_token)

    assert result.already_member is True
    scores = {e.email: e.priority_score for e in _entries(db_session, project)}
    assert scores == {"a@x.com": 0, "b@x.com": 0}


def test_outage_after_insert_still_admits(controller, project, db_session, outage_after_insert):
    api_key = project.api_key

    result = controller.join(api_key, "a@x.com")

    assert outage_after_insert["on"] is True
    assert result.accepted and not result.already_member
    assert result.position is None and result.tier is None
    assert result.referral_token

    outage_after_insert["on"] = False
    db_session.rollback()
    [entry] = _entries(db_session, project)
    assert entry.email == "a@x.com"
    assert entry.referral_token == result.referral_token


def test_outage_after_referred_insert_still_admits(controller, project, db_session, outage_after_insert):
    api_key = project.api_key
    outage_after_insert["armed"] = False
    a = controller.join(api_key, "a@x.com")
    outage_after_insert["armed"] = True

    b = controller.join(api_key, "b@x.com", a.referral_token)

    assert outage_after_insert["on"] is True
    assert b.accepted and not b.already_member
    assert b.position is None and b.tier is None
    assert b.referral_token and b.referral_token != a.referral_token

    outage_after_insert["on"] = False
    db_session.rollback()
    entries = {e.email: e for e in _entries(db_session, project)}
    assert entries["b@x.com"].referred_by == a.referral_token
    assert entries["b@x.com"].referral_token == b.referral_token
    assert entries["a@x.com"].priority_score == 0
