from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from app.models.otp import OtpPurpose
from app.services.otp_store import OtpRecord, as_utc
from app.utils.errors import StoreUnavailable

from conftest import T0

EMAIL = "tenant@x.com"


def make_record(code="123456", issue_id="issue-1", sent_at=T0, lifetime=timedelta(minutes=5), **kwargs):
    return OtpRecord(
        identity=EMAIL,
        purpose=kwargs.pop("purpose", OtpPurpose.REGISTER),
        code=code,
        issue_id=issue_id,
        created_or_resent_at=sent_at,
        expires_at=sent_at + lifetime,
        **kwargs,
    )


class TestUpsert:
    def test_round_trips_all_fields(self, store):
        record = make_record(attempts=2)
        assert store.upsert(record) is True
        assert store.get(EMAIL, OtpPurpose.REGISTER) == record

    def test_unconditional_upsert_replaces(self, store):
        store.upsert(make_record())
        store.upsert(make_record(code="654321", issue_id="issue-2"))

        stored = store.get(EMAIL, OtpPurpose.REGISTER)
        assert stored.code == "654321"
        assert stored.issue_id == "issue-2"

    def test_conditional_upsert_refuses_row_inside_cooldown(self, store):
        store.upsert(make_record())
        newer = make_record(code="654321", issue_id="issue-2", sent_at=T0 + timedelta(seconds=30))

        written = store.upsert(newer, resend_after=newer.created_or_resent_at - timedelta(minutes=2))

        assert written is False
        assert store.get(EMAIL, OtpPurpose.REGISTER).issue_id == "issue-1"

    def test_conditional_upsert_replaces_after_cooldown(self, store):
        store.upsert(make_record())
        newer = make_record(code="654321", issue_id="issue-2", sent_at=T0 + timedelta(minutes=2))

        assert store.upsert(newer, resend_after=newer.created_or_resent_at - timedelta(minutes=2)) is True
        assert store.get(EMAIL, OtpPurpose.REGISTER).issue_id == "issue-2"

    def test_conditional_upsert_replaces_expired_row(self, store):
        store.upsert(make_record(lifetime=timedelta(seconds=10)))
        newer = make_record(issue_id="issue-2", sent_at=T0 + timedelta(seconds=20))

        assert store.upsert(newer, resend_after=newer.created_or_resent_at - timedelta(minutes=2)) is True

    def test_purposes_are_separate_rows(self, store):
        store.upsert(make_record())
        store.upsert(make_record(issue_id="issue-r", purpose=OtpPurpose.RESET_PASSWORD))

        assert store.get(EMAIL, OtpPurpose.REGISTER).issue_id == "issue-1"
        assert store.get(EMAIL, OtpPurpose.RESET_PASSWORD).issue_id == "issue-r"


class TestGuardedMutations:
    def test_increment_requires_matching_generation(self, store):
        store.upsert(make_record())
        store.upsert(make_record(issue_id="issue-2"))

        assert store.increment_attempts(EMAIL, OtpPurpose.REGISTER, "issue-1", 0) is False
        assert store.get(EMAIL, OtpPurpose.REGISTER).attempts == 0

    def test_increment_requires_expected_count(self, store):
        store.upsert(make_record())

        assert store.increment_attempts(EMAIL, OtpPurpose.REGISTER, "issue-1", 0) is True
        assert store.increment_attempts(EMAIL, OtpPurpose.REGISTER, "issue-1", 0) is False
        assert store.get(EMAIL, OtpPurpose.REGISTER).attempts == 1

    def test_increment_on_verified_record_is_explicit(self, store):
        store.upsert(make_record(verified=True))

        assert store.increment_attempts(EMAIL, OtpPurpose.REGISTER, "issue-1", 0) is False
        assert store.increment_attempts(EMAIL, OtpPurpose.REGISTER, "issue-1", 0, verified=True) is True
        assert store.get(EMAIL, OtpPurpose.REGISTER).attempts == 1

    def test_mark_verified_ignores_replaced_generation(self, store):
        store.upsert(make_record())
        store.upsert(make_record(issue_id="issue-2"))

        assert store.mark_verified(EMAIL, OtpPurpose.REGISTER, "issue-1", 5, T0) is False
        assert store.get(EMAIL, OtpPurpose.REGISTER).verified is False

    def test_mark_verified_refuses_expired_or_capped(self, store):
        store.upsert(make_record(attempts=5))
        assert store.mark_verified(EMAIL, OtpPurpose.REGISTER, "issue-1", 5, T0) is False

        store.upsert(make_record(issue_id="issue-2"))
        assert store.mark_verified(EMAIL, OtpPurpose.REGISTER, "issue-2", 5, T0 + timedelta(minutes=5)) is False
        assert store.mark_verified(EMAIL, OtpPurpose.REGISTER, "issue-2", 5, T0) is True

    def test_delete_by_generation(self, store):
        store.upsert(make_record())

        assert store.delete(EMAIL, OtpPurpose.REGISTER, issue_id="other") is False
        assert store.delete(EMAIL, OtpPurpose.REGISTER, issue_id="issue-1") is True
        assert store.get(EMAIL, OtpPurpose.REGISTER) is None


def test_purge_expired(store):
    store.upsert(make_record(lifetime=timedelta(minutes=1)))
    store.upsert(make_record(issue_id="issue-r", purpose=OtpPurpose.RESET_PASSWORD, lifetime=timedelta(minutes=10)))

    assert store.purge_expired(T0 + timedelta(minutes=2)) == 1
    assert store.get(EMAIL, OtpPurpose.REGISTER) is None
    assert store.get(EMAIL, OtpPurpose.RESET_PASSWORD) is not None


def test_database_errors_surface_as_store_unavailable(store, engine):
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE otp_codes"))

    with pytest.raises(StoreUnavailable) as exc:
        store.get(EMAIL, OtpPurpose.REGISTER)
    assert exc.value.status == 503
    assert exc.value.code == "store_unavailable"


@pytest.mark.parametrize(
    "value",
    [datetime(2026, 3, 1, 9, 0), datetime(2026, 3, 1, 14, 30, tzinfo=timezone(timedelta(hours=5, minutes=30)))],
    ids=["naive", "colombo"],
)
def test_as_utc(value):
    assert as_utc(value) == datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
