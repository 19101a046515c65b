from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import ADMIN_ID, USER_ID, add_profile, add_subscription, utcnow
from printgest.core.errors import (
    AuthorizationError, ConflictError, NotFoundError, UpstreamError, ValidationError,
)
from printgest.core.config import settings
from printgest.models import Invoice, Profile, RefundRequest, SubscriptionChange, UserSubscription
from printgest.services import subscription_service

TOLERANCE = timedelta(seconds=5)


def _sub(db, user_id=USER_ID) -> UserSubscription:
    db.expire_all()
    return db.query(UserSubscription).filter(UserSubscription.user_id == user_id).one()


def _changes(db, user_id=USER_ID) -> list[SubscriptionChange]:
    return db.query(SubscriptionChange).filter(SubscriptionChange.user_id == user_id).order_by(SubscriptionChange.id).all()


# ---------------------------------------------------------
# ChangeTier
# ---------------------------------------------------------

def test_downgrade_from_paid_to_free_starts_grace_period(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_1")

    result = subscription_service.change_tier(db_session, USER_ID, "free", admin)

    assert result.change_type == "downgrade"
    assert result.previous_tier == "tier_1"
    sub = _sub(db_session)
    assert sub.tier == "free"
    assert sub.status == "cancelled"
    assert sub.previous_tier == "tier_1"
    assert sub.is_read_only is True
    assert abs(sub.grace_period_end - (utcnow() + timedelta(days=30))) < TOLERANCE
    changes = _changes(db_session)
    assert len(changes) == 1
    assert changes[0].change_type == "downgrade"
    assert changes[0].admin_id == ADMIN_ID


def test_upgrade_clears_grace_period(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_1")
    subscription_service.change_tier(db_session, USER_ID, "free", admin)

    result = subscription_service.change_tier(db_session, USER_ID, "tier_2", admin)

    assert result.change_type == "upgrade"
    sub = _sub(db_session)
    assert sub.tier == "tier_2"
    assert sub.status == "active"
    assert sub.grace_period_end is None
    assert sub.previous_tier is None
    assert sub.downgrade_date is None
    assert sub.is_read_only is False


def test_free_to_free_leaves_grace_period_untouched(db_session, admin, user):
    grace_end = utcnow() + timedelta(days=12)
    add_subscription(
        db_session, USER_ID, tier="free", status="cancelled",
        previous_tier="tier_2", grace_period_end=grace_end, is_read_only=True,
    )

    result = subscription_service.change_tier(db_session, USER_ID, "free", admin)

    assert result.change_type == "same"
    sub = _sub(db_session)
    assert sub.grace_period_end == grace_end
    assert sub.previous_tier == "tier_2"
    assert sub.is_read_only is True


def test_change_tier_creates_missing_record(db_session, admin, user):
    result = subscription_service.change_tier(db_session, USER_ID, "tier_1", admin)

    assert result.previous_tier == "free"
    assert _sub(db_session).tier == "tier_1"


def test_change_tier_rejects_unknown_tier_without_writing(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_1")

    with pytest.raises(ValidationError):
        subscription_service.change_tier(db_session, USER_ID, "platinum", admin)

    assert _sub(db_session).tier == "tier_1"
    assert _changes(db_session) == []


def test_change_tier_requires_admin(db_session, user):
    with pytest.raises(AuthorizationError):
        subscription_service.change_tier(db_session, USER_ID, "tier_2", user)


# ---------------------------------------------------------
# AddTrial
# ---------------------------------------------------------

def test_trials_stack_on_remaining_time(db_session, admin, user):
    start = utcnow()
    subscription_service.add_trial(db_session, USER_ID, 7, admin)
    result = subscription_service.add_trial(db_session, USER_ID, 14, admin)

    assert result.trial_tier == "tier_1"
    assert abs(result.new_expires_at - (start + timedelta(days=21))) < TOLERANCE
    sub = _sub(db_session)
    assert sub.status == "trial"
    assert sub.tier == "tier_1"


def test_trial_on_paid_tier_keeps_tier_and_clears_grace(db_session, admin, user):
    add_subscription(
        db_session, USER_ID, tier="tier_2", status="cancelled",
        previous_tier="tier_2", grace_period_end=utcnow() + timedelta(days=3), is_read_only=True,
    )

    result = subscription_service.add_trial(db_session, USER_ID, 10, admin, notes="goodwill")

    assert result.trial_tier == "tier_2"
    sub = _sub(db_session)
    assert sub.grace_period_end is None
    assert sub.is_read_only is False
    assert _changes(db_session)[-1].reason == "Trial period added: 10 days"


def test_expired_trial_restarts_from_now(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_1", status="expired", expires_at=utcnow() - timedelta(days=40))

    result = subscription_service.add_trial(db_session, USER_ID, 5, admin)

    assert abs(result.new_expires_at - (utcnow() + timedelta(days=5))) < TOLERANCE


@pytest.mark.parametrize("days", [0, -3, None, True])
def test_trial_days_must_be_positive_integer(db_session, admin, user, days):
    with pytest.raises(ValidationError):
        subscription_service.add_trial(db_session, USER_ID, days, admin)


# ---------------------------------------------------------
# CancelSubscription
# ---------------------------------------------------------

def test_self_cancel_defers_to_gateway_period_end(db_session, user, fake_stripe):
    period_end = utcnow().replace(microsecond=0) + timedelta(days=12)
    fake_stripe.period_end = period_end
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_subscription_id="sub_123")

    result = subscription_service.cancel_own_subscription(db_session, user)

    assert result.stripe_cancelled is True
    assert result.immediate is False
    assert result.expiration_date == period_end
    assert result.grace_period_end == period_end + timedelta(days=30)
    assert fake_stripe.cancelled == [("sub_123", True)]
    sub = _sub(db_session)
    assert sub.status == "cancelled"
    assert sub.tier == "tier_1"
    assert sub.expires_at == period_end
    assert sub.is_read_only is True
    change = _changes(db_session)[-1]
    assert change.change_type == "cancel"
    assert change.admin_id is None
    assert change.new_tier == "tier_1"
    assert "period end" in change.notes


def test_cancel_falls_back_to_next_billing_date_when_gateway_fails(db_session, user, fake_stripe):
    fake_stripe.fail = True
    next_billing = utcnow().replace(microsecond=0) + timedelta(days=9)
    add_subscription(
        db_session, USER_ID, tier="tier_2", stripe_subscription_id="sub_9", next_billing_date=next_billing,
    )

    result = subscription_service.cancel_own_subscription(db_session, user)

    assert result.stripe_cancelled is False
    assert result.expiration_date == next_billing
    assert result.grace_period_end == next_billing + timedelta(days=30)
    assert _sub(db_session).status == "cancelled"


def test_cancel_falls_back_to_billing_period(db_session, user):
    add_subscription(db_session, USER_ID, tier="tier_1", billing_period="annual")

    result = subscription_service.cancel_own_subscription(db_session, user)

    assert abs(result.expiration_date - (utcnow() + timedelta(days=365))) < TOLERANCE


def test_admin_cancel_is_immediate_by_default(db_session, admin, user, fake_stripe):
    add_subscription(db_session, USER_ID, tier="tier_2", stripe_subscription_id="sub_1")

    result = subscription_service.admin_cancel_subscription(db_session, USER_ID, admin, notes="chargeback")

    assert result.immediate is True
    assert result.stripe_cancelled is False
    assert fake_stripe.cancelled == []
    sub = _sub(db_session)
    assert sub.tier == "free"
    assert sub.previous_tier == "tier_2"
    assert sub.grace_period_end is not None
    change = _changes(db_session)[-1]
    assert change.admin_id == ADMIN_ID
    assert "Immediate cancellation" in change.notes
    assert "chargeback" in change.notes


def test_cancel_free_subscription_has_no_grace_period(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="free")

    result = subscription_service.admin_cancel_subscription(db_session, USER_ID, admin)

    assert result.grace_period_end is None
    sub = _sub(db_session)
    assert sub.is_read_only is False
    assert sub.grace_period_end is None


def test_cancel_twice_is_conflict(db_session, user):
    add_subscription(db_session, USER_ID, tier="tier_1")
    subscription_service.cancel_own_subscription(db_session, user, immediate=True)

    with pytest.raises(ConflictError):
        subscription_service.cancel_own_subscription(db_session, user)

    assert len(_changes(db_session)) == 1


def test_cancel_without_record_is_not_found(db_session, user):
    with pytest.raises(NotFoundError):
        subscription_service.cancel_own_subscription(db_session, user)


def test_admin_cancel_requires_user_id(db_session, admin):
    with pytest.raises(ValidationError):
        subscription_service.admin_cancel_subscription(db_session, None, admin)


# ---------------------------------------------------------
# ProcessRefund
# ---------------------------------------------------------

def _paid_invoice(db, number="INV-001", amount="19.99", paid_days_ago=3):
    invoice = Invoice(
        user_id=USER_ID,
        invoice_number=number,
        amount=Decimal(amount),
        currency="EUR",
        status="paid",
        tier="tier_2",
        issued_date=utcnow() - timedelta(days=paid_days_ago),
        paid_date=utcnow() - timedelta(days=paid_days_ago),
    )
    db.add(invoice)
    db.commit()
    return invoice


def test_refund_writes_negative_ledger_entry_and_marks_original(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_2")
    _paid_invoice(db_session, "INV-OLD", paid_days_ago=40)
    latest = _paid_invoice(db_session, "INV-NEW", paid_days_ago=2)

    result = subscription_service.process_refund(db_session, USER_ID, 19.99, admin, currency="eur")

    assert result.stripe_refund_id is None
    assert result.refund_invoice.amount == -19.99
    assert result.refund_invoice.invoice_number.startswith("REF-")
    db_session.expire_all()
    assert db_session.get(Invoice, latest.id).status == "refunded"
    assert db_session.query(Invoice).filter(Invoice.invoice_number == "INV-OLD").one().status == "paid"
    refund = db_session.get(Invoice, result.refund_invoice.id)
    assert refund.currency == "EUR"
    assert refund.tier == "tier_2"
    assert "INV-NEW" in refund.notes
    assert _changes(db_session)[-1].change_type == "refund"


def test_refund_at_gateway_matches_charge(db_session, admin, user, fake_stripe):
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_customer_id="cus_1")
    fake_stripe.charges = [
        {"id": "ch_other", "amount": 500, "currency": "eur", "paid": True},
        {"id": "ch_match", "amount": 999, "currency": "eur", "paid": True},
    ]
    # list_recent_charges は差し替え、照合は実装のまま
    result = subscription_service.process_refund(
        db_session, USER_ID, 9.99, admin, process_at_gateway=True,
    )

    assert fake_stripe.refunds == [("ch_match", 9.99)]
    assert result.stripe_refund_id == "re_1"
    db_session.expire_all()
    assert "re_1" in db_session.get(Invoice, result.refund_invoice.id).notes


def test_refund_survives_gateway_failure(db_session, admin, user, fake_stripe):
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_customer_id="cus_1")
    fake_stripe.fail = True

    result = subscription_service.process_refund(
        db_session, USER_ID, 9.99, admin, process_at_gateway=True,
    )

    assert result.stripe_refund_id is None
    assert db_session.get(Invoice, result.refund_invoice.id) is not None


@pytest.mark.parametrize("amount", [0, -5, None])
def test_refund_amount_must_be_positive(db_session, admin, user, amount):
    with pytest.raises(ValidationError):
        subscription_service.process_refund(db_session, USER_ID, amount, admin)
    assert db_session.query(Invoice).count() == 0


def test_refund_requires_admin(db_session, user):
    with pytest.raises(AuthorizationError):
        subscription_service.process_refund(db_session, USER_ID, 5, user)


# ---------------------------------------------------------
# RefundRequests
# ---------------------------------------------------------

def _pending_request(db, amount="19.99", invoice_id=None, reason="Charged twice") -> RefundRequest:
    request = RefundRequest(
        user_id=USER_ID, invoice_id=invoice_id, amount=Decimal(amount), currency="EUR",
        reason=reason, status="pending",
    )
    db.add(request)
    db.commit()
    return request


def test_user_submits_pending_refund_request(db_session, user):
    invoice = _paid_invoice(db_session)

    info = subscription_service.submit_refund_request(
        db_session, user, 19.99, " Charged twice ", currency="eur", invoice_id=invoice.id,
    )

    assert info.status == "pending"
    assert info.amount == 19.99
    assert info.currency == "EUR"
    stored = db_session.get(RefundRequest, info.id)
    assert stored.user_id == USER_ID
    assert stored.reason == "Charged twice"
    assert stored.invoice_id == invoice.id
    assert db_session.query(Invoice).filter(Invoice.amount < 0).count() == 0


def test_refund_request_for_foreign_invoice_is_not_found(db_session, user):
    other = Invoice(
        user_id="someone-else", invoice_number="INV-X", amount=Decimal("5.00"), currency="EUR",
        status="paid", tier="tier_1", issued_date=utcnow(), paid_date=utcnow(),
    )
    db_session.add(other)
    db_session.commit()

    with pytest.raises(NotFoundError):
        subscription_service.submit_refund_request(db_session, user, 5, "wrong", invoice_id=other.id)
    assert db_session.query(RefundRequest).count() == 0


@pytest.mark.parametrize("amount, reason", [(0, "x"), (-1, "x"), (None, "x"), (5, ""), (5, "   "), (5, None)])
def test_refund_request_validation(db_session, user, amount, reason):
    with pytest.raises(ValidationError):
        subscription_service.submit_refund_request(db_session, user, amount, reason)


def test_approving_request_writes_ledger_and_audit_together(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_2")
    invoice = _paid_invoice(db_session, "INV-REQ")
    request = _pending_request(db_session, invoice_id=invoice.id)

    result = subscription_service.process_refund_request(
        db_session, request.id, "approve", admin, admin_notes="ok",
    )

    assert result.refund_request.status == "processed"
    assert result.refund_invoice.amount == -19.99
    assert result.stripe_refund_id is None
    db_session.expire_all()
    stored = db_session.get(RefundRequest, request.id)
    assert stored.admin_id == ADMIN_ID
    assert stored.admin_notes == "ok"
    assert stored.processed_at is not None
    assert db_session.get(Invoice, invoice.id).status == "refunded"
    refund = db_session.get(Invoice, result.refund_invoice.id)
    assert refund.notes.startswith("Refund approved for request: Charged twice.")
    assert "INV-REQ" in refund.notes
    change = _changes(db_session)[-1]
    assert change.change_type == "refund"
    assert change.admin_id == ADMIN_ID
    assert f"#{request.id}" in change.reason


def test_approving_request_without_invoice_leaves_paid_invoices_alone(db_session, admin, user):
    add_subscription(db_session, USER_ID, tier="tier_1")
    invoice = _paid_invoice(db_session)
    request = _pending_request(db_session, amount="4.50")

    result = subscription_service.process_refund_request(db_session, request.id, "approve", admin)

    assert result.refund_invoice.amount == -4.5
    db_session.expire_all()
    assert db_session.get(Invoice, invoice.id).status == "paid"


def test_approved_request_is_refunded_at_gateway(db_session, admin, user, fake_stripe):
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_customer_id="cus_1")
    fake_stripe.charges = [{"id": "ch_match", "amount": 1999, "currency": "eur", "paid": True}]
    request = _pending_request(db_session)

    result = subscription_service.process_refund_request(
        db_session, request.id, "approve", admin, process_in_stripe=True,
    )

    assert fake_stripe.refunds == [("ch_match", 19.99)]
    assert result.stripe_refund_id == "re_1"
    db_session.expire_all()
    assert "re_1" in db_session.get(Invoice, result.refund_invoice.id).notes


def test_rejecting_request_writes_no_ledger_entry(db_session, admin, user):
    request = _pending_request(db_session)

    result = subscription_service.process_refund_request(
        db_session, request.id, "reject", admin, admin_notes="outside refund window",
    )

    assert result.refund_request.status == "rejected"
    assert result.refund_invoice is None
    assert db_session.query(Invoice).count() == 0
    assert _changes(db_session) == []
    assert db_session.get(RefundRequest, request.id).admin_notes == "outside refund window"


def test_request_cannot_be_processed_twice(db_session, admin, user):
    request = _pending_request(db_session)
    subscription_service.process_refund_request(db_session, request.id, "approve", admin)

    with pytest.raises(ConflictError):
        subscription_service.process_refund_request(db_session, request.id, "reject", admin)
    assert db_session.query(Invoice).count() == 1


def test_process_request_rejects_unknown_action(db_session, admin, user):
    request = _pending_request(db_session)
    with pytest.raises(ValidationError):
        subscription_service.process_refund_request(db_session, request.id, "refund", admin)
    assert db_session.get(RefundRequest, request.id).status == "pending"


def test_process_unknown_request_is_not_found(db_session, admin):
    with pytest.raises(NotFoundError):
        subscription_service.process_refund_request(db_session, 999, "approve", admin)


def test_process_request_requires_admin(db_session, user):
    request = _pending_request(db_session)
    with pytest.raises(AuthorizationError):
        subscription_service.process_refund_request(db_session, request.id, "approve", user)


def test_list_refund_requests_filters_by_status(db_session, admin, user):
    first = _pending_request(db_session, reason="first")
    _pending_request(db_session, reason="second")
    subscription_service.process_refund_request(db_session, first.id, "reject", admin)

    pending = subscription_service.list_refund_requests(db_session, admin, status="pending")

    assert [r.reason for r in pending] == ["second"]
    with pytest.raises(ValidationError):
        subscription_service.list_refund_requests(db_session, admin, status="lost")


# ---------------------------------------------------------
# DeleteUser
# ---------------------------------------------------------

def test_delete_user_soft_deletes_and_cancels(db_session, admin, user, fake_stripe):
    add_subscription(db_session, USER_ID, tier="tier_2", stripe_subscription_id="sub_del")

    result = subscription_service.delete_user(db_session, USER_ID, "abuse", admin)

    assert result.stripe_cancelled is True
    assert fake_stripe.cancelled == [("sub_del", False)]
    db_session.expire_all()
    profile = db_session.get(Profile, USER_ID)
    assert profile.deleted_at is not None
    assert profile.deleted_by == ADMIN_ID
    assert profile.deletion_reason == "abuse"
    assert profile.scheduled_deletion_at is None
    sub = _sub(db_session)
    assert sub.tier == "free"
    assert sub.status == "cancelled"
    change = _changes(db_session)[-1]
    assert change.change_type == "cancel"
    assert change.previous_tier == "tier_2"
    assert "abuse" in change.reason


def test_delete_user_continues_when_gateway_fails(db_session, admin, user, fake_stripe):
    fake_stripe.fail = True
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_subscription_id="sub_x")

    result = subscription_service.delete_user(db_session, USER_ID, "request", admin)

    assert result.stripe_cancelled is False
    assert "Stripe cancelled: False" in _changes(db_session)[-1].notes


def test_admin_cannot_delete_self(db_session, admin):
    with pytest.raises(ValidationError):
        subscription_service.delete_user(db_session, ADMIN_ID, "oops", admin)
    assert db_session.get(Profile, ADMIN_ID).deleted_at is None


def test_delete_user_requires_reason(db_session, admin, user):
    with pytest.raises(ValidationError):
        subscription_service.delete_user(db_session, USER_ID, "", admin)


def test_delete_unknown_user_is_not_found(db_session, admin):
    with pytest.raises(NotFoundError):
        subscription_service.delete_user(db_session, "missing-user", "cleanup", admin)


# ---------------------------------------------------------
# ScheduleAccountDeletion
# ---------------------------------------------------------

def test_self_deletion_schedules_purge_and_cancels(db_session, user, fake_stripe):
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_subscription_id="sub_self")

    result = subscription_service.schedule_account_deletion(db_session, user, reason="moving on")

    assert result.stripe_cancelled is True
    assert result.already_scheduled is False
    assert fake_stripe.cancelled == [("sub_self", False)]
    expected = utcnow() + timedelta(days=settings.ACCOUNT_DELETION_GRACE_DAYS)
    assert abs(result.scheduled_deletion_at - expected) < TOLERANCE
    db_session.expire_all()
    profile = db_session.get(Profile, USER_ID)
    assert profile.deleted_at is not None
    assert profile.deleted_by == USER_ID
    assert profile.deletion_reason == "moving on"
    assert profile.scheduled_deletion_at == result.scheduled_deletion_at
    sub = _sub(db_session)
    assert sub.tier == "free"
    assert sub.status == "cancelled"
    change = _changes(db_session)[-1]
    assert change.change_type == "cancel"
    assert change.previous_tier == "tier_1"


def test_self_deletion_continues_when_gateway_fails(db_session, user, fake_stripe):
    fake_stripe.fail = True
    add_subscription(db_session, USER_ID, tier="tier_2", stripe_subscription_id="sub_self")

    result = subscription_service.schedule_account_deletion(db_session, user)

    assert result.stripe_cancelled is False
    db_session.expire_all()
    assert db_session.get(Profile, USER_ID).deletion_reason == "User requested account deletion"


def test_repeated_self_deletion_keeps_original_schedule(db_session, user):
    first = subscription_service.schedule_account_deletion(db_session, user)
    second = subscription_service.schedule_account_deletion(db_session, user)

    assert second.already_scheduled is True
    assert second.scheduled_deletion_at == first.scheduled_deletion_at
    assert len(_changes(db_session)) == 1


# ---------------------------------------------------------
# 参照
# ---------------------------------------------------------

def test_subscription_state_reports_days_remaining(db_session, user):
    add_subscription(
        db_session, USER_ID, tier="free", status="cancelled", previous_tier="tier_1",
        grace_period_end=utcnow() + timedelta(days=6, hours=2), is_read_only=True,
    )

    state = subscription_service.get_subscription_state(db_session, user)

    assert state.grace_days_remaining == 7
    assert state.is_read_only is True


def test_subscription_state_defaults_to_free(db_session, user):
    state = subscription_service.get_subscription_state(db_session, user)
    assert state.tier == "free"
    assert state.grace_days_remaining is None


def test_create_default_subscription_is_idempotent(db_session):
    add_profile(db_session, "new-user")
    first = subscription_service.create_default_subscription(db_session, "new-user")
    second = subscription_service.create_default_subscription(db_session, "new-user")
    assert first.id == second.id
    assert first.tier == "free"
    assert first.grace_period_end is None


def test_gateway_error_never_escapes_cancel(db_session, user, monkeypatch, fake_stripe):
    def boom(subscription_id, at_period_end=True):
        raise UpstreamError("down")

    monkeypatch.setattr(subscription_service.stripe_service, "cancel_subscription", boom)
    fake_stripe.period_end = utcnow() + timedelta(days=3)
    add_subscription(db_session, USER_ID, tier="tier_1", stripe_subscription_id="sub_z")

    result = subscription_service.cancel_own_subscription(db_session, user)

    assert result.stripe_cancelled is False
    assert result.expiration_date == fake_stripe.period_end
