"""購読ライフサイクル: Tier変更・トライアル付与・解約・返金・返金申請・ユーザー削除

各操作は現在の永続状態を読み直してから書き込む。レコード更新と監査ログ追記は
同一トランザクションでコミットする。
"""
import math
import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from printgest.core.config import settings
from printgest.core.database import commit_or_raise
from printgest.core.errors import ConflictError, NotFoundError, UpstreamError, ValidationError
from printgest.core.logging import get_logger
from printgest.core.tiers import BILLING_PERIOD_DAYS, FREE, TIER_1, classify_change, is_paid, validate_tier
from printgest.models.invoice import Invoice
from printgest.models.profile import Profile
from printgest.models.refund_request import REFUND_REQUEST_STATUSES, RefundRequest
from printgest.models.subscription_change import SubscriptionChange
from printgest.models.user_subscription import UserSubscription
from printgest.schemas.auth import CallerIdentity
from printgest.schemas.subscription import (
    AccountDeletionResult, CancelResult, DeleteUserResult, RefundInvoice, RefundRequestInfo,
    RefundRequestResult, RefundResult, SubscriptionState, TierChangeResult, TrialResult,
)
from printgest.services import stripe_service
from printgest.services.auth_service import ensure_admin, ensure_self

logger = get_logger(__name__)


def utcnow() -> datetime:
    """DB保存用のUTC naive現在時刻"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def grace_period_delta() -> timedelta:
    return timedelta(days=settings.GRACE_PERIOD_DAYS)


# =========================================================
# レコード取得・共通操作
# =========================================================

def get_subscription(db: Session, user_id: str) -> Optional[UserSubscription]:
    return db.query(UserSubscription).filter(UserSubscription.user_id == user_id).first()


def _new_subscription(user_id: str) -> UserSubscription:
    return UserSubscription(user_id=user_id, tier=FREE, status="active", is_read_only=False)


def create_default_subscription(db: Session, user_id: str) -> UserSubscription:
    """サインアップ時の購読レコード作成 (free / active)"""
    existing = get_subscription(db, user_id)
    if existing:
        return existing
    sub = _new_subscription(user_id)
    db.add(sub)
    commit_or_raise(db, "create_default_subscription")
    db.refresh(sub)
    return sub


def _get_or_create(db: Session, user_id: str) -> UserSubscription:
    sub = get_subscription(db, user_id)
    if sub is None:
        sub = _new_subscription(user_id)
        db.add(sub)
    return sub


def _start_grace_period(sub: UserSubscription, previous_tier: str, now: datetime, grace_end: datetime):
    sub.previous_tier = previous_tier
    sub.downgrade_date = now
    sub.grace_period_end = grace_end
    sub.is_read_only = True


def _clear_grace_period(sub: UserSubscription):
    sub.previous_tier = None
    sub.downgrade_date = None
    sub.grace_period_end = None
    sub.is_read_only = False


def _append_change(
    db: Session,
    user_id: str,
    actor_id: Optional[str],
    previous_tier: Optional[str],
    new_tier: str,
    change_type: str,
    reason: str,
    notes: Optional[str] = None,
):
    """監査ログ追記 (コミットは呼び出し側)"""
    db.add(SubscriptionChange(
        user_id=user_id,
        admin_id=actor_id,
        previous_tier=previous_tier,
        new_tier=new_tier,
        change_type=change_type,
        reason=reason,
        notes=notes,
    ))


# =========================================================
# Tier変更
# =========================================================

def change_tier(
    db: Session,
    user_id: str,
    new_tier: str,
    actor: CallerIdentity,
    notes: Optional[str] = None,
) -> TierChangeResult:
    """管理者によるTier変更 (有料→freeで猶予期間開始、アップグレードで解除)"""
    ensure_admin(actor)
    if not user_id:
        raise ValidationError("必須項目が不足しています: userId")
    new_tier = validate_tier(new_tier)

    sub = _get_or_create(db, user_id)
    previous_tier = sub.tier or FREE
    change_type = classify_change(previous_tier, new_tier)
    now = utcnow()

    if change_type == "downgrade" and is_paid(previous_tier) and new_tier == FREE:
        _start_grace_period(sub, previous_tier, now, now + grace_period_delta())
    elif change_type == "upgrade" or new_tier != FREE:
        _clear_grace_period(sub)

    sub.tier = new_tier
    sub.status = "cancelled" if new_tier == FREE else "active"

    _append_change(
        db, user_id, actor.user_id, previous_tier, new_tier, change_type,
        reason="Admin changed subscription tier", notes=notes,
    )
    commit_or_raise(db, "change_tier")

    logger.info(f"Tier変更: user_id={user_id}, {previous_tier} → {new_tier} [{change_type}]")
    return TierChangeResult(previous_tier=previous_tier, new_tier=new_tier, change_type=change_type)


# =========================================================
# トライアル付与
# =========================================================

def add_trial(
    db: Session,
    user_id: str,
    trial_days,
    actor: CallerIdentity,
    notes: Optional[str] = None,
) -> TrialResult:
    """トライアル日数を残り期間に積み増し (freeならtier_1へ、それ以外はTier維持)"""
    ensure_admin(actor)
    if not user_id:
        raise ValidationError("必須項目が不足しています: userId")
    if isinstance(trial_days, bool) or not isinstance(trial_days, int) or trial_days < 1:
        raise ValidationError("trialDaysは1以上の整数で指定してください")

    sub = _get_or_create(db, user_id)
    current_tier = sub.tier or FREE
    now = utcnow()

    base = sub.expires_at if sub.expires_at and sub.expires_at > now else now
    new_expires_at = base + timedelta(days=trial_days)
    trial_tier = TIER_1 if current_tier == FREE else current_tier

    sub.tier = trial_tier
    sub.status = "trial"
    sub.expires_at = new_expires_at
    _clear_grace_period(sub)

    _append_change(
        db, user_id, actor.user_id, current_tier, trial_tier, "upgrade",
        reason=f"Trial period added: {trial_days} days", notes=notes,
    )
    commit_or_raise(db, "add_trial")

    logger.info(f"トライアル付与: user_id={user_id}, {trial_days}日, tier={trial_tier}, expires_at={new_expires_at}")
    return TrialResult(trial_days=trial_days, new_expires_at=new_expires_at, trial_tier=trial_tier)


# =========================================================
# 解約
# =========================================================

def _fallback_expiration(sub: UserSubscription, now: datetime) -> Optional[datetime]:
    """ゲートウェイから期間終了が取れない場合: 次回請求日 → 請求期間 → 既存expires_at"""
    if sub.next_billing_date:
        return sub.next_billing_date
    if sub.billing_period in BILLING_PERIOD_DAYS:
        return now + timedelta(days=BILLING_PERIOD_DAYS[sub.billing_period])
    return sub.expires_at


def _cancel_at_gateway(sub: UserSubscription, immediate: bool) -> tuple[Optional[datetime], bool]:
    """Stripe側の解約。失敗しても例外にせず (期間終了日時, 成功フラグ) を返す"""
    period_end = None
    try:
        period_end = stripe_service.get_current_period_end(sub.stripe_subscription_id)
        stripe_service.cancel_subscription(sub.stripe_subscription_id, at_period_end=not immediate)
        return period_end, True
    except UpstreamError as e:
        logger.warning(f"Stripe解約失敗 (DB側の解約は継続): user_id={sub.user_id} - {e.message}")
        return period_end, False


def _cancel(
    db: Session,
    user_id: str,
    actor: CallerIdentity,
    immediate: bool,
    cancel_at_gateway: bool,
    reason: str,
    notes: Optional[str],
    audit_actor_id: Optional[str],
) -> CancelResult:
    sub = get_subscription(db, user_id)
    if sub is None:
        raise NotFoundError("購読が見つかりません")
    if sub.status == "cancelled":
        raise ConflictError("購読は既に解約されています")

    previous_tier = sub.tier or FREE
    now = utcnow()

    expiration = None
    stripe_cancelled = False
    if cancel_at_gateway and sub.stripe_subscription_id and stripe_service.is_configured():
        expiration, stripe_cancelled = _cancel_at_gateway(sub, immediate)
    if expiration is None:
        expiration = _fallback_expiration(sub, now)
    if expiration is None and not immediate:
        # 有料期間の終了が不明: 即時終了扱い (次回の確定処理でfreeへ)
        expiration = now

    grace_period_end = None
    if is_paid(previous_tier):
        grace_period_end = (expiration or now) + grace_period_delta()
        _start_grace_period(sub, previous_tier, now, grace_period_end)

    new_tier = FREE if immediate else previous_tier
    sub.status = "cancelled"
    sub.tier = new_tier
    if expiration:
        sub.expires_at = expiration

    if immediate:
        mode_note = "Immediate cancellation"
    else:
        mode_note = f"Cancellation at period end ({expiration.strftime('%Y-%m-%d')})"
    _append_change(
        db, user_id, audit_actor_id, previous_tier, new_tier, "cancel",
        reason=reason, notes=f"{mode_note}. {notes}" if notes else mode_note,
    )
    commit_or_raise(db, "cancel_subscription")

    logger.info(
        f"購読解約: user_id={user_id}, actor={actor.user_id}, immediate={immediate}, "
        f"stripe_cancelled={stripe_cancelled}, grace_period_end={grace_period_end}"
    )
    return CancelResult(
        previous_tier=previous_tier,
        grace_period_end=grace_period_end,
        stripe_cancelled=stripe_cancelled,
        expiration_date=expiration,
        immediate=immediate,
    )


def cancel_own_subscription(
    db: Session,
    actor: CallerIdentity,
    cancel_in_stripe: bool = True,
    immediate: bool = False,
) -> CancelResult:
    """本人による解約 (既定: 期間終了時)"""
    ensure_self(actor, actor.user_id if actor else None)
    return _cancel(
        db, actor.user_id, actor, immediate, cancel_in_stripe,
        reason="User cancelled subscription", notes=None, audit_actor_id=None,
    )


def admin_cancel_subscription(
    db: Session,
    user_id: Optional[str],
    actor: CallerIdentity,
    notes: Optional[str] = None,
    cancel_in_stripe: bool = False,
    immediate: bool = True,
) -> CancelResult:
    """管理者による解約 (既定: 即時)"""
    ensure_admin(actor)
    if not user_id:
        raise ValidationError("必須項目が不足しています: userId")
    return _cancel(
        db, user_id, actor, immediate, cancel_in_stripe,
        reason="Admin cancelled subscription", notes=notes, audit_actor_id=actor.user_id,
    )


# =========================================================
# 返金
# =========================================================

def _find_invoice_to_refund(db: Session, user_id: str, invoice_id: Optional[int]) -> Optional[Invoice]:
    q = db.query(Invoice).filter(Invoice.user_id == user_id, Invoice.status == "paid")
    if invoice_id:
        return q.filter(Invoice.id == invoice_id).first()
    return q.order_by(Invoice.paid_date.desc()).first()


def _validate_amount(amount):
    if amount is None or isinstance(amount, bool) or amount <= 0:
        raise ValidationError("amountは0より大きい値を指定してください")


def _add_refund_invoice(
    db: Session,
    user_id: str,
    tier: str,
    amount,
    currency: str,
    notes: str,
    now: datetime,
) -> Invoice:
    """台帳に負額の返金請求書を追加 (コミットは呼び出し側)"""
    refund_invoice = Invoice(
        user_id=user_id,
        invoice_number=f"REF-{math.floor(now.timestamp() * 1000)}-{secrets.token_hex(2)}",
        amount=-abs(Decimal(str(amount))).quantize(Decimal("0.01")),
        currency=currency,
        status="refunded",
        tier=tier,
        issued_date=now,
        paid_date=now,
        notes=notes,
    )
    db.add(refund_invoice)
    return refund_invoice


def _refund_at_gateway(customer_id: str, amount: float, currency: str, metadata: dict) -> Optional[str]:
    """金額・通貨が一致する直近チャージを返金。見つからない・失敗はNone"""
    try:
        charges = stripe_service.list_recent_charges(customer_id)
        charge = stripe_service.find_matching_charge(charges, amount, currency)
        if charge is None:
            logger.warning(f"返金対象のStripeチャージが見つかりません: customer={customer_id}, amount={amount} {currency}")
            return None
        return stripe_service.create_refund(charge["id"], amount, metadata)
    except UpstreamError as e:
        logger.warning(f"Stripe返金失敗 (台帳の返金は有効): customer={customer_id} - {e.message}")
        return None


def _settle_at_gateway(
    db: Session,
    sub: Optional[UserSubscription],
    refund_invoice: Invoice,
    amount,
    currency: str,
    metadata: dict,
) -> Optional[str]:
    """台帳コミット後のStripe返金。成功時は返金IDを請求書のメモに追記"""
    customer_id = sub.stripe_customer_id if sub else None
    if not customer_id or not stripe_service.is_configured():
        return None
    stripe_refund_id = _refund_at_gateway(customer_id, float(amount), currency, metadata)
    if stripe_refund_id:
        refund_invoice.notes = f"{refund_invoice.notes} Stripe Refund ID: {stripe_refund_id}"
        commit_or_raise(db, "refund_invoice_notes")
    return stripe_refund_id


def _refund_invoice_info(refund_invoice: Invoice) -> RefundInvoice:
    return RefundInvoice(
        id=refund_invoice.id,
        invoice_number=refund_invoice.invoice_number,
        amount=float(refund_invoice.amount),
    )


def process_refund(
    db: Session,
    user_id: str,
    amount,
    actor: CallerIdentity,
    currency: str = "EUR",
    notes: Optional[str] = None,
    process_at_gateway: bool = False,
    invoice_id: Optional[int] = None,
) -> RefundResult:
    """手動返金: 台帳に負額の請求書を作成し、任意でStripe返金"""
    ensure_admin(actor)
    if not user_id:
        raise ValidationError("必須項目が不足しています: userId")
    _validate_amount(amount)
    currency = (currency or "EUR").upper()

    sub = get_subscription(db, user_id)
    tier = sub.tier if sub else FREE
    now = utcnow()

    original = _find_invoice_to_refund(db, user_id, invoice_id)
    if original:
        original.status = "refunded"

    refund_invoice = _add_refund_invoice(
        db, user_id, tier, amount, currency,
        notes=notes or (
            "Manual refund processed by admin."
            + (f" Original invoice: {original.invoice_number}" if original else "")
        ),
        now=now,
    )
    _append_change(
        db, user_id, actor.user_id, tier, tier, "refund",
        reason=f"Manual refund of {amount} {currency}", notes=notes,
    )
    commit_or_raise(db, "process_refund")
    db.refresh(refund_invoice)

    stripe_refund_id = None
    if process_at_gateway:
        stripe_refund_id = _settle_at_gateway(
            db, sub, refund_invoice, amount, currency,
            {"userId": user_id, "adminId": actor.user_id, "reason": "admin_manual_refund"},
        )

    logger.info(f"返金処理: user_id={user_id}, amount={refund_invoice.amount} {currency}, stripe_refund_id={stripe_refund_id}")
    return RefundResult(refund_invoice=_refund_invoice_info(refund_invoice), stripe_refund_id=stripe_refund_id)


# =========================================================
# 返金申請
# =========================================================

def _refund_request_info(request: RefundRequest) -> RefundRequestInfo:
    return RefundRequestInfo(
        id=request.id,
        status=request.status,
        amount=float(request.amount),
        currency=request.currency,
        reason=request.reason,
        created_at=request.created_at,
    )


def submit_refund_request(
    db: Session,
    actor: CallerIdentity,
    amount,
    reason: Optional[str],
    currency: str = "EUR",
    invoice_id: Optional[int] = None,
    description: Optional[str] = None,
) -> RefundRequestInfo:
    """本人による返金申請 (pendingで登録し、管理者の判断を待つ)"""
    ensure_self(actor, actor.user_id if actor else None)
    _validate_amount(amount)
    if not reason or not reason.strip():
        raise ValidationError("必須項目が不足しています: reason")

    if invoice_id is not None:
        invoice = db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.user_id == actor.user_id).first()
        if invoice is None:
            raise NotFoundError("請求書が見つかりません")

    request = RefundRequest(
        user_id=actor.user_id,
        invoice_id=invoice_id,
        amount=Decimal(str(amount)).quantize(Decimal("0.01")),
        currency=(currency or "EUR").upper(),
        reason=reason.strip(),
        description=description,
        status="pending",
    )
    db.add(request)
    commit_or_raise(db, "submit_refund_request")
    db.refresh(request)

    logger.info(f"返金申請: id={request.id}, user_id={actor.user_id}, amount={request.amount} {request.currency}")
    return _refund_request_info(request)


def list_refund_requests(
    db: Session,
    actor: CallerIdentity,
    status: Optional[str] = None,
    limit: int = 100,
) -> list[RefundRequestInfo]:
    """返金申請一覧 (管理者のみ、新しい順)"""
    ensure_admin(actor)
    q = db.query(RefundRequest)
    if status:
        if status not in REFUND_REQUEST_STATUSES:
            raise ValidationError(f"不正なステータスです: {status}")
        q = q.filter(RefundRequest.status == status)
    rows = q.order_by(RefundRequest.created_at.desc(), RefundRequest.id.desc()).limit(limit).all()
    return [_refund_request_info(r) for r in rows]


def process_refund_request(
    db: Session,
    request_id: int,
    action: str,
    actor: CallerIdentity,
    admin_notes: Optional[str] = None,
    process_in_stripe: bool = False,
) -> RefundRequestResult:
    """返金申請の承認・却下

    承認時は手動返金と同じ台帳処理 (負額の請求書・監査ログ) を行い、
    申請を processed にして同一トランザクションでコミットする。
    Stripe返金はコミット後に任意で実行する。
    """
    ensure_admin(actor)
    if action not in ("approve", "reject"):
        raise ValidationError("actionは approve または reject を指定してください")

    request = db.query(RefundRequest).filter(RefundRequest.id == request_id).first()
    if request is None:
        raise NotFoundError("返金申請が見つかりません")
    if request.status != "pending":
        raise ConflictError(f"返金申請は処理済みです (status={request.status})")

    now = utcnow()
    request.admin_id = actor.user_id
    request.admin_notes = admin_notes
    request.processed_at = now

    if action == "reject":
        request.status = "rejected"
        commit_or_raise(db, "reject_refund_request")
        logger.info(f"返金申請却下: id={request_id}, admin={actor.user_id}")
        return RefundRequestResult(refund_request=_refund_request_info(request))

    user_id = request.user_id
    sub = get_subscription(db, user_id)
    tier = sub.tier if sub else FREE

    original = None
    if request.invoice_id is not None:
        original = db.query(Invoice).filter(Invoice.id == request.invoice_id, Invoice.user_id == user_id).first()
        if original:
            original.status = "refunded"

    refund_invoice = _add_refund_invoice(
        db, user_id, tier, request.amount, request.currency,
        notes=f"Refund approved for request: {request.reason}."
        + (f" Original invoice: {original.invoice_number}" if original else ""),
        now=now,
    )
    _append_change(
        db, user_id, actor.user_id, tier, tier, "refund",
        reason=f"Refund request #{request_id} approved: {request.amount} {request.currency}",
        notes=admin_notes,
    )
    request.status = "processed"
    commit_or_raise(db, "approve_refund_request")
    db.refresh(refund_invoice)

    stripe_refund_id = None
    if process_in_stripe:
        stripe_refund_id = _settle_at_gateway(
            db, sub, refund_invoice, request.amount, request.currency,
            {
                "userId": user_id,
                "adminId": actor.user_id,
                "refundRequestId": str(request_id),
                "reason": "refund_request_approved",
            },
        )

    logger.info(f"返金申請承認: id={request_id}, user_id={user_id}, amount={refund_invoice.amount}, stripe_refund_id={stripe_refund_id}")
    return RefundRequestResult(
        refund_request=_refund_request_info(request),
        refund_invoice=_refund_invoice_info(refund_invoice),
        stripe_refund_id=stripe_refund_id,
    )


# =========================================================
# ユーザー削除 (論理削除)
# =========================================================

def delete_user(
    db: Session,
    user_id: Optional[str],
    reason: Optional[str],
    actor: CallerIdentity,
    cancel_stripe_subscription: bool = True,
) -> DeleteUserResult:
    """管理者によるユーザー削除 (Stripe解約 → プロフィール論理削除 → 購読をfreeで解約)"""
    ensure_admin(actor)
    if not user_id or not reason:
        raise ValidationError("必須項目が不足しています: userId, reason")
    if user_id == actor.user_id:
        raise ValidationError("自分自身は削除できません")

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise NotFoundError("ユーザーが見つかりません")

    sub = _get_or_create(db, user_id)
    previous_tier = sub.tier or FREE

    stripe_cancelled = False
    if cancel_stripe_subscription and sub.stripe_subscription_id and stripe_service.is_configured():
        try:
            stripe_service.cancel_subscription_immediately(sub.stripe_subscription_id)
            stripe_cancelled = True
        except UpstreamError as e:
            logger.warning(f"Stripe購読解約失敗 (削除は継続): user_id={user_id} - {e.message}")

    profile.deleted_at = utcnow()
    profile.deleted_by = actor.user_id
    profile.deletion_reason = reason
    sub.status = "cancelled"
    sub.tier = FREE

    _append_change(
        db, user_id, actor.user_id, previous_tier, FREE, "cancel",
        reason=f"User deleted by admin: {reason}",
        notes=f"Admin: {actor.user_id}. Stripe cancelled: {stripe_cancelled}",
    )
    commit_or_raise(db, "delete_user")

    logger.info(f"ユーザー削除: user_id={user_id}, admin={actor.user_id}, stripe_cancelled={stripe_cancelled}")
    return DeleteUserResult(user_id=user_id, stripe_cancelled=stripe_cancelled)


def schedule_account_deletion(
    db: Session,
    actor: CallerIdentity,
    reason: Optional[str] = None,
) -> AccountDeletionResult:
    """本人によるアカウント削除申請

    プロフィールを論理削除し、完全削除予定日時を設定する。購読はStripe側も含めて
    即時解約する。既に削除済みなら既存の予定日時を返す。
    """
    ensure_self(actor, actor.user_id if actor else None)
    user_id = actor.user_id

    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise NotFoundError("ユーザーが見つかりません")
    if profile.deleted_at:
        return AccountDeletionResult(scheduled_deletion_at=profile.scheduled_deletion_at, already_scheduled=True)

    sub = _get_or_create(db, user_id)
    previous_tier = sub.tier or FREE

    stripe_cancelled = False
    if sub.stripe_subscription_id and stripe_service.is_configured():
        try:
            stripe_service.cancel_subscription_immediately(sub.stripe_subscription_id)
            stripe_cancelled = True
        except UpstreamError as e:
            logger.warning(f"Stripe購読解約失敗 (削除申請は継続): user_id={user_id} - {e.message}")

    now = utcnow()
    scheduled_at = now + timedelta(days=settings.ACCOUNT_DELETION_GRACE_DAYS)
    profile.deleted_at = now
    profile.deleted_by = user_id
    profile.deletion_reason = reason or "User requested account deletion"
    profile.scheduled_deletion_at = scheduled_at
    sub.status = "cancelled"
    sub.tier = FREE

    _append_change(
        db, user_id, user_id, previous_tier, FREE, "cancel",
        reason="User requested account deletion",
        notes=f"Scheduled deletion: {scheduled_at.strftime('%Y-%m-%d')}. Stripe cancelled: {stripe_cancelled}",
    )
    commit_or_raise(db, "schedule_account_deletion")

    logger.info(f"アカウント削除申請: user_id={user_id}, scheduled_deletion_at={scheduled_at}, stripe_cancelled={stripe_cancelled}")
    return AccountDeletionResult(scheduled_deletion_at=scheduled_at, stripe_cancelled=stripe_cancelled)


# =========================================================
# 参照
# =========================================================

def get_subscription_state(db: Session, actor: CallerIdentity) -> SubscriptionState:
    """本人の購読状態 (レコードが無ければ free / active)"""
    sub = get_subscription(db, actor.user_id)
    if sub is None:
        return SubscriptionState(tier=FREE, status="active")

    days_remaining = None
    if sub.grace_period_end:
        seconds = (sub.grace_period_end - utcnow()).total_seconds()
        days_remaining = max(0, math.ceil(seconds / 86400))

    return SubscriptionState(
        tier=sub.tier,
        status=sub.status,
        expires_at=sub.expires_at,
        previous_tier=sub.previous_tier,
        downgrade_date=sub.downgrade_date,
        grace_period_end=sub.grace_period_end,
        is_read_only=bool(sub.is_read_only),
        grace_days_remaining=days_remaining,
    )


def list_changes(db: Session, user_id: str, actor: CallerIdentity, limit: int = 100) -> list[SubscriptionChange]:
    """監査ログ (新しい順)"""
    ensure_admin(actor)
    return (
        db.query(SubscriptionChange)
        .filter(SubscriptionChange.user_id == user_id)
        .order_by(SubscriptionChange.created_at.desc(), SubscriptionChange.id.desc())
        .limit(limit)
        .all()
    )
