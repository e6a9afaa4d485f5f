from decimal import Decimal

import pytest

from sportshub.core.exceptions import (
    AlreadyStarted,
    IdempotencyConflict,
    InsufficientBalance,
    InvalidSignature,
    NotOwner,
    NotPaid,
    NotPending,
    ReservationExpired,
    ValidationFailed,
)
from sportshub.models.payment import Payment, WebhookEvent
from sportshub.models.wallet_ledger import WalletLedger
from sportshub.services.payment_service import PaymentService
from sportshub.services.reservation_service import ReservationService
from sportshub.services.sweeper import ReservationSweeper
from sportshub.services.wallet_service import WalletService
from tests.helpers import NOW, events_of, local, minutes, signed_notification


def _create(db, court, user, method="CARD", start=None, end=None):
    return ReservationService(db).create_reservation(
        court.id, user.id, start or local(10), end or local(11), method, now=NOW
    )


def _card_order(db, reservation, user):
    form = PaymentService(db).start_card_payment(reservation.id, user.id, now=NOW)
    return form.order_reference


# =======================================================
# PAGO CON CRÉDITOS
# =======================================================

def test_pay_with_credits_debits_wallet_and_marks_paid(db, court, client_user):
    reservation = _create(db, court, client_user)

    entry = PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW + minutes(2))

    db.refresh(reservation)
    db.refresh(client_user)
    assert client_user.credits_balance == Decimal("30.00")
    assert entry.type == "DEBIT"
    assert entry.reason == "ORDER"
    assert entry.balance_after == Decimal("30.00")
    assert reservation.status == "PAID"
    assert reservation.payment_status == "PAID"
    assert reservation.payment_method == "CREDITS"
    assert reservation.credits_used == Decimal("20.00")
    assert reservation.expires_at is None
    assert len(events_of(db, "RESERVATION_PAID")) == 1


def test_pay_with_credits_balance_scenario(db, court, client_user):
    # Saldo 50, reserva de 30: queda en 20
    reservation = _create(db, court, client_user, start=local(10), end=local(11, 30))
    assert reservation.total_price == Decimal("30.00")

    entry = PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)

    db.refresh(client_user)
    assert entry.balance_after == Decimal("20.00")
    assert client_user.credits_balance == Decimal("20.00")


def test_retry_with_same_key_returns_original_entry(db, court, client_user):
    reservation = _create(db, court, client_user, start=local(10), end=local(11, 30))
    service = PaymentService(db)

    first = service.pay_with_credits(reservation.id, client_user.id, idempotency_key="pago-abc", now=NOW)
    retry = service.pay_with_credits(reservation.id, client_user.id, idempotency_key="pago-abc", now=NOW)

    db.refresh(client_user)
    assert retry.id == first.id
    assert client_user.credits_balance == Decimal("20.00")
    assert db.query(WalletLedger).count() == 1


def test_retry_without_key_uses_reservation_key(db, court, client_user):
    reservation = _create(db, court, client_user)
    service = PaymentService(db)

    first = service.pay_with_credits(reservation.id, client_user.id, now=NOW)
    retry = service.pay_with_credits(reservation.id, client_user.id, now=NOW)

    assert first.idempotency_key == f"RESERVATION_CREDITS:{reservation.id}"
    assert retry.id == first.id


def test_pay_with_credits_never_drives_balance_negative(db, court, client_user):
    reservation = _create(db, court, client_user, start=local(10), end=local(13))  # 60 €

    with pytest.raises(InsufficientBalance):
        PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)

    db.refresh(client_user)
    db.refresh(reservation)
    assert client_user.credits_balance == Decimal("50.00")
    assert reservation.status == "PENDING"


def test_pay_with_credits_requires_owner(db, court, client_user, other_user):
    reservation = _create(db, court, client_user)

    with pytest.raises(NotOwner):
        PaymentService(db).pay_with_credits(reservation.id, other_user.id, now=NOW)


def test_pay_with_credits_requires_pending(db, court, client_user):
    reservation = _create(db, court, client_user)
    ReservationService(db).cancel(reservation.id, "Ya no", actor_id=client_user.id, now=NOW)

    with pytest.raises(NotPending):
        PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)


def test_pay_with_credits_after_hold_expired(db, court, client_user):
    reservation = _create(db, court, client_user)

    with pytest.raises(ReservationExpired):
        PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW + minutes(11))


def test_client_key_reused_on_another_reservation_pays_it(db, court, client_user):
    first = _create(db, court, client_user, start=local(10), end=local(11))
    second = _create(db, court, client_user, start=local(12), end=local(13))
    service = PaymentService(db)

    entry_a = service.pay_with_credits(first.id, client_user.id, idempotency_key="k1", now=NOW)
    entry_b = service.pay_with_credits(second.id, client_user.id, idempotency_key="k1", now=NOW)

    db.refresh(second)
    db.refresh(client_user)
    assert entry_b.id != entry_a.id
    assert entry_b.details["reservation_id"] == second.id
    assert second.status == "PAID"
    assert client_user.credits_balance == Decimal("10.00")


def test_reservation_key_of_another_user_does_not_leak_their_entry(db, court, client_user, other_user):
    theirs = _create(db, court, other_user, start=local(14), end=local(15))
    PaymentService(db).pay_with_credits(theirs.id, other_user.id, now=NOW)
    mine = _create(db, court, client_user, start=local(10), end=local(11))

    entry = PaymentService(db).pay_with_credits(
        mine.id, client_user.id, idempotency_key=f"RESERVATION_CREDITS:{theirs.id}", now=NOW
    )

    assert entry.user_id == client_user.id
    assert entry.details["reservation_id"] == mine.id
    assert entry.balance_after == Decimal("30.00")


def test_paying_someone_elses_paid_reservation_is_forbidden(db, court, client_user, other_user):
    theirs = _create(db, court, other_user, start=local(14), end=local(15))
    PaymentService(db).pay_with_credits(theirs.id, other_user.id, now=NOW)

    with pytest.raises(NotOwner):
        PaymentService(db).pay_with_credits(theirs.id, client_user.id, now=NOW)


def test_reservation_key_taken_by_an_adjustment_is_a_conflict(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)
    WalletService(db).adjust_credits(
        client_user.id, "CREDIT", Decimal("5"), "ADJUST",
        idempotency_key=f"RESERVATION_CREDITS:{reservation.id}", actor_id=staff_user.id,
    )

    with pytest.raises(IdempotencyConflict):
        PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)

    db.refresh(reservation)
    db.refresh(client_user)
    assert reservation.status == "PENDING"
    assert client_user.credits_balance == Decimal("55.00")


# =======================================================
# WEBHOOK DE REDSYS
# =======================================================

def test_card_payment_creates_signed_form(db, court, client_user):
    reservation = _create(db, court, client_user)
    service = PaymentService(db)

    form = service.start_card_payment(reservation.id, client_user.id, now=NOW)

    payment = db.query(Payment).filter(Payment.order_reference == form.order_reference).one()
    assert payment.status == "PENDING"
    assert payment.amount == Decimal("20.00")
    assert len(form.order_reference) == 12
    assert form.Ds_Signature == service.redsys.sign(form.order_reference, form.Ds_MerchantParameters)
    assert service.redsys.decode_parameters(form.Ds_MerchantParameters)["DS_MERCHANT_AMOUNT"] == "2000"


def test_successful_webhook_marks_reservation_paid(db, court, client_user):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, signature = signed_notification(order)

    result = PaymentService(db).handle_gateway_webhook(parameters, signature, now=NOW + minutes(3))

    db.refresh(reservation)
    assert result.outcome == "PAID"
    assert result.duplicate is False
    assert reservation.status == "PAID"
    assert reservation.payment_method == "CARD"
    payment = db.query(Payment).filter(Payment.order_reference == order).one()
    assert payment.status == "PAID"
    assert payment.authorisation_code == "123456"


def test_webhook_redelivery_is_applied_once(db, court, client_user):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, signature = signed_notification(order)
    service = PaymentService(db)

    service.handle_gateway_webhook(parameters, signature, now=NOW + minutes(3))
    again = service.handle_gateway_webhook(parameters, signature, now=NOW + minutes(4))

    db.refresh(reservation)
    db.refresh(client_user)
    assert again.duplicate is True
    assert reservation.status == "PAID"
    assert client_user.credits_balance == Decimal("50.00")
    assert len(events_of(db, "RESERVATION_PAID")) == 1
    assert db.query(WebhookEvent).count() == 1


def test_webhook_with_bad_signature_is_rejected(db, court, client_user):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, _ = signed_notification(order)

    with pytest.raises(InvalidSignature):
        PaymentService(db).handle_gateway_webhook(parameters, "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA=", now=NOW)

    db.refresh(reservation)
    assert reservation.status == "PENDING"
    assert db.query(WebhookEvent).count() == 0


def test_denied_payment_leaves_reservation_pending(db, court, client_user):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, signature = signed_notification(order, response="0190")

    result = PaymentService(db).handle_gateway_webhook(parameters, signature, now=NOW + minutes(3))

    db.refresh(reservation)
    assert result.outcome == "FAILED"
    assert reservation.status == "PENDING"
    assert db.query(Payment).filter(Payment.order_reference == order).one().status == "FAILED"
    assert len(events_of(db, "PAYMENT_FAILED")) == 1


def test_late_webhook_after_sweeper_is_rejected(db, court, client_user):
    # Reserva a las T con retención de 10 minutos; barrido en T+11; webhook en T+12
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)

    ReservationSweeper(db).run(now=NOW + minutes(11))
    db.refresh(reservation)
    assert reservation.status == "CANCELLED"

    parameters, signature = signed_notification(order)
    with pytest.raises(ReservationExpired):
        PaymentService(db).handle_gateway_webhook(parameters, signature, now=NOW + minutes(12))

    db.refresh(reservation)
    assert reservation.status == "CANCELLED"
    assert db.query(Payment).filter(Payment.order_reference == order).one().status == "REJECTED_LATE"
    assert len(events_of(db, "LATE_PAYMENT_REJECTED")) == 1

    # El reenvío vuelve a rechazarse sin duplicar eventos
    with pytest.raises(ReservationExpired):
        PaymentService(db).handle_gateway_webhook(parameters, signature, now=NOW + minutes(13))
    assert len(events_of(db, "LATE_PAYMENT_REJECTED")) == 1


def test_late_webhook_before_sweeper_is_rejected(db, court, client_user):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, signature = signed_notification(order)

    with pytest.raises(ReservationExpired):
        PaymentService(db).handle_gateway_webhook(parameters, signature, now=NOW + minutes(12))

    db.refresh(reservation)
    assert reservation.status == "PENDING"


# =======================================================
# PAGO MANUAL Y REEMBOLSO
# =======================================================

def test_manual_payment_settles_async_reservation(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user, method="BANK_TRANSFER")

    paid = PaymentService(db).record_manual_payment(
        reservation.id, staff_user.id, "BANK_TRANSFER", reference="TRF-001", now=NOW + minutes(60)
    )

    assert paid.status == "PAID"
    assert paid.payment_method == "BANK_TRANSFER"
    assert "TRF-001" in paid.notes


def test_manual_payment_rejects_online_methods(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)

    with pytest.raises(ValidationFailed):
        PaymentService(db).record_manual_payment(reservation.id, staff_user.id, "CARD", now=NOW)


def test_refund_cancels_and_returns_credits(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)
    PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)

    result = PaymentService(db).refund(reservation.id, "Pista inundada", actor_id=staff_user.id, now=NOW)

    db.refresh(client_user)
    assert result.reservation_status == "CANCELLED"
    assert result.payment_status == "REFUNDED"
    assert result.credits_refunded == Decimal("20.00")
    assert client_user.credits_balance == Decimal("50.00")
    entry = db.query(WalletLedger).filter(WalletLedger.id == result.ledger_entry_id).one()
    assert entry.idempotency_key == f"REFUND:RES:{reservation.id}"
    assert entry.details["reason"] == "Pista inundada"
    assert entry.details["actor_id"] == staff_user.id


def test_refund_twice_credits_once(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)
    PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)
    service = PaymentService(db)

    first = service.refund(reservation.id, "Lluvia", actor_id=staff_user.id, now=NOW)
    second = service.refund(reservation.id, "Lluvia", actor_id=staff_user.id, now=NOW)

    db.refresh(client_user)
    assert second.ledger_entry_id == first.ledger_entry_id
    assert client_user.credits_balance == Decimal("50.00")
    assert len(events_of(db, "RESERVATION_REFUNDED")) == 1


def test_card_payment_is_refunded_in_credits(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, signature = signed_notification(order)
    PaymentService(db).handle_gateway_webhook(parameters, signature, now=NOW + minutes(2))

    result = PaymentService(db).refund(reservation.id, "Error de cobro", actor_id=staff_user.id, now=NOW)

    db.refresh(client_user)
    assert result.credits_refunded == Decimal("20.00")
    assert client_user.credits_balance == Decimal("70.00")
    assert db.query(Payment).filter(Payment.order_reference == order).one().status == "REFUNDED"


def test_refund_of_unpaid_reservation_is_rejected(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)

    with pytest.raises(NotPaid):
        PaymentService(db).refund(reservation.id, "Nada que devolver", actor_id=staff_user.id, now=NOW)


def test_refund_of_started_reservation_is_rejected(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user)
    PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)
    ReservationService(db).check_in(reservation.id, staff_user.id, now=local(10))

    with pytest.raises(AlreadyStarted):
        PaymentService(db).refund(reservation.id, "Tarde", actor_id=staff_user.id, now=local(10, 5))


# =======================================================
# CARRERAS: OTRA PETICIÓN CONFIRMÓ ENTRE LA COMPROBACIÓN Y LA INSERCIÓN
# =======================================================

def _miss_first_lookups(monkeypatch, target, name, misses):
    """La búsqueda `name` de `target` no encuentra nada las primeras `misses` veces."""
    real = getattr(target, name)
    calls = []

    def lookup(key):
        calls.append(key)
        return None if len(calls) <= misses else real(key)

    monkeypatch.setattr(target, name, lookup)
    return calls


def test_webhook_losing_insert_race_replays_stored_event(db, court, client_user, monkeypatch):
    reservation = _create(db, court, client_user)
    order = _card_order(db, reservation, client_user)
    parameters, signature = signed_notification(order)
    service = PaymentService(db)
    service.handle_gateway_webhook(parameters, signature, now=NOW + minutes(3))
    calls = _miss_first_lookups(monkeypatch, service, "_find_event", misses=1)

    again = service.handle_gateway_webhook(parameters, signature, now=NOW + minutes(4))

    assert len(calls) == 2
    assert again.duplicate is True
    assert again.outcome == "PAID"
    assert db.query(WebhookEvent).count() == 1
    assert len(events_of(db, "RESERVATION_PAID")) == 1


def test_credit_payment_losing_insert_race_returns_committed_entry(db, court, client_user, monkeypatch):
    reservation = _create(db, court, client_user)
    # Débito que otra petición ya confirmó con la misma clave
    committed = WalletLedger(
        user_id=client_user.id,
        type="DEBIT",
        reason="ORDER",
        credits=Decimal("20.00"),
        balance_after=Decimal("30.00"),
        details={"reservation_id": reservation.id},
        idempotency_key=f"RESERVATION_CREDITS:{reservation.id}",
    )
    db.add(committed)
    db.commit()
    service = PaymentService(db)
    calls = _miss_first_lookups(monkeypatch, service.wallet, "find_by_key", misses=2)

    entry = service.pay_with_credits(reservation.id, client_user.id, now=NOW)

    db.refresh(client_user)
    assert len(calls) == 3
    assert entry.id == committed.id
    assert client_user.credits_balance == Decimal("50.00")
    assert db.query(WalletLedger).count() == 1
    assert events_of(db, "RESERVATION_PAID") == []
