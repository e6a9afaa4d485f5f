from sportshub.models.cancellation import Cancellation
from sportshub.models.reservation import Reservation
from sportshub.services import outbox
from sportshub.services.payment_service import PaymentService
from sportshub.services.reservation_service import AUTO_CANCEL_NOTE, ReservationService
from sportshub.services.sweeper import ReservationSweeper
from tests.helpers import NOW, events_of, local, minutes


def _create(db, court, user, start, end, method="CARD"):
    return ReservationService(db).create_reservation(court.id, user.id, start, end, method, now=NOW)


def _statuses(db):
    return {r.id: r.status for r in db.query(Reservation).order_by(Reservation.id)}


def test_expired_hold_is_cancelled_with_system_note(db, court, client_user):
    reservation = _create(db, court, client_user, local(10), local(11))

    result = ReservationSweeper(db).run(now=NOW + minutes(11))

    db.refresh(reservation)
    assert result.expired == [reservation.id]
    assert reservation.status == "CANCELLED"
    assert reservation.expires_at is None
    assert AUTO_CANCEL_NOTE in reservation.notes
    audit = db.query(Cancellation).filter(Cancellation.reservation_id == reservation.id).one()
    assert audit.actor_id is None
    [event] = events_of(db, "RESERVATION_AUTO_CANCELLED")
    assert event.event_data["reservation_id"] == reservation.id


def test_hold_not_yet_expired_is_kept(db, court, client_user):
    reservation = _create(db, court, client_user, local(10), local(11))

    result = ReservationSweeper(db).run(now=NOW + minutes(9))

    db.refresh(reservation)
    assert result.expired == []
    assert reservation.status == "PENDING"


def test_async_settlement_methods_get_longer_grace(db, court, client_user, settings):
    # Reserva para el día siguiente, pago por transferencia
    transfer = _create(db, court, client_user, local(10) + minutes(24 * 60), local(11) + minutes(24 * 60), "BANK_TRANSFER")

    ReservationSweeper(db).run(now=NOW + minutes(11))
    db.refresh(transfer)
    assert transfer.status == "PENDING"

    ReservationSweeper(db).run(now=NOW + minutes(10 + settings.ASYNC_SETTLEMENT_GRACE_MINUTES))
    db.refresh(transfer)
    assert transfer.status == "CANCELLED"


def test_paid_reservation_without_check_in_becomes_no_show(db, court, client_user):
    reservation = _create(db, court, client_user, local(10), local(11))
    PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)

    within_grace = ReservationSweeper(db).run(now=local(11) + minutes(10))
    assert within_grace.no_show == []

    result = ReservationSweeper(db).run(now=local(11) + minutes(16))

    db.refresh(reservation)
    assert result.no_show == [reservation.id]
    assert reservation.status == "NO_SHOW"
    [event] = events_of(db, "RESERVATION_NO_SHOW")
    assert event.event_data["previous_status"] == "PAID"


def test_in_progress_reservation_is_auto_completed(db, court, client_user, staff_user):
    reservation = _create(db, court, client_user, local(10), local(11))
    PaymentService(db).pay_with_credits(reservation.id, client_user.id, now=NOW)
    ReservationService(db).check_in(reservation.id, staff_user.id, now=local(10))

    result = ReservationSweeper(db).run(now=local(11, 5))

    db.refresh(reservation)
    assert result.completed == [reservation.id]
    assert reservation.status == "COMPLETED"
    assert reservation.check_out_time == local(11, 5)
    [event] = events_of(db, "RESERVATION_CHECKED_OUT")
    assert event.event_data["automatic"] is True


def test_running_twice_with_same_clock_is_idempotent(db, court, client_user, other_user, staff_user):
    pending = _create(db, court, client_user, local(10), local(11))
    paid = _create(db, court, other_user, local(12), local(13))
    PaymentService(db).pay_with_credits(paid.id, other_user.id, now=NOW)
    playing = _create(db, court, client_user, local(14), local(15))
    PaymentService(db).pay_with_credits(playing.id, client_user.id, now=NOW)
    ReservationService(db).check_in(playing.id, staff_user.id, now=local(14))

    clock = local(15, 30)
    ReservationSweeper(db).run(now=clock)
    after_first = _statuses(db)
    events_after_first = len(events_of(db, "RESERVATION_AUTO_CANCELLED")) + len(events_of(db, "RESERVATION_NO_SHOW"))

    second = ReservationSweeper(db).run(now=clock)

    assert second.total == 0
    assert _statuses(db) == after_first
    assert after_first[pending.id] == "CANCELLED"
    assert after_first[paid.id] == "NO_SHOW"
    assert after_first[playing.id] == "COMPLETED"
    assert len(events_of(db, "RESERVATION_AUTO_CANCELLED")) + len(events_of(db, "RESERVATION_NO_SHOW")) == events_after_first


def test_failing_row_does_not_block_the_sweep(db, court, client_user, other_user, monkeypatch):
    broken = _create(db, court, client_user, local(10), local(11))
    healthy = _create(db, court, other_user, local(12), local(13))
    broken_id, healthy_id = broken.id, healthy.id
    original_emit = outbox.emit

    def flaky_emit(session, payload):
        if getattr(payload, "reservation_id", None) == broken_id:
            raise RuntimeError("fallo simulado")
        return original_emit(session, payload)

    monkeypatch.setattr(outbox, "emit", flaky_emit)

    result = ReservationSweeper(db).run(now=NOW + minutes(11))

    assert result.expired == [healthy_id]
    assert result.failed == [broken_id]
    statuses = _statuses(db)
    assert statuses[broken_id] == "PENDING"
    assert statuses[healthy_id] == "CANCELLED"
