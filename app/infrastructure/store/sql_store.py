from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import Column, Date, DateTime, Float, Index, Integer, String, select, text, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.application.exceptions import BookingNotFound, InvalidStatusTransition, ReservationStoreError, SlotConflict
from app.application.ports.reservation_store import ReservationStorePort
from app.domain.entities.booking import Booking, BookingStatus, Customer
from app.infrastructure.db import Base, get_session_factory

ACTIVE_SLOT_INDEX = "uq_bookings_active_slot"


class BookingRow(Base):
    __tablename__ = "bookings"

    id = Column(String, primary_key=True)
    tenant_id = Column(String, nullable=False, index=True)
    service_id = Column(String, nullable=False)
    staff_id = Column(String, nullable=False)
    location_id = Column(String, nullable=True)

    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)

    booking_date = Column(Date, nullable=False)
    booking_time = Column(String(5), nullable=False)  # HH:MM
    duration_minutes = Column(Integer, nullable=False)

    status = Column(String, nullable=False, index=True)  # pending/confirmed/cancelled/no_show
    total_price = Column(Float, nullable=False, default=0)
    cancel_token = Column(String, nullable=False, unique=True, index=True)
    payment_provider = Column(String, nullable=True)
    payment_reference = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        # One live booking per staff slot; cancelled rows free the slot.
        Index(
            ACTIVE_SLOT_INDEX,
            "staff_id",
            "booking_date",
            "booking_time",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("idx_bookings_tenant_date", "tenant_id", "booking_date"),
    )


def _to_entity(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        tenant_id=row.tenant_id,
        service_id=row.service_id,
        staff_id=row.staff_id,
        location_id=row.location_id,
        customer=Customer(name=row.customer_name, email=row.customer_email, phone=row.customer_phone),
        booking_date=row.booking_date,
        booking_time=row.booking_time,
        duration_minutes=row.duration_minutes,
        status=BookingStatus(row.status),
        total_price=row.total_price,
        cancel_token=row.cancel_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
        payment_provider=row.payment_provider,
        payment_reference=row.payment_reference,
    )


def _to_row(booking: Booking) -> BookingRow:
    return BookingRow(
        id=booking.id,
        tenant_id=booking.tenant_id,
        service_id=booking.service_id,
        staff_id=booking.staff_id,
        location_id=booking.location_id,
        customer_name=booking.customer.name,
        customer_email=booking.customer.email,
        customer_phone=booking.customer.phone,
        booking_date=booking.booking_date,
        booking_time=booking.booking_time,
        duration_minutes=booking.duration_minutes,
        status=booking.status.value,
        total_price=booking.total_price,
        cancel_token=booking.cancel_token,
        payment_provider=booking.payment_provider,
        payment_reference=booking.payment_reference,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


class SqlReservationStore(ReservationStorePort):
    def __init__(self, engine: Engine, create_tables: bool = False) -> None:
        self._session_factory = get_session_factory(engine)
        self._logger = logging.getLogger(__name__)
        if create_tables:
            Base.metadata.create_all(engine)

    def add(self, booking: Booking) -> Booking:
        with self._session_factory() as session:
            session.add(_to_row(booking))
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                if _is_slot_conflict(e):
                    raise SlotConflict("Slot already booked") from e
                raise ReservationStoreError(f"Booking insert rejected: {e.orig}") from e
            except SQLAlchemyError as e:
                session.rollback()
                self._logger.error("Booking insert failed", extra={"booking_id": booking.id, "error": str(e)})
                raise ReservationStoreError(str(e)) from e
        return booking

    def list_for_date(
        self,
        tenant_id: str,
        booking_date: date,
        staff_ids: list[str] | None = None,
    ) -> list[Booking]:
        stmt = select(BookingRow).where(
            BookingRow.tenant_id == tenant_id,
            BookingRow.booking_date == booking_date,
            BookingRow.status != BookingStatus.cancelled.value,
        )
        if staff_ids is not None:
            stmt = stmt.where(BookingRow.staff_id.in_(staff_ids))
        stmt = stmt.order_by(BookingRow.booking_time, BookingRow.staff_id)
        with self._session_factory() as session:
            return [_to_entity(row) for row in session.execute(stmt).scalars()]

    def get(self, tenant_id: str, booking_id: str) -> Booking | None:
        with self._session_factory() as session:
            row = session.get(BookingRow, booking_id)
            if row is None or row.tenant_id != tenant_id:
                return None
            return _to_entity(row)

    def get_by_cancel_token(self, cancel_token: str) -> Booking | None:
        with self._session_factory() as session:
            row = session.execute(
                select(BookingRow).where(BookingRow.cancel_token == cancel_token)
            ).scalar_one_or_none()
            return _to_entity(row) if row else None

    def update_status(
        self,
        booking_id: str,
        status: BookingStatus,
        updated_at: datetime,
        expected_status: BookingStatus | None = None,
    ) -> Booking:
        stmt = update(BookingRow).where(BookingRow.id == booking_id)
        if expected_status is not None:
            stmt = stmt.where(BookingRow.status == expected_status.value)
        stmt = stmt.values(status=status.value, updated_at=updated_at).execution_options(synchronize_session=False)

        with self._session_factory() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise ReservationStoreError(str(e)) from e

            row = session.get(BookingRow, booking_id)
            if row is None:
                raise BookingNotFound("Booking not found")
            if result.rowcount == 0:
                raise InvalidStatusTransition(f"Booking is {row.status}, expected {expected_status.value}")
            return _to_entity(row)


def _is_slot_conflict(error: IntegrityError) -> bool:
    message = str(error.orig)
    if ACTIVE_SLOT_INDEX in message:
        return True
    # sqlite reports the columns rather than the index name
    return "bookings.staff_id, bookings.booking_date, bookings.booking_time" in message
