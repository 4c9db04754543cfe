from functools import lru_cache
import logging

from app.application.ports.payment_gateway import PaymentGatewayPort
from app.application.ports.reservation_store import ReservationStorePort
from app.application.ports.schedule_store import ScheduleStorePort
from app.application.use_cases.availability import GetAvailabilityUseCase
from app.application.use_cases.booking import BookingCoordinator
from app.application.use_cases.cancel_booking import BookingStatusUseCase, CancelBookingUseCase
from app.application.utils.date_parser import safe_timezone
from app.application.utils.polling import PaymentPoller
from app.core.config import settings
from app.infrastructure.db import get_engine
from app.infrastructure.events.logging_publisher import LoggingEventPublisher
from app.infrastructure.payments.gateways import AsyncPushGateway, NoPaymentGateway, SyncCaptureGateway
from app.infrastructure.payments.mock_clients import MockCardClient, MockMobileMoneyClient
from app.infrastructure.payments.mpesa_client import MpesaClient
from app.infrastructure.payments.paypal_client import PayPalCardClient
from app.infrastructure.payments.stripe_client import StripeCardClient
from app.infrastructure.store.json_store import JsonScheduleStore
from app.infrastructure.store.memory_store import MemoryReservationStore
from app.infrastructure.store.payment_store import MemoryPendingPaymentStore, MemoryReconciliationStore
from app.infrastructure.store.sql_store import SqlReservationStore

logger = logging.getLogger(__name__)


def _is_dev() -> bool:
    return settings.ENV.lower() in {"dev", "local", "test"}


@lru_cache
def get_schedule_store() -> ScheduleStorePort:
    return JsonScheduleStore(settings.CATALOG_PATH)


@lru_cache
def get_reservation_store() -> ReservationStorePort:
    if settings.DATABASE_URL:
        return SqlReservationStore(get_engine(settings.DATABASE_URL), create_tables=_is_dev())
    if not _is_dev():
        raise ValueError("DATABASE_URL is required outside dev/local environments.")
    logger.info("Using MemoryReservationStore (DATABASE_URL missing, ENV=%s)", settings.ENV)
    return MemoryReservationStore()


@lru_cache
def get_pending_payment_store() -> MemoryPendingPaymentStore:
    return MemoryPendingPaymentStore()


@lru_cache
def get_reconciliation_store() -> MemoryReconciliationStore:
    return MemoryReconciliationStore()


@lru_cache
def get_event_publisher() -> LoggingEventPublisher:
    return LoggingEventPublisher()


@lru_cache
def get_payment_gateways() -> dict[str, PaymentGatewayPort]:
    gateways: dict[str, PaymentGatewayPort] = {"venue": NoPaymentGateway()}

    if settings.STRIPE_SECRET_KEY:
        gateways["stripe"] = SyncCaptureGateway(StripeCardClient())
    if settings.PAYPAL_CLIENT_ID and settings.PAYPAL_CLIENT_SECRET:
        gateways["paypal"] = SyncCaptureGateway(PayPalCardClient())
    if settings.MPESA_CONSUMER_KEY and settings.MPESA_SHORTCODE:
        gateways["mpesa"] = AsyncPushGateway(MpesaClient())

    if _is_dev():
        gateways["mock_card"] = SyncCaptureGateway(MockCardClient())
        gateways["mock_mobile"] = AsyncPushGateway(MockMobileMoneyClient())

    logger.info("Payment methods enabled: %s", ", ".join(sorted(gateways)))
    return gateways


@lru_cache
def get_availability_use_case() -> GetAvailabilityUseCase:
    return GetAvailabilityUseCase(
        schedules=get_schedule_store(),
        reservations=get_reservation_store(),
        timezone=safe_timezone(settings.BUSINESS_TIMEZONE),
    )


@lru_cache
def get_booking_coordinator() -> BookingCoordinator:
    return BookingCoordinator(
        availability=get_availability_use_case(),
        schedules=get_schedule_store(),
        reservations=get_reservation_store(),
        gateways=get_payment_gateways(),
        pending_payments=get_pending_payment_store(),
        reconciliation=get_reconciliation_store(),
        events=get_event_publisher(),
        timezone=safe_timezone(settings.BUSINESS_TIMEZONE),
        currency=settings.CURRENCY,
        pay_at_venue_enabled=settings.PAY_AT_VENUE_ENABLED,
        pay_at_venue_status=settings.PAY_AT_VENUE_STATUS,
        assignment_policy=settings.STAFF_ASSIGNMENT_POLICY,
        async_timeout_seconds=settings.ASYNC_PAYMENT_TIMEOUT_SECONDS,
        persist_max_attempts=settings.PERSIST_MAX_ATTEMPTS,
        persist_retry_base_seconds=settings.PERSIST_RETRY_BASE_SECONDS,
        poller=PaymentPoller(
            interval_seconds=settings.PAYMENT_POLL_INTERVAL_SECONDS,
            backoff=settings.PAYMENT_POLL_BACKOFF,
            max_interval_seconds=settings.PAYMENT_POLL_MAX_INTERVAL_SECONDS,
            max_attempts=settings.PAYMENT_POLL_MAX_ATTEMPTS,
        ),
    )


@lru_cache
def get_cancel_booking_use_case() -> CancelBookingUseCase:
    return CancelBookingUseCase(
        reservations=get_reservation_store(),
        events=get_event_publisher(),
        timezone=safe_timezone(settings.BUSINESS_TIMEZONE),
        cancel_by_hours=settings.CANCEL_BY_HOURS,
    )


@lru_cache
def get_booking_status_use_case() -> BookingStatusUseCase:
    return BookingStatusUseCase(
        reservations=get_reservation_store(),
        events=get_event_publisher(),
        timezone=safe_timezone(settings.BUSINESS_TIMEZONE),
    )
