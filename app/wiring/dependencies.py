from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
import logging

from app.core.config import settings
from app.application.ports.document_store import DocumentStorePort
from app.application.ports.identity import IdentityPort
from app.application.ports.payment_gateway import PaymentGatewayPort
from app.application.ports.rate_limiter import RateLimiterPort
from app.application.use_cases.billing_transition import BillingTransitionUseCase
from app.application.use_cases.booking_transition import BookingTransitionUseCase
from app.application.use_cases.reconcile_billing import ReconcileBillingUseCase
from app.application.use_cases.record_side_effects import SideEffectSink
from app.application.use_cases.tenant_access import TenantAccessGuard
from app.application.utils.detached import DetachedTaskRunner
from app.infrastructure.firebase.static_identity import StaticIdentity
from app.infrastructure.rate_limit.memory_rate_limiter import MemoryRateLimiter
from app.infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter
from app.infrastructure.side_effects.store_sinks import StoreAuditLog, StoreNotificationSink
from app.infrastructure.store.json_store import JsonDocumentStore
from app.infrastructure.store.memory_store import MemoryDocumentStore
from app.infrastructure.stripe.mock_gateway import MockPaymentGateway
from app.infrastructure.stripe.stripe_client import StripeClient
from app.infrastructure.stripe.stripe_gateway import StripeGateway


logger = logging.getLogger(__name__)


@lru_cache
def get_document_store() -> DocumentStorePort:
    provider = settings.STORE_PROVIDER.lower()
    if provider == "firestore":
        from app.infrastructure.firebase.app import get_firebase_app
        from app.infrastructure.store.firestore_store import FirestoreDocumentStore

        app = get_firebase_app(settings.FIREBASE_CREDENTIALS_PATH, settings.FIREBASE_PROJECT_ID)
        return FirestoreDocumentStore(app, max_batch_size=settings.STORAGE_MAX_BATCH_SIZE)
    if provider == "json":
        return JsonDocumentStore(settings.DATA_DIR, max_batch_size=settings.STORAGE_MAX_BATCH_SIZE)
    if provider != "memory":
        raise ValueError(f"Unknown STORE_PROVIDER: {settings.STORE_PROVIDER}")
    if not settings.is_dev:
        logger.warning("Using in-memory document store outside dev", extra={"env": settings.ENV})
    return MemoryDocumentStore(max_batch_size=settings.STORAGE_MAX_BATCH_SIZE)


@lru_cache
def get_payment_gateway() -> PaymentGatewayPort:
    if not settings.STRIPE_SECRET_KEY:
        if settings.is_dev:
            logger.info("Using MockPaymentGateway (STRIPE_SECRET_KEY missing, ENV=dev/local)")
            return MockPaymentGateway()
        raise ValueError("STRIPE_SECRET_KEY is required outside dev/local.")
    client = StripeClient(
        secret_key=settings.STRIPE_SECRET_KEY,
        api_base=settings.STRIPE_API_BASE,
        timeout=settings.STRIPE_TIMEOUT_SECONDS,
    )
    return StripeGateway(client=client)


@lru_cache
def get_identity() -> IdentityPort:
    if settings.STORE_PROVIDER.lower() == "firestore" or not settings.is_dev:
        from app.infrastructure.firebase.app import get_firebase_app
        from app.infrastructure.firebase.firebase_identity import FirebaseIdentity

        return FirebaseIdentity(get_firebase_app(settings.FIREBASE_CREDENTIALS_PATH, settings.FIREBASE_PROJECT_ID))
    logger.info("Using StaticIdentity (ENV=dev/local)")
    return StaticIdentity(allow_uid_tokens=True)


@lru_cache
def get_task_runner() -> DetachedTaskRunner:
    if settings.SIDE_EFFECT_WORKERS <= 0:
        return DetachedTaskRunner()
    executor = ThreadPoolExecutor(max_workers=settings.SIDE_EFFECT_WORKERS, thread_name_prefix="side-effect")
    return DetachedTaskRunner(executor)


@lru_cache
def get_side_effect_sink() -> SideEffectSink:
    store = get_document_store()
    return SideEffectSink(
        audit_log=StoreAuditLog(store),
        notifications=StoreNotificationSink(store),
        runner=get_task_runner(),
    )


@lru_cache
def get_rate_limiter() -> RateLimiterPort:
    if settings.REDIS_URL:
        return RedisRateLimiter.from_url(
            settings.REDIS_URL,
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        )
    return MemoryRateLimiter(
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )


def get_tenant_access_guard() -> TenantAccessGuard:
    return TenantAccessGuard(identity=get_identity(), store=get_document_store())


def get_booking_transition_use_case() -> BookingTransitionUseCase:
    return BookingTransitionUseCase(store=get_document_store(), side_effects=get_side_effect_sink())


def get_billing_transition_use_case() -> BillingTransitionUseCase:
    return BillingTransitionUseCase(
        store=get_document_store(),
        gateway=get_payment_gateway(),
        side_effects=get_side_effect_sink(),
        grace_period_days=settings.GRACE_PERIOD_DAYS,
    )


def get_reconcile_billing_use_case() -> ReconcileBillingUseCase:
    return ReconcileBillingUseCase(
        store=get_document_store(),
        side_effects=get_side_effect_sink(),
        batch_size=settings.STORAGE_MAX_BATCH_SIZE,
        trial_warning_days=settings.TRIAL_WARNING_DAYS,
    )
