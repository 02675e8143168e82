"""Enumerations for the checkout bridge domain model."""

from enum import Enum


class PaymentStatus(str, Enum):
    """
    Canonical payment states persisted by the host.

    Declaration order follows the lifecycle: Initialized → Authorized →
    Captured → Refunded, with the side branches last.
    """

    INITIALIZED = "initialized"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"
    PENDING_EXTERNAL_SYSTEM = "pending_external_system"
    ERROR = "error"


class RemoteObjectKind(str, Enum):
    """The `object` tags of processor objects a webhook can reference."""

    CHECKOUT_SESSION = "checkout.session"
    CHARGE = "charge"
    PAYMENT_INTENT = "payment_intent"
    SUBSCRIPTION = "subscription"
    INVOICE = "invoice"
    REVIEW = "review"


class WebhookEventType(str, Enum):
    """Webhook event types the provider acts on."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    REVIEW_CLOSED = "review.closed"


class SessionMode(str, Enum):
    """Checkout session modes."""

    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"


class MetadataKey(str, Enum):
    """Transaction metadata keys written back to the host order."""

    SESSION_ID = "stripeSessionId"
    CUSTOMER_ID = "stripeCustomerId"
    PAYMENT_INTENT_ID = "stripePaymentIntentId"
    SUBSCRIPTION_ID = "stripeSubscriptionId"
    CHARGE_ID = "stripeChargeId"
    CARD_COUNTRY = "stripeCardCountry"


class OrderMetadataKey(str, Enum):
    """Order-identifying keys sent to the processor as object metadata."""

    ORDER_REFERENCE = "orderReference"
    ORDER_ID = "orderId"
    ORDER_NUMBER = "orderNumber"


class LineProperty(str, Enum):
    """Order line properties carrying processor-specific hints."""

    IS_RECURRING = "isRecurring"
    PRICE_ID = "stripePriceId"
    PRICE_INCLUDES_TAX = "stripePriceIncludesTax"
    PRODUCT_ID = "stripeProductId"
    RECURRING_INTERVAL = "stripeRecurringInterval"
    RECURRING_INTERVAL_COUNT = "stripeRecurringIntervalCount"
