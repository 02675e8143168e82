"""
Abstract payment provider interface.

A provider exposes the lifecycle operations the host order pipeline
calls: generate the payment form, process the processor's callback,
and the optional post-authorization operations (fetch status, capture,
refund, cancel). Optional operations are advertised through capability
flags; a provider that does not support one inherits a no-op default.

Providers never mutate the order. Every operation returns a result
object for the host to apply to its own transaction store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from checkout_bridge.engine.context import RequestCache, WebhookPayload
from checkout_bridge.models.enums import PaymentStatus
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.models.snapshot import OrderSnapshot


def clean_metadata(values: Mapping[str, Optional[str]]) -> dict[str, str]:
    """Drop unset values; the host treats every key it receives as a write."""
    return {k: v for k, v in values.items() if v is not None}


@dataclass(frozen=True)
class ProviderUrls:
    continue_url: str
    cancel_url: str
    error_url: str = ""


@dataclass
class PaymentProviderContext:
    """
    Everything one provider operation needs, scoped to one host request.

    The host creates the context when a request arrives and discards it
    when the request ends. `cache` holds the request's verified webhook
    event and tax rates; it is never shared between requests.

    `order` is None only while a webhook is being matched to its order.
    """

    order: Optional[OrderSnapshot]
    settings: StripeCheckoutSettings
    urls: ProviderUrls
    cache: RequestCache = field(default_factory=RequestCache)
    webhook: Optional[WebhookPayload] = None


@dataclass(frozen=True)
class TransactionMetadataDefinition:
    alias: str
    name: str
    description: str = ""


@dataclass
class PaymentForm:
    """Descriptor of the form the host renders to send the customer on."""

    action: str
    method: str = "POST"
    attributes: dict[str, str] = field(default_factory=dict)
    js_files: list[str] = field(default_factory=list)
    js: list[str] = field(default_factory=list)


@dataclass
class PaymentFormResult:
    form: PaymentForm
    redirect_url: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class TransactionInfo:
    payment_status: PaymentStatus
    transaction_id: Optional[str] = None
    amount_authorized: Optional[Decimal] = None


@dataclass
class CallbackResult:
    """Outcome of a webhook callback: processed (200) or rejected (400)."""

    success: bool
    transaction_info: Optional[TransactionInfo] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def ok(
        cls,
        transaction_info: Optional[TransactionInfo] = None,
        metadata: Optional[Mapping[str, Optional[str]]] = None,
    ) -> "CallbackResult":
        return cls(True, transaction_info, clean_metadata(metadata or {}))

    @classmethod
    def bad_request(cls) -> "CallbackResult":
        return cls(False)

    @property
    def http_status(self) -> int:
        return 200 if self.success else 400


@dataclass
class ApiResult:
    """
    Outcome of a post-authorization operation.

    `ApiResult.empty()` means the operation ran but changed nothing
    (typically a remote failure). Operations return `None` instead when
    there was nothing to do at all.
    """

    transaction_info: Optional[TransactionInfo] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        transaction_info: TransactionInfo,
        metadata: Optional[Mapping[str, Optional[str]]] = None,
    ) -> "ApiResult":
        return cls(transaction_info, clean_metadata(metadata or {}))

    @classmethod
    def empty(cls) -> "ApiResult":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.transaction_info is None and not self.metadata


class PaymentProvider(ABC):
    """Abstract base class for payment providers."""

    can_fetch_payment_status: bool = False
    can_capture_payments: bool = False
    can_cancel_payments: bool = False
    can_refund_payments: bool = False
    finalize_at_continue_url: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'stripe_checkout')."""
        ...

    @property
    def transaction_metadata_definitions(self) -> list[TransactionMetadataDefinition]:
        return []

    @abstractmethod
    async def generate_form(self, ctx: PaymentProviderContext) -> PaymentFormResult:
        """
        Create the remote checkout and describe how to send the customer there.

        Raises:
            RemoteCallFailed: The remote checkout could not be created.
        """
        ...

    @abstractmethod
    async def process_callback(self, ctx: PaymentProviderContext) -> CallbackResult:
        """Process an inbound webhook. Never raises."""
        ...

    async def get_order_reference(self, ctx: PaymentProviderContext) -> Optional[str]:
        """Originating order id for a webhook, or None to use the host's own lookup."""
        return None

    async def fetch_payment_status(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        return None

    async def capture_payment(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        return None

    async def refund_payment(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        return None

    async def cancel_payment(self, ctx: PaymentProviderContext) -> Optional[ApiResult]:
        return None
