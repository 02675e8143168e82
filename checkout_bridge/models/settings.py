"""Provider settings as a plain validated model populated by the host."""

from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_PAYMENT_METHOD_TYPES = ["card"]


def _split_csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class StripeCheckoutSettings(BaseModel):
    """Settings for one configured checkout provider instance."""

    continue_url: str = ""
    cancel_url: str = ""
    error_url: str = ""

    billing_address_line1_property_alias: Optional[str] = None
    billing_address_line2_property_alias: Optional[str] = None
    billing_address_city_property_alias: Optional[str] = None
    billing_address_state_property_alias: Optional[str] = None
    billing_address_zip_code_property_alias: Optional[str] = None

    test_secret_key: str = ""
    test_public_key: str = ""
    test_webhook_signing_secret: str = ""
    live_secret_key: str = ""
    live_public_key: str = ""
    live_webhook_signing_secret: str = ""
    test_mode: bool = True

    capture: bool = False
    send_stripe_receipt: bool = False

    order_heading: Optional[str] = None
    order_image: Optional[str] = None
    one_time_items_heading: Optional[str] = None
    order_properties: Optional[str] = Field(
        default=None, description="Comma separated order properties to copy into processor metadata"
    )
    payment_method_types: Optional[str] = Field(
        default=None, description="Comma separated payment method types; defaults to card"
    )

    @property
    def secret_key(self) -> str:
        return self.test_secret_key if self.test_mode else self.live_secret_key

    @property
    def public_key(self) -> str:
        return self.test_public_key if self.test_mode else self.live_public_key

    @property
    def webhook_signing_secret(self) -> str:
        return self.test_webhook_signing_secret if self.test_mode else self.live_webhook_signing_secret

    @property
    def order_property_aliases(self) -> list[str]:
        return _split_csv(self.order_properties)

    @property
    def payment_method_type_list(self) -> list[str]:
        return _split_csv(self.payment_method_types) or list(DEFAULT_PAYMENT_METHOD_TYPES)
