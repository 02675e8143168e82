"""Application configuration via environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings

from checkout_bridge.models.settings import StripeCheckoutSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./checkout_bridge.db"
    log_level: str = "INFO"

    # Processor client
    stripe_api_version: str = "2024-06-20"
    stripe_max_retries: int = 2
    use_mock_gateway: bool = False
    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 0

    # Provider settings (see StripeCheckoutSettings)
    stripe_test_mode: bool = True
    stripe_test_secret_key: str = ""
    stripe_test_public_key: str = ""
    stripe_test_webhook_signing_secret: str = ""
    stripe_live_secret_key: str = ""
    stripe_live_public_key: str = ""
    stripe_live_webhook_signing_secret: str = ""
    stripe_continue_url: str = "http://localhost:8000/checkout/continue"
    stripe_cancel_url: str = "http://localhost:8000/checkout/cancel"
    stripe_error_url: str = "http://localhost:8000/checkout/error"
    stripe_capture: bool = False
    stripe_send_receipt: bool = False
    stripe_billing_address_line1_property_alias: Optional[str] = "billingAddressLine1"
    stripe_billing_address_line2_property_alias: Optional[str] = "billingAddressLine2"
    stripe_billing_address_city_property_alias: Optional[str] = "billingCity"
    stripe_billing_address_state_property_alias: Optional[str] = None
    stripe_billing_address_zip_code_property_alias: Optional[str] = "billingZipCode"
    stripe_order_heading: Optional[str] = None
    stripe_order_image: Optional[str] = None
    stripe_one_time_items_heading: Optional[str] = None
    stripe_order_properties: Optional[str] = None
    stripe_payment_method_types: Optional[str] = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def provider_settings(self) -> StripeCheckoutSettings:
        """Build the provider settings for the configured mode."""
        return StripeCheckoutSettings(
            continue_url=self.stripe_continue_url,
            cancel_url=self.stripe_cancel_url,
            error_url=self.stripe_error_url,
            billing_address_line1_property_alias=self.stripe_billing_address_line1_property_alias,
            billing_address_line2_property_alias=self.stripe_billing_address_line2_property_alias,
            billing_address_city_property_alias=self.stripe_billing_address_city_property_alias,
            billing_address_state_property_alias=self.stripe_billing_address_state_property_alias,
            billing_address_zip_code_property_alias=self.stripe_billing_address_zip_code_property_alias,
            test_secret_key=self.stripe_test_secret_key,
            test_public_key=self.stripe_test_public_key,
            test_webhook_signing_secret=self.stripe_test_webhook_signing_secret,
            live_secret_key=self.stripe_live_secret_key,
            live_public_key=self.stripe_live_public_key,
            live_webhook_signing_secret=self.stripe_live_webhook_signing_secret,
            test_mode=self.stripe_test_mode,
            capture=self.stripe_capture,
            send_stripe_receipt=self.stripe_send_receipt,
            order_heading=self.stripe_order_heading,
            order_image=self.stripe_order_image,
            one_time_items_heading=self.stripe_one_time_items_heading,
            order_properties=self.stripe_order_properties,
            payment_method_types=self.stripe_payment_method_types,
        )


settings = Settings()
