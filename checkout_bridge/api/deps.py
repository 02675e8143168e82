"""
Provider wiring for the HTTP layer.

The provider is stateless apart from its gateway factory. With
`USE_MOCK_GATEWAY=true` every request shares one in-memory processor, so
a demo checkout created by one request can be completed and reconciled
by the next.
"""

from typing import Optional

from checkout_bridge.config import settings
from checkout_bridge.models.settings import StripeCheckoutSettings
from checkout_bridge.providers.base import ProviderUrls
from checkout_bridge.providers.gateway import StripeApiGateway, StripeGateway
from checkout_bridge.providers.mock_gateway import MockStripeGateway
from checkout_bridge.providers.stripe_checkout import StripeCheckoutProvider

_mock_gateway: Optional[MockStripeGateway] = None


def get_mock_gateway() -> MockStripeGateway:
    global _mock_gateway
    if _mock_gateway is None:
        _mock_gateway = MockStripeGateway()
    return _mock_gateway


def build_gateway(provider_settings: StripeCheckoutSettings) -> StripeGateway:
    if settings.use_mock_gateway:
        return get_mock_gateway()
    return StripeApiGateway(
        provider_settings.secret_key,
        api_version=settings.stripe_api_version,
        max_retries=settings.stripe_max_retries,
    )


def get_provider() -> StripeCheckoutProvider:
    return StripeCheckoutProvider(build_gateway)


def get_provider_settings() -> StripeCheckoutSettings:
    return settings.provider_settings()


def get_provider_urls() -> ProviderUrls:
    return ProviderUrls(
        continue_url=settings.stripe_continue_url,
        cancel_url=settings.stripe_cancel_url,
        error_url=settings.stripe_error_url,
    )
