# earnings_engine/services/payment/provider_factory.py
import logging
from typing import Dict, List, Optional

from earnings_engine.core.config import settings
from earnings_engine.core.exceptions import ConfigurationError
from .provider_interface import PaymentProviderInterface
from .providers.stripe_provider import StripeProvider, StripeConfig

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "stripe"


class PaymentProviderFactory:
    """
    Builds and holds the payment provider instances.

    Unlike checkout flows, the earnings engine cannot run without its
    provider, so a missing secret key is a ConfigurationError rather than a
    skipped provider.
    """

    def __init__(self):
        self._providers: Dict[str, PaymentProviderInterface] = {}
        self._initialize_providers()

    def _initialize_providers(self) -> None:
        settings.require_payment_credentials()

        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.warning(
                "STRIPE_WEBHOOK_SECRET not set: webhook deliveries will be rejected"
            )

        config = StripeConfig(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            api_version=settings.STRIPE_API_VERSION,
            max_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
        )
        self._providers["stripe"] = StripeProvider(config)
        logger.info("Stripe payment provider initialized")

    def get_provider(self, code: str = DEFAULT_PROVIDER) -> PaymentProviderInterface:
        """
        Get a payment provider by its code.

        Raises:
            ConfigurationError: If the provider is not available
        """
        provider = self._providers.get(code)
        if not provider:
            raise ConfigurationError(
                code="PROVIDER_UNAVAILABLE",
                message=f"Payment provider '{code}' is not available",
            )
        return provider

    def list_providers(self) -> List[str]:
        return list(self._providers.keys())


# Global factory instance
_factory_instance: Optional[PaymentProviderFactory] = None


def get_payment_provider_factory() -> PaymentProviderFactory:
    """Get or create the global payment provider factory."""
    global _factory_instance
    if _factory_instance is None:
        _factory_instance = PaymentProviderFactory()
    return _factory_instance


def get_payment_provider(code: str = DEFAULT_PROVIDER) -> PaymentProviderInterface:
    """
    Get a payment provider by code.

    Raises:
        ConfigurationError: If credentials are missing or the code is unknown
    """
    return get_payment_provider_factory().get_provider(code)
