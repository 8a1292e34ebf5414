"""
Provider registry - name -> adapter lookup, built once at startup and
injected into the payment service.
"""

import logging
from typing import Dict, Iterable, List, Optional

from app.config import Settings
from app.errors import ProviderNotFound
from app.providers.base import PaymentProviderAdapter
from app.providers.mtn import MtnProvider

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Routes provider names (and aliases) to adapter instances."""
    
    def __init__(self):
        self._providers: Dict[str, PaymentProviderAdapter] = {}
    
    def register(
        self,
        provider: PaymentProviderAdapter,
        aliases: Iterable[str] = (),
    ) -> "ProviderRegistry":
        """Register a provider under its own name plus any aliases."""
        aliases = list(aliases)
        for name in [provider.name, *aliases]:
            if name in self._providers and self._providers[name] is not provider:
                raise ValueError(f"Provider name already registered: {name}")
            self._providers[name] = provider
        logger.info(f"Registered provider {provider.name} (aliases: {list(aliases) or 'none'})")
        return self
    
    def get(self, name: str, reference_id: Optional[str] = None) -> PaymentProviderAdapter:
        """Resolve a provider or raise ProviderNotFound."""
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFound(
                f"Payment provider {name} not supported",
                reference_id=reference_id,
                operation="resolve_provider",
            )
        return provider
    
    def names(self) -> List[str]:
        return sorted(self._providers)
    
    def __contains__(self, name: str) -> bool:
        return name in self._providers


def build_provider_registry(settings: Settings) -> ProviderRegistry:
    """Registry with every adapter this deployment ships."""
    registry = ProviderRegistry()
    registry.register(
        MtnProvider(
            success_rate=settings.mtn_success_rate,
            settle_rate=settings.mtn_settle_rate,
        ),
        aliases=["MTN_UGANDA"],
    )
    return registry
