"""
Capability gate.

Rejects operations the active provider does not offer before the router
touches an adapter, so unsupported calls never reach the network.
"""

from __future__ import annotations

from screenrelay.core.errors import UnsupportedCapabilityError
from screenrelay.models.session import Capability, Provider


class CapabilityGate:
    """Checks an input modality against a provider's fixed capability set."""

    @staticmethod
    def supports(provider: Provider, capability: Capability) -> bool:
        return capability in provider.capabilities

    @staticmethod
    def message(provider: Provider, capability: Capability) -> str:
        return f"{capability.value.capitalize()} input not supported with {provider.display_name} model."

    def check(self, provider: Provider, capability: Capability) -> None:
        """Raise UnsupportedCapabilityError if ``provider`` lacks ``capability``."""
        if not self.supports(provider, capability):
            raise UnsupportedCapabilityError(self.message(provider, capability))
