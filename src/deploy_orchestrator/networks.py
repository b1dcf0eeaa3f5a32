"""Network profile registry for deploy-orchestrator."""

import logging
from typing import Dict, Iterator, List

from .exceptions import ConfigurationError, DuplicateNetwork, UnknownNetwork
from .types import NetworkProfile

logger = logging.getLogger(__name__)


class NetworkRegistry:
    """Holds named network profiles; read-only once frozen."""

    def __init__(self):
        self._profiles: Dict[str, NetworkProfile] = {}
        self._chain_ids: Dict[int, str] = {}
        self._frozen = False

    def register(self, profile: NetworkProfile) -> None:
        """
        Add a network profile.

        Args:
            profile: Network profile to add

        Raises:
            DuplicateNetwork: If the name or chain ID is already registered
            ConfigurationError: If the registry has been frozen
        """
        if self._frozen:
            raise ConfigurationError(
                f"Cannot register network '{profile.name}': registry is frozen"
            )

        if profile.name in self._profiles:
            raise DuplicateNetwork(f"Network '{profile.name}' is already registered")

        if profile.chain_id in self._chain_ids:
            raise DuplicateNetwork(
                f"Chain ID {profile.chain_id} of network '{profile.name}' is already "
                f"used by network '{self._chain_ids[profile.chain_id]}'"
            )

        self._profiles[profile.name] = profile
        self._chain_ids[profile.chain_id] = profile.name
        logger.debug("Registered network %s (chain %d)", profile.name, profile.chain_id)

    def resolve(self, name: str) -> NetworkProfile:
        """
        Look up a network profile by name.

        Args:
            name: Network name

        Returns:
            NetworkProfile

        Raises:
            UnknownNetwork: If no profile has this name
        """
        try:
            return self._profiles[name]
        except KeyError:
            known = ", ".join(sorted(self._profiles)) or "none"
            raise UnknownNetwork(
                f"Network '{name}' is not configured (known networks: {known})"
            ) from None

    def freeze(self) -> "NetworkRegistry":
        """Make the registry read-only. Returns self for chaining."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> List[str]:
        return list(self._profiles)

    def __contains__(self, name: object) -> bool:
        return name in self._profiles

    def __iter__(self) -> Iterator[NetworkProfile]:
        return iter(self._profiles.values())

    def __len__(self) -> int:
        return len(self._profiles)
