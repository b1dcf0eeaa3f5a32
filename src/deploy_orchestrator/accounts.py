"""Named account resolution: binds symbolic roles to signer addresses."""

from typing import Dict, Mapping, Optional, Sequence, Union

from eth_utils import is_address, to_checksum_address

from .constants import DEFAULT_NAMED_ACCOUNTS
from .credentials import Signer
from .exceptions import UnresolvedRole

# A role binding is a signer index or an explicit address
RoleBinding = Union[int, str]


def resolve_named_account(
    role: str,
    signers: Sequence[Signer],
    overrides: Optional[Mapping[str, RoleBinding]] = None,
    defaults: Mapping[str, RoleBinding] = DEFAULT_NAMED_ACCOUNTS,
) -> str:
    """
    Resolve a role to a checksummed address.

    Args:
        role: Symbolic role, e.g. "deployer"
        signers: Resolved signers for the active network
        overrides: Role -> index or address, takes precedence over defaults
        defaults: Role -> index or address used when no override exists

    Returns:
        Checksummed address

    Raises:
        UnresolvedRole: If the role is unbound or its index is out of range
    """
    if overrides and role in overrides:
        binding = overrides[role]
    elif role in defaults:
        binding = defaults[role]
    else:
        raise UnresolvedRole(f"Role '{role}' has no default and no override")

    # bool is an int subclass; reject it explicitly
    if isinstance(binding, bool):
        raise UnresolvedRole(f"Role '{role}' is bound to an invalid value {binding!r}")

    if isinstance(binding, int):
        if not 0 <= binding < len(signers):
            raise UnresolvedRole(
                f"Role '{role}' references signer index {binding} but only "
                f"{len(signers)} signer(s) are available"
            )
        return signers[binding].address

    if isinstance(binding, str) and is_address(binding):
        return to_checksum_address(binding)

    raise UnresolvedRole(f"Role '{role}' is bound to an invalid value {binding!r}")


class NamedAccounts:
    """
    Role table with optional per-network bindings.

    Config form (values are indices or addresses)::

        {"deployer": 0, "treasury": {"default": 1, "celo": "0xabc..."}}
    """

    def __init__(self, table: Optional[Mapping[str, object]] = None):
        self._table: Dict[str, object] = dict(DEFAULT_NAMED_ACCOUNTS)
        if table:
            self._table.update(table)

    def overrides_for(self, network: str) -> Dict[str, RoleBinding]:
        """Flatten the table to plain bindings for one network."""
        bindings: Dict[str, RoleBinding] = {}
        for role, value in self._table.items():
            if isinstance(value, Mapping):
                if network in value:
                    bindings[role] = value[network]
                elif "default" in value:
                    bindings[role] = value["default"]
            else:
                bindings[role] = value
        return bindings

    def resolve(self, role: str, signers: Sequence[Signer], network: str) -> str:
        """Resolve a role to an address on a network."""
        return resolve_named_account(role, signers, self.overrides_for(network), defaults={})

    def resolve_signer(self, role: str, signers: Sequence[Signer], network: str) -> Signer:
        """
        Resolve a role to a signer able to send transactions.

        Raises:
            UnresolvedRole: If the role's address has no matching signer
        """
        address = self.resolve(role, signers, network)
        for signer in signers:
            if signer.address == address:
                return signer
        raise UnresolvedRole(
            f"Role '{role}' resolves to {address}, which is not one of the network's signers",
            network=network,
        )
