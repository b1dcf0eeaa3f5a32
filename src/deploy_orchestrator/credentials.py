"""Credential resolution: turns credential sources into signers."""

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from .exceptions import CredentialError, MissingCredential
from .types import CredentialSource, EnvRef, ExplicitKey, Mnemonic

logger = logging.getLogger(__name__)


class Signer:
    """An address able to sign transactions. The key never appears in repr."""

    def __init__(self, account: LocalAccount):
        self._account = account
        self.address: str = to_checksum_address(account.address)

    def sign_transaction(self, tx: Dict[str, Any]):
        """Sign a transaction dict; returns the eth-account SignedTransaction."""
        return self._account.sign_transaction(tx)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Signer) and other.address == self.address

    def __hash__(self) -> int:
        return hash(self.address)

    def __repr__(self) -> str:
        return f"Signer({self.address})"


class CredentialResolver:
    """Resolves credential sources against an environment mapping."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            environ: Mapping to read EnvRef values from (defaults to os.environ,
                     read at resolution time)
        """
        self._environ = environ

    def resolve(self, source: CredentialSource) -> List[Signer]:
        """
        Produce the ordered signers for a credential source.

        Args:
            source: ExplicitKey, Mnemonic or EnvRef

        Returns:
            List of signers (one for keys, ``count`` for mnemonics)

        Raises:
            MissingCredential: If a referenced environment variable is unset
            CredentialError: If the material is not a valid key or mnemonic
        """
        match source:
            case ExplicitKey(private_key=key):
                signers = [self._from_key(key, source.kind)]
            case EnvRef():
                signers = [self._from_key(self._read_env(source), source.kind)]
            case Mnemonic():
                signers = self._from_mnemonic(source)
            case _:
                raise CredentialError(
                    f"Unsupported credential source type {type(source).__name__}"
                )

        logger.debug(
            "Resolved %d signer(s) from %s source: %s",
            len(signers),
            source.kind,
            ", ".join(s.address for s in signers),
        )
        return signers

    def _read_env(self, ref: EnvRef) -> str:
        environ = os.environ if self._environ is None else self._environ
        value = environ.get(ref.name, "").strip()
        if not value:
            raise MissingCredential(
                f"Credential environment variable '{ref.name}' is not set"
            )
        return value

    def _from_key(self, key: str, kind: str) -> Signer:
        try:
            account = Account.from_key(key)
        except Exception:
            # Do not chain: the original exception may echo the key
            raise CredentialError(f"Invalid private key from {kind} source") from None
        return Signer(account)

    def _from_mnemonic(self, source: Mnemonic) -> List[Signer]:
        phrase = source.phrase
        if isinstance(phrase, EnvRef):
            phrase = self._read_env(phrase)

        Account.enable_unaudited_hdwallet_features()
        base_path = source.derivation_path.rstrip("/")

        signers = []
        for index in range(source.count):
            try:
                account = Account.from_mnemonic(phrase, account_path=f"{base_path}/{index}")
            except Exception:
                raise CredentialError(
                    f"Invalid mnemonic or derivation path from {source.kind} source"
                ) from None
            signers.append(Signer(account))
        return signers
