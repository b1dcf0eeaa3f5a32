"""RPC access for deployment transactions, backed by web3."""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import requests
from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    TimeExhausted,
    TransactionNotFound,
    Web3Exception,
)

from .config import expand_env
from .credentials import Signer
from .exceptions import ExecutionError, NetworkTimeout, TransactionFailed, TransactionReverted
from .types import NetworkProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeployReceipt:
    """Mined contract-creation transaction."""

    address: str
    tx_hash: str
    block_number: Optional[int] = None


class ChainClient(Protocol):
    """The RPC operations the runner needs. Implemented by Web3ChainClient and test fakes."""

    def chain_id(self) -> int: ...

    def gas_price(self) -> int: ...

    def deploy_contract(
        self,
        signer: Signer,
        abi: List[Dict[str, Any]],
        bytecode: str,
        args: Sequence[Any],
        gas_price: int,
        gas_limit: Optional[int] = None,
    ) -> DeployReceipt: ...

    def deploy_receipt(self, tx_hash: str) -> Optional[DeployReceipt]: ...


class Web3ChainClient:
    """ChainClient over a web3 HTTP provider for one network."""

    def __init__(
        self,
        profile: NetworkProfile,
        w3: Optional[Web3] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            profile: Network to connect to
            w3: Preconfigured Web3 instance (defaults to an HTTP provider for the profile)
            environ: Environment for ${VAR} placeholders in the RPC URL (defaults to os.environ)

        Raises:
            MissingCredential: If the RPC URL references an unset variable
        """
        self.profile = profile
        if w3 is None:
            rpc_url = expand_env(
                profile.rpc_url, os.environ if environ is None else environ, profile.name
            )
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        self.w3 = w3

    def chain_id(self) -> int:
        try:
            return self.w3.eth.chain_id
        except requests.RequestException as e:
            raise NetworkTimeout(
                f"Cannot reach RPC endpoint: {e}", network=self.profile.name
            ) from e
        except (ValueError, Web3Exception) as e:
            raise ExecutionError(
                f"Cannot query chain ID: {e}", network=self.profile.name
            ) from e

    def gas_price(self) -> int:
        # Errors propagate; the runner owns the retry policy
        return self.w3.eth.gas_price

    def deploy_contract(
        self,
        signer: Signer,
        abi: List[Dict[str, Any]],
        bytecode: str,
        args: Sequence[Any],
        gas_price: int,
        gas_limit: Optional[int] = None,
    ) -> DeployReceipt:
        """
        Build, sign and send a contract-creation transaction, then wait for it.

        Raises:
            TransactionFailed: If the node rejects the transaction
            TransactionReverted: If the transaction is mined with status 0
            NetworkTimeout: If the node is unreachable or the receipt does not arrive
        """
        network = self.profile.name

        try:
            contract = self.w3.eth.contract(abi=abi, bytecode=bytecode)
            constructor = contract.constructor(*args)

            tx_params: Dict[str, Any] = {
                "from": signer.address,
                "nonce": self.w3.eth.get_transaction_count(signer.address, "pending"),
                "gasPrice": gas_price,
                "chainId": self.profile.chain_id,
            }
            if gas_limit is not None:
                tx_params["gas"] = gas_limit
            else:
                # Add 20% headroom over the node's estimate
                tx_params["gas"] = int(constructor.estimate_gas({"from": signer.address}) * 1.2)

            tx = constructor.build_transaction(tx_params)
            signed = signer.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise TransactionReverted(
                f"Constructor reverted during gas estimation: {e}", network=network
            ) from e
        except requests.RequestException as e:
            raise NetworkTimeout(f"RPC request failed: {e}", network=network) from e
        except (ValueError, TypeError, Web3Exception) as e:
            # JSON-RPC errors (insufficient funds, nonce too low) and args the ABI rejects
            raise TransactionFailed(f"Transaction rejected: {e}", network=network) from e

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info("Sent transaction %s on %s, waiting for receipt", tx_hash_hex, network)

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.profile.timeout
            )
        except TimeExhausted as e:
            raise NetworkTimeout(
                f"No receipt for {tx_hash_hex} after {self.profile.timeout}s",
                network=network,
                tx_hash=tx_hash_hex,
            ) from e
        except requests.RequestException as e:
            raise NetworkTimeout(
                f"RPC request failed while waiting for {tx_hash_hex}: {e}",
                network=network,
                tx_hash=tx_hash_hex,
            ) from e

        if self.profile.confirmations > 1 and receipt["status"] == 1:
            self._wait_for_confirmations(receipt["blockNumber"], tx_hash_hex)

        return self._to_deploy_receipt(receipt, tx_hash_hex)

    def deploy_receipt(self, tx_hash: str) -> Optional[DeployReceipt]:
        """
        Look up a contract-creation transaction sent earlier.

        Returns:
            DeployReceipt, or None if the transaction is not mined (or unknown)

        Raises:
            TransactionReverted: If it was mined with status 0
            NetworkTimeout: If the node is unreachable
        """
        try:
            receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except requests.RequestException as e:
            raise NetworkTimeout(
                f"RPC request failed while looking up {tx_hash}: {e}",
                network=self.profile.name,
                tx_hash=tx_hash,
            ) from e

        return self._to_deploy_receipt(receipt, tx_hash)

    def _to_deploy_receipt(self, receipt, tx_hash_hex: str) -> DeployReceipt:
        if receipt["status"] != 1:
            raise TransactionReverted(
                f"Transaction {tx_hash_hex} reverted", network=self.profile.name
            )

        return DeployReceipt(
            address=Web3.to_checksum_address(receipt["contractAddress"]),
            tx_hash=tx_hash_hex,
            block_number=receipt.get("blockNumber"),
        )

    def _wait_for_confirmations(self, block_number: int, tx_hash_hex: str) -> None:
        deadline = time.monotonic() + self.profile.timeout
        target = block_number + self.profile.confirmations - 1
        while self.w3.eth.block_number < target:
            if time.monotonic() > deadline:
                # The contract exists already; the record must still be written
                logger.warning(
                    "%s did not reach %d confirmations on %s within %ss",
                    tx_hash_hex,
                    self.profile.confirmations,
                    self.profile.name,
                    self.profile.timeout,
                )
                return
            time.sleep(1)
