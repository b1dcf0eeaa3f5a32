"""Per-network deployment record store for deploy-orchestrator."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from .exceptions import ChainIdMismatch, InvalidDeploymentRecord
from .parsers import parse_deployment_record, record_to_dict
from .paths import get_pending_file, get_record_file, get_record_paths
from .types import DeploymentRecord, PendingTransaction

logger = logging.getLogger(__name__)


class DeploymentRecordStore:
    """
    JSON record store for one network.

    Layout (hardhat-deploy style)::

        deployments/<network>/.chainId
        deployments/<network>/<UnitName>.json
        deployments/<network>/.pendingTransactions

    Records are read once when the store is opened and written through on
    every put(), so a run interrupted at any point keeps all prior records.
    Transactions that were sent but never confirmed are kept in
    .pendingTransactions until a later run finds their receipt.
    """

    def __init__(
        self,
        network: str,
        chain_id: int,
        deployments_root: Optional[Union[Path, str]] = None,
    ):
        """
        Open (or create) the record store for a network.

        Args:
            network: Network name
            chain_id: Chain ID the records belong to
            deployments_root: Records directory (defaults to ./deployments)

        Raises:
            ChainIdMismatch: If the directory holds records for another chain
            InvalidDeploymentRecord: If a record file is malformed
        """
        self.network = network
        self.chain_id = chain_id
        self.network_dir, self._chain_id_path = get_record_paths(network, deployments_root)

        self._check_chain_id()
        self._records: Dict[str, DeploymentRecord] = self._load()
        self._pending_path = get_pending_file(self.network_dir)
        self._pending: Dict[str, PendingTransaction] = self._load_pending()

    def _check_chain_id(self) -> None:
        if not self._chain_id_path.exists():
            return

        stored = self._chain_id_path.read_text().strip()
        if stored and stored != str(self.chain_id):
            raise ChainIdMismatch(
                f"Records in {self.network_dir} belong to chain {stored}, "
                f"expected {self.chain_id}",
                network=self.network,
            )

    def _load(self) -> Dict[str, DeploymentRecord]:
        records: Dict[str, DeploymentRecord] = {}
        if not self.network_dir.exists():
            return records

        for record_file in sorted(self.network_dir.glob("*.json")):
            # Leftover temp files from an interrupted write
            if record_file.name.startswith("."):
                continue
            try:
                record = parse_deployment_record(record_file)
            except json.JSONDecodeError as e:
                raise InvalidDeploymentRecord(
                    f"Deployment record {record_file} is not valid JSON: {e}",
                    network=self.network,
                ) from e
            records[record.unit_name] = record

        logger.debug("Loaded %d record(s) for network %s", len(records), self.network)
        return records

    def get(self, unit_name: str) -> Optional[DeploymentRecord]:
        """Return the record for a unit, or None if it was never deployed."""
        return self._records.get(unit_name)

    def put(self, record: DeploymentRecord) -> None:
        """
        Write or overwrite a unit's record.

        The file is replaced atomically. Clears any pending transaction of the unit.
        """
        self._write_json(get_record_file(self.network_dir, record.unit_name), record_to_dict(record))
        self._records[record.unit_name] = record

        if record.unit_name in self._pending:
            self.clear_pending(record.unit_name)

    def get_pending(self, unit_name: str) -> Optional[PendingTransaction]:
        """Return the unconfirmed transaction sent for a unit, if any."""
        return self._pending.get(unit_name)

    def put_pending(self, pending: PendingTransaction) -> None:
        """Remember a sent transaction whose receipt did not arrive."""
        self._pending[pending.unit_name] = pending
        self._write_pending()

    def clear_pending(self, unit_name: str) -> None:
        if self._pending.pop(unit_name, None) is not None:
            self._write_pending()

    def _load_pending(self) -> Dict[str, PendingTransaction]:
        if not self._pending_path.exists():
            return {}

        try:
            with open(self._pending_path) as f:
                data = json.load(f)
        except ValueError as e:
            raise InvalidDeploymentRecord(
                f"Pending transactions file {self._pending_path} is not valid JSON: {e}",
                network=self.network,
            ) from e

        pending: Dict[str, PendingTransaction] = {}
        for name, entry in (data.items() if isinstance(data, dict) else []):
            # hardhat-deploy keys its own entries by transaction hash
            if not isinstance(entry, dict) or "transactionHash" not in entry:
                logger.warning(
                    "Ignoring unrecognized pending transaction entry %s in %s",
                    name,
                    self._pending_path,
                )
                continue
            pending[name] = PendingTransaction(
                unit_name=name,
                tx_hash=entry["transactionHash"],
                constructor_args_hash=entry.get("constructorArgsHash", ""),
                bytecode_hash=entry.get("bytecodeHash", ""),
            )
        return pending

    def _write_pending(self) -> None:
        if not self._pending:
            if self._pending_path.exists():
                self._pending_path.unlink()
            return

        self._write_json(
            self._pending_path,
            {
                name: {
                    "transactionHash": p.tx_hash,
                    "constructorArgsHash": p.constructor_args_hash,
                    "bytecodeHash": p.bytecode_hash,
                }
                for name, p in sorted(self._pending.items())
            },
        )

    def _write_json(self, target: Path, data) -> None:
        # Creates the network directory and .chainId marker on first write
        self.network_dir.mkdir(parents=True, exist_ok=True)
        if not self._chain_id_path.exists():
            self._chain_id_path.write_text(str(self.chain_id))

        fd, tmp_path = tempfile.mkstemp(dir=self.network_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, target)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def all(self) -> Dict[str, DeploymentRecord]:
        return dict(self._records)

    def __contains__(self, unit_name: object) -> bool:
        return unit_name in self._records

    def __len__(self) -> int:
        return len(self._records)
