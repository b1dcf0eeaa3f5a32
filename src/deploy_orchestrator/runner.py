"""Deployment script runner: plans and executes units idempotently on one network."""

import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Union

from .accounts import NamedAccounts
from .chain import ChainClient, DeployReceipt, Web3ChainClient
from .compilers import CompilerProfileSet
from .constants import GAS_PRICE_ATTEMPTS
from .credentials import CredentialResolver, Signer
from .exceptions import (
    ArtifactNotFound,
    ChainIdMismatch,
    ConstructorArgsMismatch,
    ExecutionError,
    GasEstimationFailed,
    NetworkTimeout,
    OrchestratorError,
    TransactionReverted,
)
from .hashing import bytecode_hash, canonical_args, constructor_args_hash
from .networks import NetworkRegistry
from .planning import plan_deployment
from .records import DeploymentRecordStore
from .types import (
    Artifact,
    CompilerProfile,
    DeploymentEvent,
    DeploymentRecord,
    DeploymentUnit,
    GasPricingMode,
    NetworkProfile,
    PendingTransaction,
    RunResult,
    RunState,
    UnitAction,
    UnitAddress,
    UnitOutcome,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[DeploymentEvent], None]


@dataclass(frozen=True)
class PlannedUnit:
    """A unit with everything it needs bound before execution starts."""

    unit: DeploymentUnit
    artifact: Artifact
    signer: Signer
    compiler: Optional[CompilerProfile] = None


class DeploymentRunner:
    """
    Executes deployment units against one network.

    The runner owns the network's record store for the duration of a run and
    is its only writer. Units run strictly one after another; each
    transaction is awaited before the next unit starts.
    """

    def __init__(
        self,
        profile: NetworkProfile,
        units: Sequence[DeploymentUnit],
        artifacts: Mapping[str, Artifact],
        signers: Sequence[Signer],
        chain: ChainClient,
        store: DeploymentRecordStore,
        named_accounts: Optional[NamedAccounts] = None,
        compilers: Optional[CompilerProfileSet] = None,
        verifier=None,
        listeners: Iterable[EventListener] = (),
    ):
        """
        Args:
            profile: Active network
            units: Declared deployment units
            artifacts: Contract name -> compiled artifact
            signers: Signers resolved for this network (borrowed for the run)
            chain: RPC client for this network
            store: Record store for this network
            named_accounts: Role table (defaults to deployer -> signer 0)
            compilers: If given, every planned artifact must match a profile
            verifier: Optional VerificationDispatcher run for newly deployed units
            listeners: Callables receiving a DeploymentEvent per deployment
        """
        if store.network != profile.name:
            raise ChainIdMismatch(
                f"Record store belongs to network '{store.network}'", network=profile.name
            )

        self.profile = profile
        self.units = list(units)
        self.artifacts = dict(artifacts)
        self.signers = list(signers)
        self.chain = chain
        self.store = store
        self.named_accounts = named_accounts or NamedAccounts()
        self.compilers = compilers
        self.verifier = verifier
        self.listeners: List[EventListener] = list(listeners)

        self._state = RunState.PENDING
        self._cancelled = threading.Event()

    @property
    def state(self) -> RunState:
        return self._state

    def cancel(self) -> None:
        """Request a stop at the next unit boundary. Safe to call from another thread."""
        self._cancelled.set()

    def plan(self, tags: Optional[Iterable[str]] = None) -> List[PlannedUnit]:
        """
        Order units and bind their artifacts, compiler profiles and signers.

        Raises:
            PlanningError: On cycles, unresolved dependencies or roles, or an
                argument count the constructor does not take
            ConfigurationError: On missing artifacts or compiler mismatches
        """
        network = self.profile.name
        ordered = plan_deployment(self.units, tags=tags, network=network)

        planned = []
        for unit in ordered:
            artifact = self.artifacts.get(unit.contract_name)
            if artifact is None:
                raise ArtifactNotFound(
                    f"No artifact for contract '{unit.contract_name}'",
                    network=network,
                    unit=unit.name,
                )

            expected = len(artifact.constructor_inputs())
            if len(unit.constructor_args) != expected:
                raise ConstructorArgsMismatch(
                    f"Contract '{unit.contract_name}' takes {expected} constructor "
                    f"argument(s), {len(unit.constructor_args)} declared",
                    network=network,
                    unit=unit.name,
                )

            compiler = None
            if self.compilers is not None:
                try:
                    compiler = self.compilers.match(artifact)
                except OrchestratorError as e:
                    raise e.add_context(network, unit.name)

            try:
                signer = self.named_accounts.resolve_signer(unit.from_role, self.signers, network)
            except OrchestratorError as e:
                raise e.add_context(network, unit.name)

            planned.append(PlannedUnit(unit, artifact, signer, compiler))

        return planned

    def run(self, tags: Optional[Iterable[str]] = None, force: bool = False) -> RunResult:
        """
        Plan and execute a deployment run.

        Configuration and planning errors are raised before anything is sent.
        Execution errors end the run in the FAILED state; records written
        before the failure are kept so a re-run resumes where this one stopped.

        Args:
            tags: Restrict the run to units with these tags (plus dependencies)
            force: Redeploy units even when their record is unchanged

        Returns:
            RunResult
        """
        result = RunResult(network=self.profile.name)

        self._state = RunState.PLANNING
        try:
            plan = self.plan(tags)
        except OrchestratorError:
            self._state = result.state = RunState.FAILED
            raise

        try:
            self._check_chain_id()
        except ExecutionError as e:
            # Node unreachable: nothing was sent, the run fails like any execution error
            logger.error("Cannot query chain ID on %s: %s", self.profile.name, e)
            self._state = result.state = RunState.FAILED
            result.error = e.add_context(self.profile.name)
            self._mark_not_attempted(result, plan)
            return result
        except OrchestratorError:
            self._state = result.state = RunState.FAILED
            raise

        logger.info(
            "Deploying %d unit(s) to %s (chain %d)",
            len(plan),
            self.profile.name,
            self.profile.chain_id,
        )

        self._state = result.state = RunState.EXECUTING
        deployed: List[PlannedUnit] = []

        for position, planned in enumerate(plan):
            if self._cancelled.is_set():
                logger.warning(
                    "Run on %s cancelled before unit %s", self.profile.name, planned.unit.name
                )
                self._state = result.state = RunState.CANCELLED
                self._mark_not_attempted(result, plan[position:])
                break

            try:
                outcome = self._execute(planned, force, result)
            except ExecutionError as e:
                e.add_context(self.profile.name, planned.unit.name)
                logger.error(
                    "Unit %s failed on %s: %s", planned.unit.name, self.profile.name, e
                )
                result.outcomes.append(UnitOutcome(planned.unit.name, UnitAction.FAILED, error=e))
                self._mark_not_attempted(result, plan[position + 1:])
                self._state = result.state = RunState.FAILED
                result.error = e
                break

            result.outcomes.append(outcome)
            if outcome.action is UnitAction.DEPLOYED:
                deployed.append(planned)
        else:
            self._state = result.state = RunState.COMPLETED

        if self.verifier is not None:
            for planned in deployed:
                record = self.store.get(planned.unit.name)
                result.verifications.append(
                    self.verifier.verify(record, self.profile, planned.artifact, planned.compiler)
                )

        return result

    def _check_chain_id(self) -> None:
        actual = self.chain.chain_id()
        if actual != self.profile.chain_id:
            raise ChainIdMismatch(
                f"Node reports chain {actual}, profile expects {self.profile.chain_id}",
                network=self.profile.name,
            )

    @staticmethod
    def _mark_not_attempted(result: RunResult, remaining: Sequence[PlannedUnit]) -> None:
        result.outcomes.extend(
            UnitOutcome(p.unit.name, UnitAction.NOT_ATTEMPTED) for p in remaining
        )

    def _resolve_args(self, unit: DeploymentUnit) -> List[Any]:
        def resolve(value: Any) -> Any:
            if isinstance(value, UnitAddress):
                record = self.store.get(value.unit_name)
                if record is None:
                    raise ExecutionError(
                        f"Referenced unit '{value.unit_name}' has no deployment record",
                        network=self.profile.name,
                        unit=unit.name,
                    )
                return record.address
            if isinstance(value, (list, tuple)):
                return [resolve(v) for v in value]
            return value

        return [resolve(arg) for arg in unit.constructor_args]

    def _gas_price(self) -> int:
        pricing = self.profile.gas_pricing
        if pricing.mode is GasPricingMode.FIXED:
            return pricing.value

        last_error: Optional[Exception] = None
        for attempt in range(1, GAS_PRICE_ATTEMPTS + 1):
            try:
                return self.chain.gas_price()
            except Exception as e:  # any RPC failure counts as transient once
                last_error = e
                logger.warning(
                    "Gas price query failed on %s (attempt %d/%d): %s",
                    self.profile.name,
                    attempt,
                    GAS_PRICE_ATTEMPTS,
                    e,
                )

        raise GasEstimationFailed(
            f"Could not obtain gas price after {GAS_PRICE_ATTEMPTS} attempts: {last_error}",
            network=self.profile.name,
        ) from last_error

    def _execute(self, planned: PlannedUnit, force: bool, result: RunResult) -> UnitOutcome:
        unit = planned.unit
        args = self._resolve_args(unit)
        args_hash = constructor_args_hash(args)
        code_hash = bytecode_hash(planned.artifact.bytecode)

        existing = self.store.get(unit.name)
        if existing is not None and existing.matches(args_hash, code_hash) and not force:
            logger.info("Reusing %s at %s", unit.name, existing.address)
            return UnitOutcome(unit.name, UnitAction.SKIPPED, record=existing)

        receipt = None
        pending = self.store.get_pending(unit.name)
        if pending is not None:
            receipt = self._recover_pending(pending, args_hash, code_hash)

        if receipt is None:
            receipt = self._send(planned, args, args_hash, code_hash)

        record = DeploymentRecord(
            unit_name=unit.name,
            address=receipt.address,
            constructor_args_hash=args_hash,
            bytecode_hash=code_hash,
            tx_hash=receipt.tx_hash,
            contract=unit.contract_name,
            args=canonical_args(args),
            block_number=receipt.block_number,
            num_deployments=(existing.num_deployments + 1) if existing else 1,
        )
        try:
            self.store.put(record)
        except OSError as e:
            raise ExecutionError(
                f"Deployed at {record.address} (tx {record.tx_hash}) "
                f"but the record could not be written: {e}"
            ) from e
        logger.info("Deployed %s at %s (tx %s)", unit.name, record.address, record.tx_hash)

        event = DeploymentEvent(unit.name, record.address, record.tx_hash, self.profile.name)
        result.events.append(event)
        for listener in self.listeners:
            listener(event)

        return UnitOutcome(unit.name, UnitAction.DEPLOYED, record=record)

    def _send(
        self, planned: PlannedUnit, args: List[Any], args_hash: str, code_hash: str
    ) -> DeployReceipt:
        unit = planned.unit
        gas_price = self._gas_price()
        logger.info(
            "Deploying %s (%s) from %s on %s",
            unit.name,
            unit.contract_name,
            planned.signer.address,
            self.profile.name,
        )

        # No cancellation check past this point: a sent transaction is always recorded
        try:
            return self.chain.deploy_contract(
                planned.signer,
                planned.artifact.abi,
                planned.artifact.bytecode,
                args,
                gas_price,
                self.profile.gas_limit,
            )
        except NetworkTimeout as e:
            if e.tx_hash is not None:
                self.store.put_pending(
                    PendingTransaction(unit.name, e.tx_hash, args_hash, code_hash)
                )
                logger.warning(
                    "Transaction %s for %s is unconfirmed; the next run will look it up",
                    e.tx_hash,
                    unit.name,
                )
            raise

    def _recover_pending(
        self, pending: PendingTransaction, args_hash: str, code_hash: str
    ) -> Optional[DeployReceipt]:
        """
        Resolve a transaction an earlier run sent but never saw confirmed.

        Returns:
            Its receipt if it deployed the current unit, or None if a new
            transaction should be sent

        Raises:
            NetworkTimeout: If it is still unmined; sending again would
                deploy the unit twice
        """
        try:
            receipt = self.chain.deploy_receipt(pending.tx_hash)
        except TransactionReverted:
            logger.warning(
                "Earlier transaction %s for %s reverted, deploying again",
                pending.tx_hash,
                pending.unit_name,
            )
            self.store.clear_pending(pending.unit_name)
            return None

        if not pending.matches(args_hash, code_hash):
            if receipt is not None:
                logger.warning(
                    "Earlier transaction %s deployed an outdated %s at %s",
                    pending.tx_hash,
                    pending.unit_name,
                    receipt.address,
                )
            else:
                logger.warning(
                    "Abandoning unconfirmed transaction %s for changed unit %s",
                    pending.tx_hash,
                    pending.unit_name,
                )
            self.store.clear_pending(pending.unit_name)
            return None

        if receipt is None:
            raise NetworkTimeout(
                f"Transaction {pending.tx_hash} from an earlier run is not mined yet",
                tx_hash=pending.tx_hash,
            )

        logger.info("Earlier transaction %s for %s was mined", pending.tx_hash, pending.unit_name)
        return receipt


def run_deployment(
    network: str,
    registry: NetworkRegistry,
    units: Sequence[DeploymentUnit],
    artifacts: Mapping[str, Artifact],
    named_accounts: Optional[NamedAccounts] = None,
    compilers: Optional[CompilerProfileSet] = None,
    deployments_root: Optional[Union[Path, str]] = None,
    tags: Optional[Iterable[str]] = None,
    force: bool = False,
    verifier=None,
    chain: Optional[ChainClient] = None,
    credential_resolver: Optional[CredentialResolver] = None,
    listeners: Iterable[EventListener] = (),
) -> RunResult:
    """
    Resolve a network and run a full deployment on it.

    Args:
        network: Network name in the registry
        registry: Network profiles
        units: Deployment units
        artifacts: Contract name -> artifact
        named_accounts: Role table
        compilers: Compiler profiles; artifacts of planned units must match one
        deployments_root: Records directory (defaults to ./deployments)
        tags: Restrict to these tags
        force: Redeploy unchanged units
        verifier: Optional VerificationDispatcher
        chain: RPC client (defaults to a Web3ChainClient for the profile)
        credential_resolver: Resolver for the network's credential source
        listeners: Deployment event callbacks

    Returns:
        RunResult
    """
    started = time.monotonic()
    profile = registry.resolve(network)

    tags = list(tags) if tags is not None else None

    # Fail on configuration before touching credentials or the network.
    # Only artifacts of planned units need a compiler profile.
    if compilers is not None:
        for unit in plan_deployment(units, tags=tags, network=network):
            artifact = artifacts.get(unit.contract_name)
            if artifact is None:
                continue
            try:
                compilers.match(artifact)
            except OrchestratorError as e:
                raise e.add_context(network, unit.name)

    resolver = credential_resolver or CredentialResolver()
    try:
        signers = resolver.resolve(profile.credential_source)
    except OrchestratorError as e:
        raise e.add_context(network)

    store = DeploymentRecordStore(profile.name, profile.chain_id, deployments_root)
    runner = DeploymentRunner(
        profile,
        units,
        artifacts,
        signers,
        chain or Web3ChainClient(profile),
        store,
        named_accounts=named_accounts,
        compilers=compilers,
        verifier=verifier,
        listeners=listeners,
    )
    result = runner.run(tags=tags, force=force)

    logger.info(
        "Run on %s finished %s in %.1fs: %d deployed, %d reused",
        network,
        result.state.value,
        time.monotonic() - started,
        len(result.deployed),
        len(result.skipped),
    )
    return result
