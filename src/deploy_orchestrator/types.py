"""Data types and dataclasses for deploy-orchestrator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Union

from .constants import DEFAULT_DERIVATION_PATH
from .exceptions import InvalidUnitName


# Gas pricing


class GasPricingMode(Enum):
    """How the gas price of a deployment transaction is chosen."""

    FIXED = "fixed"
    AUTO = "auto"


@dataclass(frozen=True)
class GasPricing:
    """Explicit per-network gas pricing strategy."""

    mode: GasPricingMode
    value: Optional[int] = None  # Wei, only for FIXED

    def __post_init__(self):
        if self.mode is GasPricingMode.FIXED:
            if self.value is None or self.value <= 0:
                raise ValueError("fixed gas pricing requires a positive wei value")
        elif self.value is not None:
            raise ValueError("auto gas pricing does not take a value")

    @classmethod
    def fixed(cls, wei: int) -> "GasPricing":
        return cls(GasPricingMode.FIXED, wei)

    @classmethod
    def auto(cls) -> "GasPricing":
        return cls(GasPricingMode.AUTO)


# Credential sources


@dataclass(frozen=True)
class EnvRef:
    """Reference to an environment variable holding secret material."""

    name: str

    @property
    def kind(self) -> str:
        return "env"


@dataclass(frozen=True)
class ExplicitKey:
    """A private key supplied at runtime (e.g. from a secret store)."""

    private_key: str = field(repr=False)

    @property
    def kind(self) -> str:
        return "explicit-key"


@dataclass(frozen=True)
class Mnemonic:
    """BIP-39 mnemonic with a BIP-32 derivation path prefix."""

    phrase: Union[str, EnvRef] = field(repr=False)
    derivation_path: str = DEFAULT_DERIVATION_PATH
    count: int = 1

    def __post_init__(self):
        if self.count < 1:
            raise ValueError("mnemonic account count must be at least 1")

    @property
    def kind(self) -> str:
        return "mnemonic"


CredentialSource = Union[ExplicitKey, Mnemonic, EnvRef]


# Networks


@dataclass(frozen=True)
class ExplorerConfig:
    """Block explorer verification endpoint for a network."""

    api_url: str
    api_key_env: str  # Name of the env var holding the API key
    browser_url: Optional[str] = None


@dataclass(frozen=True)
class NetworkProfile:
    """A named blockchain endpoint with its gas and credential configuration."""

    name: str
    rpc_url: str
    chain_id: int
    gas_pricing: GasPricing
    credential_source: CredentialSource
    explorer: Optional[ExplorerConfig] = None
    gas_limit: Optional[int] = None
    confirmations: int = 1
    timeout: int = 120  # Seconds to wait for a receipt

    def __post_init__(self):
        if not self.name:
            raise ValueError("network name must not be empty")
        if not self.rpc_url:
            raise ValueError(f"network '{self.name}' has an empty rpc_url")
        if self.chain_id <= 0:
            raise ValueError(f"network '{self.name}' has an invalid chain_id {self.chain_id}")


# Compilation


@dataclass(frozen=True)
class CompilerProfile:
    """A compiler version with its optimizer settings."""

    version: str  # e.g. "0.8.7"
    optimizer_enabled: bool = True
    optimizer_runs: int = 200


@dataclass(frozen=True)
class Artifact:
    """Compiled contract as produced by the external compiler."""

    contract_name: str
    abi: List[Dict[str, Any]] = field(repr=False)
    bytecode: str = field(repr=False)
    compiler_version: str = ""  # As declared, e.g. "0.8.7+commit.e28d00a7"
    source_path: Optional[str] = None

    def constructor_inputs(self) -> List[Dict[str, Any]]:
        """Return the ABI inputs of the constructor (empty if none is declared)."""
        for item in self.abi:
            if item.get("type") == "constructor":
                return list(item.get("inputs", []))
        return []


# Deployment units and records


@dataclass(frozen=True)
class UnitAddress:
    """Constructor argument placeholder for another unit's deployed address."""

    unit_name: str


def check_unit_name(name: str) -> None:
    """
    Reject unit names that cannot be a plain file name in the record store.

    Raises:
        InvalidUnitName: If the name is empty, contains a path separator or
            "..", or starts with "." (reserved for store bookkeeping files)
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidUnitName(f"Invalid unit name {name!r}: must be a non-empty string")
    if "/" in name or "\\" in name or ".." in name or name.startswith("."):
        raise InvalidUnitName(
            f"Invalid unit name {name!r}: must not contain path separators or '..' "
            "or start with '.'",
            unit=name,
        )


@dataclass(frozen=True)
class DeploymentUnit:
    """One contract instance to deploy."""

    name: str
    tags: FrozenSet[str] = frozenset()
    constructor_args: tuple = ()
    from_role: str = "deployer"
    depends_on: FrozenSet[str] = frozenset()
    contract: Optional[str] = None  # Artifact name, defaults to unit name

    def __post_init__(self):
        check_unit_name(self.name)

    @property
    def contract_name(self) -> str:
        return self.contract or self.name

    def referenced_units(self) -> List[str]:
        """Return names of units whose addresses appear in the constructor args."""
        return [
            arg.unit_name
            for arg in _walk_args(self.constructor_args)
            if isinstance(arg, UnitAddress)
        ]


def _walk_args(value: Any):
    if isinstance(value, (list, tuple)):
        for item in value:
            yield from _walk_args(item)
    else:
        yield value


@dataclass
class DeploymentRecord:
    """Persisted result of a successful deployment on one network."""

    # Required fields
    unit_name: str
    address: str  # Checksummed address
    constructor_args_hash: str
    bytecode_hash: str
    tx_hash: str

    # Optional fields
    contract: Optional[str] = None
    args: Optional[List[Any]] = None  # Resolved constructor args
    block_number: Optional[int] = None
    num_deployments: int = 1

    def matches(self, constructor_args_hash: str, bytecode_hash: str) -> bool:
        """True when the record was produced from identical args and bytecode."""
        return (
            self.constructor_args_hash == constructor_args_hash
            and self.bytecode_hash == bytecode_hash
        )


@dataclass(frozen=True)
class PendingTransaction:
    """A creation transaction that was sent but whose receipt never arrived."""

    unit_name: str
    tx_hash: str
    constructor_args_hash: str
    bytecode_hash: str

    def matches(self, constructor_args_hash: str, bytecode_hash: str) -> bool:
        return (
            self.constructor_args_hash == constructor_args_hash
            and self.bytecode_hash == bytecode_hash
        )


@dataclass(frozen=True)
class DeploymentEvent:
    """Observable notification emitted after each successful deployment."""

    unit_name: str
    address: str
    tx_hash: str
    network: str


# Verification


@dataclass(frozen=True)
class VerificationTarget:
    """Everything an explorer needs to verify one deployed contract."""

    address: str
    source_path: str
    contract_name: str
    compiler_version: str
    optimizer_enabled: bool
    optimizer_runs: int
    constructor_args: str  # ABI-encoded, hex without 0x prefix
    explorer_api_url: str
    api_key: str = field(repr=False)


class VerificationStatus(Enum):
    """Outcome of a verification request."""

    VERIFIED = "verified"
    ALREADY_VERIFIED = "already-verified"
    SUBMITTED = "submitted"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class VerificationResult:
    """Result of submitting one deployment for explorer verification."""

    status: VerificationStatus
    unit_name: str
    address: str
    message: Optional[str] = None
    guid: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in (
            VerificationStatus.VERIFIED,
            VerificationStatus.ALREADY_VERIFIED,
            VerificationStatus.SUBMITTED,
            VerificationStatus.SKIPPED,
        )


# Runs


class RunState(Enum):
    """Lifecycle of a deployment run."""

    PENDING = "pending"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class UnitAction(Enum):
    """What happened to a unit during a run."""

    DEPLOYED = "deployed"
    SKIPPED = "skipped"
    FAILED = "failed"
    NOT_ATTEMPTED = "not-attempted"


@dataclass
class UnitOutcome:
    """Per-unit result of a run."""

    unit_name: str
    action: UnitAction
    record: Optional[DeploymentRecord] = None
    error: Optional[Exception] = None


@dataclass
class RunResult:
    """Summary of a deployment run on one network."""

    network: str
    state: RunState = RunState.PENDING
    outcomes: List[UnitOutcome] = field(default_factory=list)
    events: List[DeploymentEvent] = field(default_factory=list)
    verifications: List[VerificationResult] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.state is RunState.COMPLETED

    def units_with(self, action: UnitAction) -> List[str]:
        return [o.unit_name for o in self.outcomes if o.action is action]

    @property
    def deployed(self) -> List[str]:
        return self.units_with(UnitAction.DEPLOYED)

    @property
    def skipped(self) -> List[str]:
        return self.units_with(UnitAction.SKIPPED)
