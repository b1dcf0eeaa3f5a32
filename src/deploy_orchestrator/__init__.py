"""
deploy-orchestrator: idempotent multi-network smart contract deployments
"""

from importlib.metadata import PackageNotFoundError, version

from .accounts import NamedAccounts, resolve_named_account
from .compilers import CompilerProfileSet
from .config import OrchestratorConfig, build_config, load_config
from .credentials import CredentialResolver, Signer
from .exceptions import (
    AmbiguousCompilerProfile,
    ConfigurationError,
    ConstructorArgsMismatch,
    CredentialError,
    CyclicDependency,
    DuplicateNetwork,
    ExecutionError,
    GasEstimationFailed,
    InvalidUnitName,
    MissingCredential,
    NetworkTimeout,
    NoMatchingCompilerProfile,
    OrchestratorError,
    PlanningError,
    UnknownNetwork,
    UnresolvedDependency,
    UnresolvedRole,
    VerificationError,
)
from .networks import NetworkRegistry
from .planning import plan_deployment
from .records import DeploymentRecordStore
from .runner import DeploymentRunner, run_deployment
from .types import (
    Artifact,
    CompilerProfile,
    DeploymentEvent,
    DeploymentRecord,
    DeploymentUnit,
    EnvRef,
    ExplicitKey,
    ExplorerConfig,
    GasPricing,
    Mnemonic,
    NetworkProfile,
    RunResult,
    RunState,
    UnitAddress,
    VerificationResult,
    VerificationStatus,
)
from .verification import VerificationDispatcher

try:
    __version__ = version("deploy-orchestrator")
except PackageNotFoundError:
    __version__ = None

__all__ = [
    "NetworkRegistry",
    "CredentialResolver",
    "Signer",
    "CompilerProfileSet",
    "NamedAccounts",
    "resolve_named_account",
    "plan_deployment",
    "DeploymentRecordStore",
    "DeploymentRunner",
    "run_deployment",
    "VerificationDispatcher",
    "OrchestratorConfig",
    "build_config",
    "load_config",
    "Artifact",
    "CompilerProfile",
    "DeploymentEvent",
    "DeploymentRecord",
    "DeploymentUnit",
    "EnvRef",
    "ExplicitKey",
    "ExplorerConfig",
    "GasPricing",
    "Mnemonic",
    "NetworkProfile",
    "RunResult",
    "RunState",
    "UnitAddress",
    "VerificationResult",
    "VerificationStatus",
    "OrchestratorError",
    "ConfigurationError",
    "UnknownNetwork",
    "DuplicateNetwork",
    "InvalidUnitName",
    "NoMatchingCompilerProfile",
    "AmbiguousCompilerProfile",
    "CredentialError",
    "MissingCredential",
    "PlanningError",
    "CyclicDependency",
    "UnresolvedDependency",
    "UnresolvedRole",
    "ConstructorArgsMismatch",
    "ExecutionError",
    "GasEstimationFailed",
    "NetworkTimeout",
    "VerificationError",
]
