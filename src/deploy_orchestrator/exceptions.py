"""Custom exception classes for deploy-orchestrator."""

from typing import Optional


class OrchestratorError(Exception):
    """Base exception for deployment orchestration errors."""

    def __init__(
        self,
        message: str = "",
        *,
        network: Optional[str] = None,
        unit: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.network = network
        self.unit = unit

    def add_context(
        self, network: Optional[str] = None, unit: Optional[str] = None
    ) -> "OrchestratorError":
        """Fill in network and unit if not already known. Returns self."""
        if self.network is None:
            self.network = network
        if self.unit is None:
            self.unit = unit
        return self

    def __str__(self) -> str:
        # Prefix context so every error names where it happened
        context = []
        if self.network is not None:
            context.append(f"network '{self.network}'")
        if self.unit is not None:
            context.append(f"unit '{self.unit}'")
        if context and self.message:
            return f"[{', '.join(context)}] {self.message}"
        return self.message


# Configuration errors: fatal, reported before any network I/O


class ConfigurationError(OrchestratorError, ValueError):
    """Raised when network, compiler or artifact configuration is invalid."""

    pass


class UnknownNetwork(ConfigurationError):
    """Raised when a network name is not in the registry."""

    pass


class DuplicateNetwork(ConfigurationError):
    """Raised when a network name or chain ID is registered twice."""

    pass


class NoMatchingCompilerProfile(ConfigurationError):
    """Raised when no compiler profile matches an artifact's compiler version."""

    pass


class AmbiguousCompilerProfile(ConfigurationError):
    """Raised when more than one compiler profile declares the same version."""

    pass


class ChainIdMismatch(ConfigurationError):
    """Raised when a node or record store reports a different chain ID than the profile."""

    pass


class ArtifactNotFound(ConfigurationError, LookupError):
    """Raised when a deployment unit references an unknown contract artifact."""

    pass


class InvalidDeploymentRecord(ConfigurationError):
    """Raised when a persisted deployment record is missing required fields."""

    pass


class InvalidUnitName(ConfigurationError):
    """Raised when a unit name cannot be used as a record file name."""

    pass


# Credential errors: never carry secret material


class CredentialError(OrchestratorError):
    """Raised when a credential source cannot produce signers."""

    pass


class MissingCredential(CredentialError, LookupError):
    """Raised when a referenced credential is not set in the environment."""

    pass


# Planning errors: fatal, reported before any transaction is sent


class PlanningError(OrchestratorError, ValueError):
    """Raised when a deployment plan cannot be built."""

    pass


class CyclicDependency(PlanningError):
    """Raised when unit dependencies contain a cycle."""

    pass


class UnresolvedDependency(PlanningError):
    """Raised when a dependency tag matches no deployment unit."""

    pass


class UnresolvedRole(PlanningError):
    """Raised when a named account role cannot be bound to a signer."""

    pass


class ConstructorArgsMismatch(PlanningError):
    """Raised when a unit declares a different number of args than its constructor takes."""

    pass


# Execution errors: abort the run, prior records are kept


class ExecutionError(OrchestratorError, RuntimeError):
    """Raised when a deployment transaction cannot be completed."""

    pass


class TransactionFailed(ExecutionError):
    """Raised when a transaction is rejected by the node (e.g. insufficient funds)."""

    pass


class TransactionReverted(ExecutionError):
    """Raised when a contract-creation transaction is mined with a failed status."""

    pass


class GasEstimationFailed(ExecutionError):
    """Raised when the network gas price cannot be obtained after a retry."""

    pass


class NetworkTimeout(ExecutionError):
    """Raised when the node does not answer or a receipt does not arrive in time."""

    def __init__(
        self,
        message: str = "",
        *,
        network: Optional[str] = None,
        unit: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ):
        super().__init__(message, network=network, unit=unit)
        # Set when the transaction was sent and may still be mined
        self.tx_hash = tx_hash


class VerificationError(OrchestratorError):
    """Raised inside the verification dispatcher; reported as a warning only."""

    pass
