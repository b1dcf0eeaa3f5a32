"""Network configuration loading for deploy-orchestrator."""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .accounts import NamedAccounts
from .compilers import CompilerProfileSet
from .constants import DEFAULT_COMPILERS, DEFAULT_DERIVATION_PATH, KNOWN_EXPLORERS
from .exceptions import ConfigurationError, MissingCredential
from .networks import NetworkRegistry
from .types import (
    CompilerProfile,
    CredentialSource,
    EnvRef,
    ExplorerConfig,
    GasPricing,
    Mnemonic,
    NetworkProfile,
)

_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass
class OrchestratorConfig:
    """Everything loaded from a network configuration document."""

    registry: NetworkRegistry
    named_accounts: NamedAccounts
    compilers: CompilerProfileSet
    default_network: Optional[str] = None


def expand_env(value: str, environ: Mapping[str, str], network: str) -> str:
    """
    Expand ${VAR} placeholders from the environment.

    Raises:
        MissingCredential: If a referenced variable is unset (URLs often embed API keys)
    """

    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in environ:
            raise MissingCredential(
                f"Environment variable '{name}' referenced in config is not set",
                network=network,
            )
        return environ[name]

    return _PLACEHOLDER.sub(substitute, value)


def parse_gas_pricing(raw: Any, network: str) -> GasPricing:
    """
    Parse a gas price setting.

    Accepted forms: {"mode": "auto"}, {"mode": "fixed", "value": <wei>}.
    The mode is always explicit; a bare number or "auto" string is rejected.
    """
    if raw is None:
        return GasPricing.auto()
    if not isinstance(raw, Mapping) or "mode" not in raw:
        raise ConfigurationError(
            "gas_price must be an object with an explicit 'mode' ('fixed' or 'auto')",
            network=network,
        )

    mode = raw["mode"]
    if mode == "auto":
        return GasPricing.auto()
    if mode == "fixed":
        try:
            return GasPricing.fixed(int(raw.get("value", 0)))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid fixed gas_price: {e}", network=network) from e

    raise ConfigurationError(f"Unknown gas_price mode '{mode}'", network=network)


def parse_credential_source(raw: Any, network: str) -> CredentialSource:
    """
    Parse a credential source. Only environment references are accepted.

    Forms:
        {"type": "env", "name": "PKEY"}
        {"type": "mnemonic", "phrase_env": "MNEMONIC", "path": "m/44'/60'/0'/0", "count": 1}

    Raises:
        ConfigurationError: On unknown forms or literal secret material
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError(
            "accounts must be an object; literal secrets are not allowed in config",
            network=network,
        )

    if "private_key" in raw or "key" in raw or "mnemonic" in raw or "phrase" in raw:
        raise ConfigurationError(
            "literal secrets are not allowed in config; reference an environment variable",
            network=network,
        )

    match raw.get("type"):
        case "env":
            if not raw.get("name"):
                raise ConfigurationError("env accounts need a 'name'", network=network)
            return EnvRef(raw["name"])
        case "mnemonic":
            if not raw.get("phrase_env"):
                raise ConfigurationError("mnemonic accounts need 'phrase_env'", network=network)
            try:
                return Mnemonic(
                    phrase=EnvRef(raw["phrase_env"]),
                    derivation_path=raw.get("path", DEFAULT_DERIVATION_PATH),
                    count=int(raw.get("count", 1)),
                )
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid mnemonic accounts: {e}", network=network) from e
        case other:
            raise ConfigurationError(f"Unknown accounts type {other!r}", network=network)


def parse_explorer(raw: Any, chain_id: int, network: str) -> Optional[ExplorerConfig]:
    """
    Parse explorer settings; "known" uses the built-in endpoint for the chain ID.
    """
    if raw is None or raw is False:
        return None

    if raw == "known":
        known = KNOWN_EXPLORERS.get(chain_id)
        if known is None:
            raise ConfigurationError(
                f"No known explorer for chain {chain_id}", network=network
            )
        return ExplorerConfig(**known)

    if not isinstance(raw, Mapping) or "api_url" not in raw or "api_key_env" not in raw:
        raise ConfigurationError(
            "explorer needs 'api_url' and 'api_key_env'", network=network
        )
    if "api_key" in raw:
        raise ConfigurationError(
            "literal explorer API keys are not allowed; use 'api_key_env'", network=network
        )

    return ExplorerConfig(
        api_url=raw["api_url"],
        api_key_env=raw["api_key_env"],
        browser_url=raw.get("browser_url"),
    )


def parse_network(name: str, raw: Mapping[str, Any]) -> NetworkProfile:
    """Build a NetworkProfile from its config entry."""
    for required in ("url", "chain_id", "accounts"):
        if required not in raw:
            raise ConfigurationError(f"Missing required field '{required}'", network=name)

    chain_id = raw["chain_id"]
    if isinstance(chain_id, bool) or not isinstance(chain_id, int):
        raise ConfigurationError(f"chain_id must be an integer, got {chain_id!r}", network=name)

    # ${VAR} placeholders stay unexpanded until a client connects
    rpc_url = raw["url"]
    gas_pricing = parse_gas_pricing(raw.get("gas_price"), name)
    credential_source = parse_credential_source(raw["accounts"], name)
    explorer = parse_explorer(raw.get("explorer"), chain_id, name)

    try:
        return NetworkProfile(
            name=name,
            rpc_url=rpc_url,
            chain_id=chain_id,
            gas_pricing=gas_pricing,
            credential_source=credential_source,
            explorer=explorer,
            gas_limit=raw.get("gas_limit"),
            confirmations=raw.get("confirmations", 1),
            timeout=raw.get("timeout", 120),
        )
    except ValueError as e:
        raise ConfigurationError(str(e), network=name) from e


def parse_compilers(raw: Optional[List[Mapping[str, Any]]]) -> CompilerProfileSet:
    """Build the compiler profile set, falling back to the defaults."""
    profiles = []
    for entry in raw if raw is not None else DEFAULT_COMPILERS:
        if "version" not in entry:
            raise ConfigurationError(f"Compiler profile without a version: {entry!r}")
        optimizer = entry.get("optimizer", {})
        profiles.append(
            CompilerProfile(
                version=entry["version"],
                optimizer_enabled=bool(optimizer.get("enabled", True)),
                optimizer_runs=int(optimizer.get("runs", 200)),
            )
        )
    return CompilerProfileSet(profiles)


def build_config(data: Mapping[str, Any]) -> OrchestratorConfig:
    """
    Build the orchestrator configuration from a parsed config document.

    Args:
        data: Parsed config JSON

    Returns:
        OrchestratorConfig with a frozen registry

    Raises:
        ConfigurationError: On any invalid entry
    """
    registry = NetworkRegistry()
    networks: Dict[str, Any] = data.get("networks", {})
    for name, raw in networks.items():
        registry.register(parse_network(name, raw))
    registry.freeze()

    default_network = data.get("default_network")
    if default_network is not None and default_network not in registry:
        raise ConfigurationError(
            f"default_network '{default_network}' is not a configured network"
        )

    return OrchestratorConfig(
        registry=registry,
        named_accounts=NamedAccounts(data.get("named_accounts")),
        compilers=parse_compilers(data.get("compilers")),
        default_network=default_network,
    )


def load_config(config_path: Union[Path, str]) -> OrchestratorConfig:
    """
    Load the orchestrator configuration from a JSON file.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    path = Path(config_path)
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found at {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}") from e

    return build_config(data)
