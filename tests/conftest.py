"""Shared pytest fixtures for deploy-orchestrator tests."""

import json
import logging
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from eth_utils import to_checksum_address

from deploy_orchestrator.chain import DeployReceipt
from deploy_orchestrator.compilers import CompilerProfileSet
from deploy_orchestrator.networks import NetworkRegistry
from deploy_orchestrator.records import DeploymentRecordStore
from deploy_orchestrator.types import (
    Artifact,
    CompilerProfile,
    DeploymentUnit,
    EnvRef,
    GasPricing,
    NetworkProfile,
)

# Public development mnemonic and keys (hardhat / anvil defaults), never funded on real networks
DEV_MNEMONIC = "test test test test test test test test test test test junk"
DEV_KEY_0 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEV_KEY_1 = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
DEV_ADDRESS_0 = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEV_ADDRESS_1 = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
DEV_ADDRESS_2 = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

TOKEN_ABI = [
    {
        "type": "constructor",
        "inputs": [
            {"name": "name", "type": "string"},
            {"name": "symbol", "type": "string"},
            {"name": "publicMint", "type": "bool"},
        ],
    },
    {"type": "function", "name": "name", "inputs": [], "outputs": [{"type": "string"}]},
]

REGISTRY_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "token", "type": "address"}],
    },
]


class FakeChain:
    """In-memory ChainClient: records every creation transaction it is asked to send."""

    def __init__(
        self,
        chain_id: int,
        gas_price: int = 1_000_000_000,
        gas_failures: int = 0,
        address_offset: int = 0x1000,
    ):
        self._chain_id = chain_id
        self._gas_price = gas_price
        self.gas_failures = gas_failures
        self.gas_calls = 0
        self.address_offset = address_offset
        self.sent: List[Dict[str, Any]] = []
        self.failures: Dict[str, Exception] = {}  # bytecode -> error to raise
        self.on_deploy = None  # Optional callback run before returning a receipt
        self.receipts: Dict[str, Any] = {}  # tx hash -> DeployReceipt, None or error to raise
        self.lookups: List[str] = []

    def chain_id(self) -> int:
        return self._chain_id

    def gas_price(self) -> int:
        self.gas_calls += 1
        if self.gas_failures > 0:
            self.gas_failures -= 1
            raise ConnectionError("gas price endpoint unavailable")
        return self._gas_price

    def deploy_contract(self, signer, abi, bytecode, args, gas_price, gas_limit=None):
        if bytecode in self.failures:
            raise self.failures[bytecode]

        number = len(self.sent) + 1
        self.sent.append(
            {
                "from": signer.address,
                "bytecode": bytecode,
                "args": list(args),
                "gas_price": gas_price,
                "gas_limit": gas_limit,
            }
        )
        receipt = DeployReceipt(
            address=to_checksum_address(f"0x{self.address_offset + number:040x}"),
            tx_hash=f"0x{self.address_offset + number:064x}",
            block_number=1000 + number,
        )
        if self.on_deploy is not None:
            self.on_deploy(receipt)
        return receipt

    def deploy_receipt(self, tx_hash):
        self.lookups.append(tx_hash)
        found = self.receipts.get(tx_hash)
        if isinstance(found, Exception):
            raise found
        return found


@pytest.fixture
def dev() -> SimpleNamespace:
    """Development mnemonic, keys and their addresses."""
    return SimpleNamespace(
        mnemonic=DEV_MNEMONIC,
        key_0=DEV_KEY_0,
        key_1=DEV_KEY_1,
        address_0=DEV_ADDRESS_0,
        address_1=DEV_ADDRESS_1,
        address_2=DEV_ADDRESS_2,
    )


@pytest.fixture
def dev_env(monkeypatch) -> Dict[str, str]:
    """Put development credentials into the environment."""
    monkeypatch.setenv("PKEY", DEV_KEY_0)
    monkeypatch.setenv("MNEMONIC", DEV_MNEMONIC)
    return {"PKEY": DEV_KEY_0, "MNEMONIC": DEV_MNEMONIC}


@pytest.fixture
def testnet_profile() -> NetworkProfile:
    """Celo Alfajores-like test network with a fixed gas price."""
    return NetworkProfile(
        name="testnet",
        rpc_url="https://alfajores-forno.celo-testnet.org",
        chain_id=44787,
        gas_pricing=GasPricing.fixed(600_000_000_000),
        credential_source=EnvRef("PKEY"),
    )


@pytest.fixture
def mainnet_profile() -> NetworkProfile:
    """Celo-like main network with automatic gas pricing."""
    return NetworkProfile(
        name="mainnet",
        rpc_url="https://forno.celo.org",
        chain_id=42220,
        gas_pricing=GasPricing.auto(),
        credential_source=EnvRef("PKEY"),
    )


@pytest.fixture
def registry(testnet_profile: NetworkProfile, mainnet_profile: NetworkProfile) -> NetworkRegistry:
    """Frozen registry with testnet and mainnet."""
    reg = NetworkRegistry()
    reg.register(testnet_profile)
    reg.register(mainnet_profile)
    return reg.freeze()


@pytest.fixture
def token_artifact() -> Artifact:
    return Artifact(
        contract_name="Token",
        abi=TOKEN_ABI,
        bytecode="0x6080604052348015600f57600080fd5b50",
        compiler_version="0.8.7+commit.e28d00a7",
        source_path="contracts/Token.sol",
    )


@pytest.fixture
def registry_artifact() -> Artifact:
    return Artifact(
        contract_name="Registry",
        abi=REGISTRY_ABI,
        bytecode="0x608060405234801561001057600080fd5b50",
        compiler_version="0.6.12+commit.27d51765",
        source_path="contracts/Registry.sol",
    )


@pytest.fixture
def artifacts(token_artifact: Artifact, registry_artifact: Artifact) -> Dict[str, Artifact]:
    return {"Token": token_artifact, "Registry": registry_artifact}


@pytest.fixture
def compilers() -> CompilerProfileSet:
    return CompilerProfileSet(
        [
            CompilerProfile("0.6.12"),
            CompilerProfile("0.5.5"),
            CompilerProfile("0.8.7"),
        ]
    )


@pytest.fixture
def token_unit() -> DeploymentUnit:
    """The TokenA unit: one Token instance with no dependencies."""
    return DeploymentUnit(
        name="TokenA",
        contract="Token",
        tags=frozenset({"TokenA"}),
        constructor_args=("Token", "TKN", False),
    )


@pytest.fixture
def deployments_root(tmp_path: Path) -> Path:
    """Temporary records directory."""
    root = tmp_path / "deployments"
    root.mkdir()
    return root


@pytest.fixture
def make_store(deployments_root: Path):
    """Factory opening the record store of a profile."""

    def factory(profile: NetworkProfile) -> DeploymentRecordStore:
        return DeploymentRecordStore(profile.name, profile.chain_id, deployments_root)

    return factory


@pytest.fixture
def fake_chain_factory():
    """Factory for FakeChain instances."""

    def factory(chain_id: int, **kwargs) -> FakeChain:
        return FakeChain(chain_id, **kwargs)

    return factory


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    return path


@pytest.fixture
def project_dir(tmp_path: Path, token_artifact: Artifact, registry_artifact: Artifact) -> Path:
    """A project directory with config, units, artifacts and sources."""
    project = tmp_path / "project"

    write_json(
        project / "deploy.config.json",
        {
            "default_network": "testnet",
            "named_accounts": {"deployer": 0},
            "compilers": [
                {"version": "0.6.12", "optimizer": {"enabled": True, "runs": 200}},
                {"version": "0.8.7", "optimizer": {"enabled": True, "runs": 200}},
            ],
            "networks": {
                "testnet": {
                    "url": "https://alfajores-forno.celo-testnet.org",
                    "chain_id": 44787,
                    "gas_price": {"mode": "fixed", "value": 600000000000},
                    "accounts": {"type": "env", "name": "PKEY"},
                },
                "mainnet": {
                    "url": "https://forno.celo.org",
                    "chain_id": 42220,
                    "gas_price": {"mode": "auto"},
                    "accounts": {"type": "mnemonic", "phrase_env": "MNEMONIC"},
                },
            },
        },
    )

    write_json(
        project / "deploy.units.json",
        {
            "units": [
                {"name": "TokenA", "contract": "Token", "tags": ["TokenA"], "args": ["Token", "TKN", False]},
                {
                    "name": "Registry",
                    "tags": ["Registry"],
                    "args": [{"$unit": "TokenA"}],
                    "depends_on": ["TokenA"],
                },
            ]
        },
    )

    for artifact in (token_artifact, registry_artifact):
        write_json(
            project / "artifacts" / f"{artifact.contract_name}.json",
            {
                "contractName": artifact.contract_name,
                "abi": artifact.abi,
                "bytecode": artifact.bytecode,
                "compiler": {"name": "solc", "version": artifact.compiler_version},
                "sourcePath": artifact.source_path,
            },
        )

    return project


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Undo CLI logging setup so caplog sees package records in every test."""
    yield
    package_logger = logging.getLogger("deploy_orchestrator")
    package_logger.handlers.clear()
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


def write_hardhat_artifact(artifacts_dir: Path, artifact: Artifact, build_info_id: str) -> None:
    """Write an artifact the way `hardhat compile` lays it out."""
    folder = artifacts_dir / artifact.source_path
    write_json(
        folder / f"{artifact.contract_name}.json",
        {
            "_format": "hh-sol-artifact-1",
            "contractName": artifact.contract_name,
            "sourceName": artifact.source_path,
            "abi": artifact.abi,
            "bytecode": artifact.bytecode,
            "deployedBytecode": "0x6080",
            "linkReferences": {},
            "deployedLinkReferences": {},
        },
    )
    write_json(
        folder / f"{artifact.contract_name}.dbg.json",
        {"_format": "hh-sol-dbg-1", "buildInfo": f"../../build-info/{build_info_id}.json"},
    )


@pytest.fixture
def hardhat_artifacts_dir(tmp_path: Path, token_artifact: Artifact, registry_artifact: Artifact) -> Path:
    """An unmodified hardhat artifacts tree, including an unused library from another compiler."""
    artifacts_dir = tmp_path / "hardhat-artifacts"
    library = Artifact(
        contract_name="SafeMathLegacy",
        abi=[],
        bytecode="0x60566050600b82828239805160001a6073",
        compiler_version="0.4.24+commit.e67f0147",
        source_path="contracts/SafeMathLegacy.sol",
    )

    for artifact, build_id in (
        (token_artifact, "0a1b"),
        (registry_artifact, "2c3d"),
        (library, "4e5f"),
    ):
        write_hardhat_artifact(artifacts_dir, artifact, build_id)
        short_version = artifact.compiler_version.split("+")[0]
        write_json(
            artifacts_dir / "build-info" / f"{build_id}.json",
            {
                "_format": "hh-sol-build-info-1",
                "id": build_id,
                "solcVersion": short_version,
                "solcLongVersion": artifact.compiler_version,
                "input": {"language": "Solidity", "sources": {}},
                "output": {"contracts": {}},
            },
        )

    return artifacts_dir
