"""JSON parsers for artifacts, deployment records and unit declarations."""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .exceptions import ConfigurationError, InvalidDeploymentRecord
from .hashing import bytecode_hash, constructor_args_hash
from .types import Artifact, DeploymentRecord, DeploymentUnit, UnitAddress


class ArtifactFormat(Enum):
    """
    Compiled artifact file formats.

    - TRUFFLE: truffle / hardhat-truffle artifacts, compiler version inline
    - HARDHAT: hardhat artifacts; the compiler version is read from "solcVersion" when
      present, else from the build-info file named by the sibling .dbg.json
    """

    TRUFFLE = "truffle"
    HARDHAT = "hardhat"


# Marker for UnitAddress references inside declared constructor args
UNIT_REFERENCE_KEY = "$unit"


def detect_artifact_format(data: Dict[str, Any]) -> ArtifactFormat:
    """
    Detect the artifact format from its JSON content.

    Args:
        data: Parsed artifact JSON

    Returns:
        ArtifactFormat.TRUFFLE if a "compiler" object is present, else HARDHAT
    """
    if isinstance(data.get("compiler"), dict):
        return ArtifactFormat.TRUFFLE
    return ArtifactFormat.HARDHAT


def read_build_info_version(
    artifact_file: Path, cache: Optional[Dict[Path, str]] = None
) -> str:
    """
    Read the solc version of a hardhat artifact from its build-info file.

    Hardhat writes {Contract}.dbg.json next to each artifact, holding a
    "buildInfo" path relative to the .dbg.json directory. The build-info file
    carries "solcLongVersion" (e.g. "0.8.7+commit.e28d00a7").

    Args:
        artifact_file: Path to the artifact JSON file
        cache: Build-info path -> version, shared across artifacts of one tree

    Returns:
        Compiler version, or "" if the files are missing or unreadable
    """
    dbg_file = artifact_file.with_name(f"{artifact_file.stem}.dbg.json")
    try:
        with open(dbg_file) as f:
            build_info = (dbg_file.parent / json.load(f)["buildInfo"]).resolve()
    except (OSError, ValueError, KeyError, TypeError):
        return ""

    if cache is not None and build_info in cache:
        return cache[build_info]

    try:
        with open(build_info) as f:
            data = json.load(f)
        version = data.get("solcLongVersion") or data.get("solcVersion", "")
    except (OSError, ValueError, AttributeError):
        version = ""

    if cache is not None:
        cache[build_info] = version
    return version


def parse_artifact(file_path: Path, build_info_cache: Optional[Dict[Path, str]] = None) -> Artifact:
    """
    Parse a compiled artifact JSON file.

    Args:
        file_path: Path to artifact JSON file
        build_info_cache: Shared cache for read_build_info_version()

    Returns:
        Artifact

    Raises:
        ConfigurationError: If contract name, ABI or bytecode is missing
    """
    with open(file_path) as f:
        data = json.load(f)

    for required in ("contractName", "abi", "bytecode"):
        if required not in data:
            raise ConfigurationError(f"Artifact {file_path} is missing '{required}'")

    match detect_artifact_format(data):
        case ArtifactFormat.TRUFFLE:
            compiler_version = data["compiler"].get("version", "")
        case ArtifactFormat.HARDHAT:
            compiler_version = data.get("solcVersion") or read_build_info_version(
                Path(file_path), build_info_cache
            )

    bytecode = data["bytecode"]
    if bytecode and not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode

    return Artifact(
        contract_name=data["contractName"],
        abi=data["abi"],
        bytecode=bytecode,
        compiler_version=compiler_version,
        source_path=data.get("sourcePath") or data.get("sourceName"),
    )


def parse_deployment_record(file_path: Path) -> DeploymentRecord:
    """
    Parse a persisted deployment record.

    Args:
        file_path: Path to {network_dir}/{unit_name}.json

    Returns:
        DeploymentRecord

    Raises:
        InvalidDeploymentRecord: If a required field is missing
    """
    with open(file_path) as f:
        data = json.load(f)

    return record_from_dict(data, source=str(file_path), unit_name=Path(file_path).stem)


def record_from_dict(
    data: Dict[str, Any], source: str = "<record>", unit_name: Optional[str] = None
) -> DeploymentRecord:
    """
    Build a DeploymentRecord from its hardhat-deploy style JSON mapping.

    Records written by hardhat-deploy itself carry neither "unitName" nor the
    two hashes. The unit name then comes from the file name and the hashes are
    computed from the stored "args" and "bytecode".

    Args:
        data: Parsed record JSON
        source: Where the record came from, for error messages
        unit_name: Fallback unit name (the record file stem)
    """
    if not isinstance(data, dict):
        raise InvalidDeploymentRecord(f"Deployment record {source} is not a JSON object")

    data = dict(data)
    if "unitName" not in data and unit_name:
        data["unitName"] = unit_name
    if "constructorArgsHash" not in data and isinstance(data.get("args"), list):
        data["constructorArgsHash"] = constructor_args_hash(data["args"])
    if "bytecodeHash" not in data and data.get("bytecode"):
        try:
            data["bytecodeHash"] = bytecode_hash(data["bytecode"])
        except ValueError as e:
            raise InvalidDeploymentRecord(
                f"Deployment record {source} has invalid bytecode: {e}"
            ) from e

    missing = [
        key
        for key in ("unitName", "address", "constructorArgsHash", "bytecodeHash", "transactionHash")
        if key not in data
    ]
    if missing:
        raise InvalidDeploymentRecord(
            f"Deployment record {source} is missing {', '.join(missing)}"
        )

    # Block number may be at top level or inside the receipt
    block_number = None
    if "receipt" in data and "blockNumber" in data["receipt"]:
        block_number = data["receipt"]["blockNumber"]
    elif "blockNumber" in data:
        block_number = data["blockNumber"]

    return DeploymentRecord(
        unit_name=data["unitName"],
        address=data["address"],
        constructor_args_hash=data["constructorArgsHash"],
        bytecode_hash=data["bytecodeHash"],
        tx_hash=data["transactionHash"],
        contract=data.get("contractName"),
        args=data.get("args"),
        block_number=block_number,
        num_deployments=data.get("numDeployments", 1),
    )


def record_to_dict(record: DeploymentRecord) -> Dict[str, Any]:
    """Serialize a DeploymentRecord to its hardhat-deploy style JSON mapping."""
    result: Dict[str, Any] = {
        "unitName": record.unit_name,
        "address": record.address,
        "constructorArgsHash": record.constructor_args_hash,
        "bytecodeHash": record.bytecode_hash,
        "transactionHash": record.tx_hash,
        "numDeployments": record.num_deployments,
    }

    # Optional fields
    if record.contract is not None:
        result["contractName"] = record.contract
    if record.args is not None:
        result["args"] = record.args
    if record.block_number is not None:
        result["receipt"] = {"blockNumber": record.block_number}

    return result


def _parse_arg(value: Any) -> Any:
    if isinstance(value, dict) and set(value) == {UNIT_REFERENCE_KEY}:
        return UnitAddress(value[UNIT_REFERENCE_KEY])
    if isinstance(value, list):
        return tuple(_parse_arg(v) for v in value)
    return value


def parse_unit_declarations(data: Dict[str, Any]) -> List[DeploymentUnit]:
    """
    Parse unit declarations.

    Expected form::

        {"units": [{"name": "Token", "tags": ["Token"], "args": ["T", {"$unit": "Registry"}],
                    "from": "deployer", "depends_on": ["Registry"]}]}

    Args:
        data: Parsed unit declaration JSON

    Returns:
        List of DeploymentUnit in declaration order

    Raises:
        ConfigurationError: If a unit has no name or names repeat
    """
    units: List[DeploymentUnit] = []
    seen = set()

    for entry in data.get("units", []):
        name = entry.get("name")
        if not name:
            raise ConfigurationError(f"Deployment unit without a name: {entry!r}")
        if name in seen:
            raise ConfigurationError(f"Deployment unit '{name}' is declared twice")
        seen.add(name)

        units.append(
            DeploymentUnit(
                name=name,
                contract=entry.get("contract"),
                tags=frozenset(entry.get("tags", [])),
                constructor_args=tuple(_parse_arg(a) for a in entry.get("args", [])),
                from_role=entry.get("from", "deployer"),
                depends_on=frozenset(entry.get("depends_on", [])),
            )
        )

    return units
