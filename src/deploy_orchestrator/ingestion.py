"""Artifact and unit declaration loading (the orchestrator's external loader)."""

import json
import logging
from pathlib import Path
from typing import Dict, List, Union

from .exceptions import ConfigurationError
from .parsers import parse_artifact, parse_unit_declarations
from .types import Artifact, DeploymentUnit

logger = logging.getLogger(__name__)


def load_artifacts(artifacts_dir: Union[Path, str]) -> Dict[str, Artifact]:
    """
    Load every compiled artifact below a directory.

    Files without a "contractName" (hardhat .dbg.json, build-info) are
    ignored. Hardhat artifacts take their compiler version from build-info.
    When two files declare the same contract the first one in sorted path
    order wins and a warning is logged.

    Args:
        artifacts_dir: Directory holding artifact JSON files

    Returns:
        Mapping of contract name -> Artifact

    Raises:
        ConfigurationError: If the directory does not exist
    """
    root = Path(artifacts_dir)
    if not root.is_dir():
        raise ConfigurationError(f"Artifacts directory not found at {root}")

    artifacts: Dict[str, Artifact] = {}
    build_info_versions: Dict[Path, str] = {}
    for artifact_file in sorted(root.rglob("*.json")):
        relative = artifact_file.relative_to(root)
        if artifact_file.name.endswith(".dbg.json") or "build-info" in relative.parts:
            continue

        try:
            with open(artifact_file) as f:
                data = json.load(f)
        except json.JSONDecodeError:
            logger.debug("Skipping non-JSON artifact file %s", artifact_file)
            continue

        if not isinstance(data, dict) or "contractName" not in data:
            continue

        artifact = parse_artifact(artifact_file, build_info_versions)
        if artifact.contract_name in artifacts:
            logger.warning(
                "Duplicate artifact for %s in %s, keeping the first one",
                artifact.contract_name,
                artifact_file,
            )
            continue
        artifacts[artifact.contract_name] = artifact

    logger.debug("Loaded %d artifact(s) from %s", len(artifacts), root)
    return artifacts


def load_units(units_path: Union[Path, str]) -> List[DeploymentUnit]:
    """
    Load deployment unit declarations from a JSON file.

    Raises:
        ConfigurationError: If the file is missing, not JSON, or invalid
    """
    path = Path(units_path)
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Unit declarations not found at {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Unit declarations {path} are not valid JSON: {e}") from e

    return parse_unit_declarations(data)
