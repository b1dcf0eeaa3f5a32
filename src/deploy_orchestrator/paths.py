"""Path management utilities for deploy-orchestrator."""

from pathlib import Path
from typing import Optional, Union


def get_default_deployments_dir() -> Path:
    """
    Get default deployment records directory (current project).

    Returns:
        Path to ./deployments
    """
    return Path.cwd() / "deployments"


def get_record_paths(
    network: str, deployments_root: Optional[Union[Path, str]] = None
) -> tuple[Path, Path]:
    """
    Get record store paths for one network.

    Args:
        network: Network name
        deployments_root: Custom records directory (defaults to ./deployments)

    Returns:
        Tuple of (network_dir, chain_id_path)
    """
    if deployments_root is None:
        deployments_root = get_default_deployments_dir()
    else:
        deployments_root = Path(deployments_root).absolute()

    network_dir = deployments_root / network
    chain_id_path = network_dir / ".chainId"

    return (network_dir, chain_id_path)


def get_record_file(network_dir: Path, unit_name: str) -> Path:
    """
    Get the record file for a unit inside a network directory.

    Args:
        network_dir: Path returned by get_record_paths()
        unit_name: Deployment unit name

    Returns:
        Path to {network_dir}/{unit_name}.json
    """
    return network_dir / f"{unit_name}.json"


def get_pending_file(network_dir: Path) -> Path:
    """
    Get the file holding sent but unconfirmed transactions of a network.

    Returns:
        Path to {network_dir}/.pendingTransactions
    """
    return network_dir / ".pendingTransactions"
