"""Command line interface for deploy-orchestrator.

Usage:
    deploy-orchestrator deploy --network alfajores
    deploy-orchestrator deploy --network celo --tags Token,Registry --force
    deploy-orchestrator networks
"""

import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

from .config import load_config
from .constants import DEFAULT_ARTIFACTS_DIR, DEFAULT_CONFIG_FILE, DEFAULT_UNITS_FILE
from .exceptions import ConfigurationError, CredentialError, OrchestratorError, PlanningError
from .ingestion import load_artifacts, load_units
from .runner import run_deployment
from .types import RunState, UnitAction
from .verification import VerificationDispatcher

logger = logging.getLogger("deploy_orchestrator")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(verbose: bool = False) -> None:
    """Send package logs to stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    # Prevent duplicate handlers when main() is called repeatedly
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False


def _split_tags(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [t.strip() for t in value.split(",") if t.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="deploy-orchestrator",
        description="Idempotent multi-network contract deployment",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="network config JSON")
    parser.add_argument("--env-file", default=None, help="dotenv file (default: .env if present)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="deploy units to a network")
    deploy.add_argument("--network", help="network name (default: config default_network)")
    deploy.add_argument("--tags", help="comma separated tags to deploy")
    deploy.add_argument("--force", action="store_true", help="redeploy unchanged units")
    deploy.add_argument("--units", default=DEFAULT_UNITS_FILE, help="unit declarations JSON")
    deploy.add_argument("--artifacts", default=DEFAULT_ARTIFACTS_DIR, help="compiled artifacts dir")
    deploy.add_argument("--deployments", default=None, help="records dir (default: ./deployments)")
    deploy.add_argument("--no-verify", action="store_true", help="skip explorer verification")
    deploy.add_argument("--source-root", default=None, help="base dir of artifact source paths")

    sub.add_parser("networks", help="list configured networks")

    return parser


def _cmd_networks(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    for profile in config.registry:
        marker = "*" if profile.name == config.default_network else " "
        print(
            f"{marker} {profile.name:<16} chain {profile.chain_id:<10} "
            f"gas {profile.gas_pricing.mode.value:<5} accounts {profile.credential_source.kind}"
        )
    return EXIT_OK


def _cmd_deploy(args: argparse.Namespace) -> int:
    config = load_config(args.config)

    network = args.network or config.default_network
    if network is None:
        raise ConfigurationError("No --network given and no default_network configured")

    units = load_units(args.units)
    artifacts = load_artifacts(args.artifacts)
    verifier = None if args.no_verify else VerificationDispatcher(source_root=args.source_root)

    result = run_deployment(
        network,
        config.registry,
        units,
        artifacts,
        named_accounts=config.named_accounts,
        compilers=config.compilers,
        deployments_root=args.deployments,
        tags=_split_tags(args.tags),
        force=args.force,
        verifier=verifier,
    )

    for outcome in result.outcomes:
        address = outcome.record.address if outcome.record else "-"
        print(f"{outcome.action.value:<14} {outcome.unit_name:<32} {address}")
    for verification in result.verifications:
        print(f"verify {verification.status.value:<16} {verification.unit_name}")

    if result.state is RunState.COMPLETED:
        return EXIT_OK

    failed = [o for o in result.outcomes if o.action is UnitAction.FAILED]
    if failed:
        logger.error("Deployment failed at %s: %s", failed[0].unit_name, failed[0].error)
    elif result.error is not None:
        logger.error("Deployment failed: %s", result.error)
    else:
        logger.error("Deployment %s", result.state.value)
    return EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    if args.env_file:
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    try:
        if args.command == "networks":
            return _cmd_networks(args)
        return _cmd_deploy(args)
    except (ConfigurationError, CredentialError, PlanningError) as e:
        logger.error("%s", e)
        return EXIT_CONFIG
    except OrchestratorError as e:
        logger.error("%s", e)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
