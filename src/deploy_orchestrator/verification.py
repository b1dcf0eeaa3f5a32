"""Block explorer verification for deployed contracts (Etherscan-compatible APIs)."""

import logging
import os
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import requests
from eth_abi import encode

from .constants import (
    ALREADY_VERIFIED_MARKERS,
    PENDING_MARKERS,
    VERIFIED_MARKERS,
    VERIFY_BACKOFF_SECONDS,
    VERIFY_HTTP_TIMEOUT,
    VERIFY_MAX_RETRIES,
    VERIFY_POLL_INTERVAL_SECONDS,
    VERIFY_STATUS_POLLS,
)
from .exceptions import VerificationError
from .types import (
    Artifact,
    CompilerProfile,
    DeploymentRecord,
    NetworkProfile,
    VerificationResult,
    VerificationStatus,
    VerificationTarget,
)
from .versions import explorer_compiler_version

logger = logging.getLogger(__name__)


def _abi_type(param: Dict[str, Any]) -> str:
    """ABI type string for a constructor input, expanding tuples."""
    abi_type = param["type"]
    if abi_type.startswith("tuple"):
        components = ",".join(_abi_type(c) for c in param.get("components", []))
        return f"({components}){abi_type[len('tuple'):]}"
    return abi_type


def encode_constructor_args(artifact: Artifact, args: List[Any]) -> str:
    """
    ABI-encode constructor arguments as explorers expect them.

    Args:
        artifact: Artifact whose ABI declares the constructor
        args: Resolved constructor arguments

    Returns:
        Hex string without 0x prefix (empty for no arguments)
    """
    inputs = artifact.constructor_inputs()
    if not inputs:
        return ""
    return encode([_abi_type(i) for i in inputs], list(args)).hex()


def _has_marker(text: str, markers) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in markers)


def _redact(text: str, secret: Optional[str]) -> str:
    # requests errors quote the full URL, query string included
    if secret:
        return text.replace(secret, "***")
    return text


class VerificationDispatcher:
    """
    Submits deployed contracts to a network's block explorer.

    Verification never affects a deployment: every failure is returned as a
    FAILED result and logged as a warning.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        source_root: Optional[Union[Path, str]] = None,
        environ: Optional[Mapping[str, str]] = None,
        max_retries: int = VERIFY_MAX_RETRIES,
        backoff: float = VERIFY_BACKOFF_SECONDS,
        status_polls: int = VERIFY_STATUS_POLLS,
        poll_interval: float = VERIFY_POLL_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            session: HTTP session (defaults to a new requests.Session)
            source_root: Directory that artifact source paths are relative to
            environ: Where API keys are read from (defaults to os.environ)
            max_retries: Attempts for transient HTTP failures
            backoff: Base seconds between retries (doubled each retry)
            status_polls: Status checks after submission
            poll_interval: Seconds between status checks
            sleep: Sleep function (injectable for tests)
        """
        self.session = session or requests.Session()
        self.source_root = Path(source_root) if source_root is not None else Path.cwd()
        self._environ = environ
        self.max_retries = max_retries
        self.backoff = backoff
        self.status_polls = status_polls
        self.poll_interval = poll_interval
        self._sleep = sleep

    def build_target(
        self,
        record: DeploymentRecord,
        network: NetworkProfile,
        artifact: Artifact,
        compiler: Optional[CompilerProfile] = None,
    ) -> Optional[VerificationTarget]:
        """
        Derive a verification target from a record and the network's explorer config.

        Returns:
            VerificationTarget, or None if the network has no explorer or no API key

        Raises:
            VerificationError: If the artifact has no source path or the args cannot be encoded
        """
        if network.explorer is None:
            return None

        environ = os.environ if self._environ is None else self._environ
        api_key = environ.get(network.explorer.api_key_env, "").strip()
        if not api_key:
            return None

        if not artifact.source_path:
            raise VerificationError(
                f"Artifact '{artifact.contract_name}' has no source path",
                network=network.name,
                unit=record.unit_name,
            )

        try:
            constructor_args = encode_constructor_args(artifact, record.args or [])
        except Exception as e:
            raise VerificationError(
                f"Cannot ABI-encode constructor arguments: {e}",
                network=network.name,
                unit=record.unit_name,
            ) from e

        return VerificationTarget(
            address=record.address,
            source_path=artifact.source_path,
            contract_name=artifact.contract_name,
            compiler_version=explorer_compiler_version(
                artifact.compiler_version or (compiler.version if compiler else "")
            ),
            optimizer_enabled=compiler.optimizer_enabled if compiler else False,
            optimizer_runs=compiler.optimizer_runs if compiler else 200,
            constructor_args=constructor_args,
            explorer_api_url=network.explorer.api_url,
            api_key=api_key,
        )

    def verify(
        self,
        record: DeploymentRecord,
        network: NetworkProfile,
        artifact: Optional[Artifact] = None,
        compiler: Optional[CompilerProfile] = None,
    ) -> VerificationResult:
        """
        Verify one deployment on the network's explorer.

        Args:
            record: Deployment record of the contract
            network: Network it was deployed to
            artifact: Compiled artifact (source path, ABI)
            compiler: Compiler profile that built the artifact

        Returns:
            VerificationResult (never raises for explorer failures)
        """

        def result(status: VerificationStatus, message: Optional[str] = None, guid=None):
            return VerificationResult(status, record.unit_name, record.address, message, guid)

        if network.explorer is None:
            return result(VerificationStatus.SKIPPED, "no explorer configured")
        if artifact is None:
            return result(VerificationStatus.SKIPPED, "no artifact available")

        target = None
        try:
            target = self.build_target(record, network, artifact, compiler)
            if target is None:
                return result(
                    VerificationStatus.SKIPPED,
                    f"{network.explorer.api_key_env} is not set",
                )

            outcome = self._submit(target)
        except VerificationError as e:
            e.add_context(network.name, record.unit_name)
            logger.warning("Verification of %s failed: %s", record.unit_name, e)
            return result(VerificationStatus.FAILED, str(e))
        except Exception as e:
            # Reported, never raised
            detail = _redact(repr(e), target.api_key if target else None)
            logger.warning(
                "Verification of %s on %s failed unexpectedly: %s",
                record.unit_name,
                network.name,
                detail,
            )
            return result(VerificationStatus.FAILED, f"unexpected error: {detail}")

        logger.info(
            "Verification of %s at %s on %s: %s",
            record.unit_name,
            record.address,
            network.name,
            outcome[0].value,
        )
        return result(*outcome)

    def _submit(self, target: VerificationTarget):
        source_file = self.source_root / target.source_path
        try:
            source_code = source_file.read_text()
        except OSError as e:
            raise VerificationError(f"Cannot read source {source_file}: {e}") from e

        payload = {
            "apikey": target.api_key,
            "module": "contract",
            "action": "verifysourcecode",
            "contractaddress": target.address,
            "sourceCode": source_code,
            "codeformat": "solidity-single-file",
            "contractname": target.contract_name,
            "compilerversion": target.compiler_version,
            "optimizationUsed": "1" if target.optimizer_enabled else "0",
            "runs": str(target.optimizer_runs),
            # Etherscan's historical spelling
            "constructorArguements": target.constructor_args,
        }

        response = self._request("POST", target.explorer_api_url, data=payload)
        message = str(response.get("result", ""))

        if _has_marker(message, ALREADY_VERIFIED_MARKERS):
            return VerificationStatus.ALREADY_VERIFIED, message, None
        if str(response.get("status")) != "1":
            raise VerificationError(f"Explorer rejected submission: {message}")

        return self._poll_status(target, guid=message)

    def _poll_status(self, target: VerificationTarget, guid: str):
        params = {
            "apikey": target.api_key,
            "module": "contract",
            "action": "checkverifystatus",
            "guid": guid,
        }

        for _ in range(self.status_polls):
            self._sleep(self.poll_interval)
            response = self._request("GET", target.explorer_api_url, params=params)
            message = str(response.get("result", ""))

            if _has_marker(message, ALREADY_VERIFIED_MARKERS):
                return VerificationStatus.ALREADY_VERIFIED, message, guid
            if _has_marker(message, VERIFIED_MARKERS) or str(response.get("status")) == "1":
                return VerificationStatus.VERIFIED, message, guid
            if not _has_marker(message, PENDING_MARKERS):
                raise VerificationError(f"Explorer failed verification: {message}")

        # Still pending; the explorer will finish on its own
        return VerificationStatus.SUBMITTED, "verification still pending", guid

    def _request(self, method: str, url: str, **kwargs) -> Mapping[str, Any]:
        """HTTP call with bounded retries for transient failures."""
        secret = (kwargs.get("params") or kwargs.get("data") or {}).get("apikey")
        last_error = ""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.request(method, url, timeout=VERIFY_HTTP_TIMEOUT, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = _redact(f"network error: {e}", secret)
            except requests.RequestException as e:
                # Invalid URL or similar: retrying cannot help
                raise VerificationError(
                    _redact(f"Explorer request to {url} failed: {e}", secret)
                ) from e
            else:
                if response.status_code == 429 or response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                elif response.status_code != 200:
                    raise VerificationError(
                        f"Explorer request failed with status {response.status_code}"
                    )
                else:
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise VerificationError(f"Explorer returned invalid JSON: {e}") from e
                    if not isinstance(data, Mapping):
                        raise VerificationError(
                            f"Explorer returned {type(data).__name__} instead of an object"
                        )
                    return data

            if attempt < self.max_retries:
                logger.debug(
                    "Explorer request failed (%s), retry %d/%d",
                    last_error,
                    attempt,
                    self.max_retries,
                )
                self._sleep(self.backoff * 2 ** (attempt - 1))

        raise VerificationError(
            f"Explorer unreachable after {self.max_retries} attempts ({last_error})"
        )
