"""Compiler profile matching for deploy-orchestrator."""

from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .exceptions import AmbiguousCompilerProfile, NoMatchingCompilerProfile
from .types import Artifact, CompilerProfile
from .versions import normalize_compiler_version


class CompilerProfileSet:
    """Ordered list of compiler profiles; order is the build order."""

    def __init__(self, profiles: Sequence[CompilerProfile]):
        self._profiles: List[CompilerProfile] = list(profiles)

    def match(self, artifact: Artifact) -> CompilerProfile:
        """
        Find the profile that compiled an artifact.

        Args:
            artifact: Compiled artifact declaring its compiler version

        Returns:
            The single matching CompilerProfile

        Raises:
            NoMatchingCompilerProfile: If no profile has the artifact's version
            AmbiguousCompilerProfile: If several profiles have that version
        """
        version = normalize_compiler_version(artifact.compiler_version)
        candidates = [
            p for p in self._profiles if normalize_compiler_version(p.version) == version
        ]

        if not candidates:
            configured = ", ".join(p.version for p in self._profiles) or "none"
            raise NoMatchingCompilerProfile(
                f"Artifact '{artifact.contract_name}' was compiled with "
                f"{version or 'an unknown version'}, "
                f"which matches no compiler profile (configured: {configured})"
            )
        if len(candidates) > 1:
            raise AmbiguousCompilerProfile(
                f"{len(candidates)} compiler profiles declare version {version} "
                f"(needed by artifact '{artifact.contract_name}')"
            )

        return candidates[0]

    def validate(self, artifacts: Iterable[Artifact]) -> Dict[str, CompilerProfile]:
        """
        Match every artifact eagerly.

        Returns:
            Mapping of contract name -> profile
        """
        return {artifact.contract_name: self.match(artifact) for artifact in artifacts}

    def build_order(
        self, artifacts: Iterable[Artifact]
    ) -> List[Tuple[CompilerProfile, List[Artifact]]]:
        """
        Group artifacts per profile, in profile order, for a multi-version build.

        Profiles with no artifacts are left out.
        """
        groups: Dict[int, List[Artifact]] = {}
        for artifact in artifacts:
            profile = self.match(artifact)
            groups.setdefault(id(profile), []).append(artifact)

        return [(p, groups[id(p)]) for p in self._profiles if id(p) in groups]

    def __iter__(self) -> Iterator[CompilerProfile]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)
