"""Census profile loader (YAML policy + wiring)."""

from __future__ import annotations

from dataclasses import dataclass
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .aggregator import FailurePolicy
from .errors import CensusConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _resolve_env(value: Any) -> Any:
    if not value or not isinstance(value, str):
        return value
    match = _ENV_PATTERN.fullmatch(value.strip())
    if match:
        return os.getenv(match.group(1)) or ""
    return value


@dataclass(frozen=True)
class PolicyProfile:
    failure_policy: FailurePolicy
    max_workers: int | None


@dataclass(frozen=True)
class WiringProfile:
    region_root: str
    region_suffix: str
    log_path: str | None


@dataclass(frozen=True)
class CensusProfile:
    profile_id: str
    policy: PolicyProfile
    wiring: WiringProfile

    @classmethod
    def load(cls, path: Path) -> "CensusProfile":
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise CensusConfigError(f"census profile is not valid YAML: {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise CensusConfigError("census profile file must be a mapping")
        profile_id = str(data.get("profile_id") or "").strip()
        if not profile_id:
            raise CensusConfigError("profile_id is required")
        policy = data.get("policy") or {}
        wiring = data.get("wiring") or {}
        if not isinstance(policy, dict) or not isinstance(wiring, dict):
            raise CensusConfigError("policy and wiring must be mappings")

        failure_policy = FailurePolicy.parse(
            os.getenv("CENSUS_FAILURE_POLICY")
            or _resolve_env(policy.get("failure_policy"))
            or FailurePolicy.BEST_EFFORT
        )
        max_workers = _parse_workers(os.getenv("CENSUS_MAX_WORKERS") or _resolve_env(policy.get("max_workers")))

        region_root = _resolve_env(wiring.get("region_root")) or "data/regions"
        root_path = Path(region_root)
        if not root_path.is_absolute() and not root_path.exists():
            candidate = path.parent / root_path
            if candidate.exists():
                region_root = str(candidate)
        region_suffix = wiring.get("region_suffix", ".txt")
        if region_suffix is None:
            region_suffix = ""
        log_path = _resolve_env(wiring.get("log_path")) or None

        return cls(
            profile_id=profile_id,
            policy=PolicyProfile(failure_policy=failure_policy, max_workers=max_workers),
            wiring=WiringProfile(
                region_root=str(region_root),
                region_suffix=str(region_suffix),
                log_path=log_path,
            ),
        )


def _parse_workers(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise CensusConfigError(f"max_workers must be an integer (got {raw!r})")
    try:
        workers = int(raw)
    except (TypeError, ValueError) as exc:
        raise CensusConfigError(f"max_workers must be an integer (got {raw!r})") from exc
    if workers < 1:
        raise CensusConfigError(f"max_workers must be >= 1 (got {workers})")
    return workers
