"""
Configuration Loader (``spend_config.loader``).

Responsibility
--------------
Loads the YAML configuration file, overlays a named profile, validates
the result and parses it into the frozen ``spend_config.schema``
settings.  The single public entry point for runtime config is
``spend_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Validation collects EVERY problem before reporting; nothing is
  silently defaulted when a key is present with an invalid value.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective (profile-applied) configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values or unknown profile  -> ``ValidationResult.errors``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from spend_config.schema import BatchSettings, EngineSettings, MasterDataSettings, SpendSettings
from spend_engines.attribution import UnattributedPolicy
from spend_engines.contract_matching import UnmatchedAllocation
from spend_engines.daycount import DayRounding

_ENUM_KEYS: dict[str, type] = {
    "unmatched_allocation": UnmatchedAllocation,
    "day_rounding": DayRounding,
    "unattributed_policy": UnattributedPolicy,
}
_BOOL_KEYS = ("start_gate", "description_linking")
_NAME_KEYS = ("generic_branch_name", "umbrella_sector_name", "unclassified_id")


@dataclass
class ValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields ``{}``."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def apply_profile(data: dict[str, Any], profile: str | None) -> dict[str, Any]:
    """Effective configuration: ``data`` with ``profile`` overlaid on ``engine``.

    Raises:
        KeyError: if ``profile`` is not defined in ``data["profiles"]``.
    """
    effective = {
        "engine": dict(data.get("engine") or {}),
        "master_data": dict(data.get("master_data") or {}),
        "batch": dict(data.get("batch") or {}),
    }
    if profile is not None:
        profiles = data.get("profiles") or {}
        if profile not in profiles:
            raise KeyError(profile)
        effective["engine"].update(profiles[profile] or {})
    return effective


def validate_settings_data(data: dict[str, Any]) -> ValidationResult:
    """Check an effective configuration dict without building settings."""
    result = ValidationResult()
    engine = data.get("engine", {})
    master_data = data.get("master_data", {})
    batch = data.get("batch", {})

    for key, enum_type in _ENUM_KEYS.items():
        if key in engine:
            allowed = [member.value for member in enum_type]
            if engine[key] not in allowed:
                result.add_error(f"engine.{key}: {engine[key]!r} is not one of {allowed}")

    for key in _BOOL_KEYS:
        if key in engine and not isinstance(engine[key], bool):
            result.add_error(f"engine.{key}: expected a boolean, got {engine[key]!r}")

    if "timezone" in engine:
        try:
            ZoneInfo(str(engine["timezone"]))
        except (ZoneInfoNotFoundError, ValueError):
            result.add_error(f"engine.timezone: unknown timezone {engine['timezone']!r}")

    for key in _NAME_KEYS:
        if key in master_data and not str(master_data[key] or "").strip():
            result.add_error(f"master_data.{key}: must not be empty")

    if "max_workers" in batch:
        workers = batch["max_workers"]
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            result.add_error(f"batch.max_workers: expected a positive integer, got {workers!r}")

    if "year_offsets" in batch:
        offsets = batch["year_offsets"]
        if (
            not isinstance(offsets, list)
            or not offsets
            or not all(isinstance(o, int) and not isinstance(o, bool) for o in offsets)
        ):
            result.add_error(f"batch.year_offsets: expected a non-empty list of integers, got {offsets!r}")

    return result


def parse_settings(data: dict[str, Any], profile: str | None = None, checksum: str = "") -> SpendSettings:
    """Build ``SpendSettings`` from a validated effective configuration."""
    engine = data.get("engine", {})
    master_data = data.get("master_data", {})
    batch = data.get("batch", {})
    engine_defaults = EngineSettings()
    master_defaults = MasterDataSettings()
    batch_defaults = BatchSettings()

    return SpendSettings(
        engine=EngineSettings(
            unmatched_allocation=UnmatchedAllocation(
                engine.get("unmatched_allocation", engine_defaults.unmatched_allocation)
            ),
            day_rounding=DayRounding(engine.get("day_rounding", engine_defaults.day_rounding)),
            start_gate=engine.get("start_gate", engine_defaults.start_gate),
            unattributed_policy=UnattributedPolicy(
                engine.get("unattributed_policy", engine_defaults.unattributed_policy)
            ),
            description_linking=engine.get("description_linking", engine_defaults.description_linking),
            timezone=str(engine.get("timezone", engine_defaults.timezone)),
        ),
        master_data=MasterDataSettings(
            generic_branch_name=str(master_data.get("generic_branch_name", master_defaults.generic_branch_name)),
            umbrella_sector_name=str(master_data.get("umbrella_sector_name", master_defaults.umbrella_sector_name)),
            unclassified_id=str(master_data.get("unclassified_id", master_defaults.unclassified_id)),
        ),
        batch=BatchSettings(
            max_workers=batch.get("max_workers", batch_defaults.max_workers),
            year_offsets=tuple(batch.get("year_offsets", batch_defaults.year_offsets)),
        ),
        profile=profile,
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
