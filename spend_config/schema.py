"""
Spend configuration schema.

Frozen settings produced by ``spend_config.loader`` from YAML and handed
to services and batch jobs by ``spend_config.get_active_config()``.
Enumerated values are stored as the engines' enums so an invalid value
can never reach an engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from spend_engines.attribution import UnattributedPolicy
from spend_engines.contract_matching import UnmatchedAllocation
from spend_engines.daycount import DEFAULT_TIMEZONE, DayRounding


@dataclass(frozen=True)
class EngineSettings:
    """Selects between the historical variants of the calculations."""

    unmatched_allocation: UnmatchedAllocation = UnmatchedAllocation.FIRST
    day_rounding: DayRounding = DayRounding.NEAREST
    start_gate: bool = True
    unattributed_policy: UnattributedPolicy = UnattributedPolicy.DROP
    description_linking: bool = False
    timezone: str = DEFAULT_TIMEZONE


@dataclass(frozen=True)
class MasterDataSettings:
    """Names under which the master data stores its sentinel records."""

    generic_branch_name: str = "generico"
    umbrella_sector_name: str = "Frattin Group"
    unclassified_id: str = "unclassified"


@dataclass(frozen=True)
class BatchSettings:
    max_workers: int = 4
    year_offsets: tuple[int, ...] = (-1, 0, 1)


@dataclass(frozen=True)
class SpendSettings:
    """The complete runtime configuration."""

    engine: EngineSettings = field(default_factory=EngineSettings)
    master_data: MasterDataSettings = field(default_factory=MasterDataSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
    profile: str | None = None
    checksum: str = ""
