"""
spend_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files.  Returns a frozen ``SpendSettings``.

Architecture position:
    Configuration -- above ``spend_engines`` (whose enums it stores) and
    below ``spend_services`` / ``spend_batch``.  Engines never import
    from ``spend_config``; services pass them explicit settings.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - The configuration is fully validated before any settings object exists.
    - Same YAML + same profile always produce the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ConfigurationError`` -- unknown profile or invalid values (all
      problems are reported together).

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``SPEND_CONFIG_TRACE`` log entry with the source path, profile,
    checksum and the variant-selecting engine settings.  The checksum
    ties stored summaries back to the configuration that produced them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from spend_config.loader import (
    apply_profile,
    compute_checksum,
    load_yaml_file,
    parse_settings,
    validate_settings_data,
)
from spend_config.schema import BatchSettings, EngineSettings, MasterDataSettings, SpendSettings
from spend_kernel.exceptions import ConfigurationError

_logger = logging.getLogger("spend.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(
    config_path: Path | str | None = None,
    profile: str | None = None,
) -> SpendSettings:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.
        profile: Name of a profile under ``profiles`` to overlay on the
            ``engine`` section (e.g. ``"legacy"``, ``"proportional"``).

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ConfigurationError: If the profile is unknown or validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    raw = load_yaml_file(path)

    try:
        effective = apply_profile(raw, profile)
    except KeyError:
        available = sorted((raw.get("profiles") or {}).keys())
        raise ConfigurationError(
            [f"unknown profile {profile!r}; available: {available}"], source=str(path),
        ) from None

    validation = validate_settings_data(effective)
    if not validation.is_valid:
        raise ConfigurationError(validation.errors, source=str(path))

    checksum = compute_checksum(effective)
    settings = parse_settings(effective, profile=profile, checksum=checksum)

    _logger.info(
        "SPEND_CONFIG_TRACE",
        extra={
            "trace_type": "SPEND_CONFIG_TRACE",
            "config_source": str(path),
            "profile": profile,
            "checksum": checksum,
            "unmatched_allocation": settings.engine.unmatched_allocation.value,
            "day_rounding": settings.engine.day_rounding.value,
            "start_gate": settings.engine.start_gate,
            "unattributed_policy": settings.engine.unattributed_policy.value,
        },
    )
    return settings


__all__ = [
    "BatchSettings",
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "MasterDataSettings",
    "SpendSettings",
    "get_active_config",
]
