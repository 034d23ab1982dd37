"""Runtime configuration for duplicate scoring and recurring-income matching."""

import os
from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path

import yaml

from budgetmate.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReconciliationConfig:
    """Thresholds and tolerances for the reconciliation core."""

    date_window_days: int
    potential_threshold: int
    high_confidence: int
    medium_confidence: int
    recurring_tolerance_percent: Decimal
    recurring_tolerance_minimum: Decimal
    recurring_close_match: Decimal


DEFAULT_CONFIG = ReconciliationConfig(
    date_window_days=3,
    potential_threshold=50,
    high_confidence=85,
    medium_confidence=70,
    recurring_tolerance_percent=Decimal("0.05"),
    recurring_tolerance_minimum=Decimal("5.00"),
    recurring_close_match=Decimal("1.00"),
)

CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "reconciliation.yaml"

_ENV_OVERRIDES = {
    "DUPLICATE_POTENTIAL_THRESHOLD": "potential_threshold",
    "DUPLICATE_HIGH_CONFIDENCE": "high_confidence",
    "DUPLICATE_MEDIUM_CONFIDENCE": "medium_confidence",
    "DUPLICATE_DATE_WINDOW_DAYS": "date_window_days",
}

_config_cache: ReconciliationConfig | None = None


def _config_from_yaml(raw: dict, base: ReconciliationConfig) -> ReconciliationConfig:
    duplicates = raw.get("duplicates", {}) or {}
    thresholds = duplicates.get("thresholds", {}) or {}
    recurring = raw.get("recurring_income", {}) or {}

    return ReconciliationConfig(
        date_window_days=int(duplicates.get("date_window_days", base.date_window_days)),
        potential_threshold=int(thresholds.get("potential", base.potential_threshold)),
        high_confidence=int(thresholds.get("high_confidence", base.high_confidence)),
        medium_confidence=int(thresholds.get("medium_confidence", base.medium_confidence)),
        recurring_tolerance_percent=Decimal(
            str(recurring.get("tolerance_percent", base.recurring_tolerance_percent))
        ),
        recurring_tolerance_minimum=Decimal(
            str(recurring.get("tolerance_minimum", base.recurring_tolerance_minimum))
        ),
        recurring_close_match=Decimal(str(recurring.get("close_match", base.recurring_close_match))),
    )


def load_reconciliation_config(
    force_reload: bool = False,
    path: Path | None = None,
) -> ReconciliationConfig:
    """Load reconciliation configuration from YAML if available.

    Caches the result to avoid repeated disk I/O. Environment variables
    override the integer thresholds.
    """
    global _config_cache
    if _config_cache is not None and not force_reload and path is None:
        return _config_cache

    config = DEFAULT_CONFIG
    config_path = path or CONFIG_PATH

    if config_path.exists():
        try:
            raw = yaml.safe_load(config_path.read_text()) or {}
            if not isinstance(raw, dict):
                raise ValueError("reconciliation config must be a mapping")
            config = _config_from_yaml(raw, config)
        except (yaml.YAMLError, ValueError, TypeError, ArithmeticError) as e:
            logger.warning(
                "Failed to load reconciliation config - using defaults",
                config_path=str(config_path),
                error=str(e),
                error_type=type(e).__name__,
            )
            config = DEFAULT_CONFIG

    for env_name, field_name in _ENV_OVERRIDES.items():
        env_value = os.getenv(env_name)
        if env_value:
            config = replace(config, **{field_name: int(env_value)})

    if path is None:
        _config_cache = config
    return config
