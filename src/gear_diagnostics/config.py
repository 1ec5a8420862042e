"""Engine configuration.

Defaults live in code. ``EngineConfig.from_env()`` overrides them from
``GEAR_DIAG_*`` environment variables, and the CLI overrides those again
from its options.
"""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field

from .models.dtc import Severity
from .models.health import HealthSystem

ENV_PREFIX = "GEAR_DIAG_"

DEFAULT_DATA_DIR = Path.home() / ".gear-diagnostics"


class HealthScoreConfig(BaseModel):
    """Weights and thresholds used by the health score calculation."""

    severity_penalty: Dict[Severity, float] = Field(
        default_factory=lambda: {
            Severity.CRITICAL: 40.0,
            Severity.HIGH: 25.0,
            Severity.MEDIUM: 15.0,
            Severity.LOW: 5.0,
        }
    )

    # Recency decay: a code detected `recency_window_days` ago still counts
    # with `recency_floor` of its penalty.
    recency_window_days: float = Field(default=90.0, gt=0)
    recency_floor: float = Field(default=0.25, ge=0.0, le=1.0)

    # Share of the penalty a resolved code keeps until the window passes.
    resolved_weight: float = Field(default=0.1, ge=0.0, le=1.0)

    # Points lost per point of maintenance compliance shortfall.
    maintenance_weight: float = Field(default=0.2, ge=0.0)

    critical_code_penalty: float = Field(default=5.0, ge=0.0)
    trend_epsilon: float = Field(default=1.0, ge=0.0)

    system_weights: Dict[HealthSystem, float] = Field(
        default_factory=lambda: {
            HealthSystem.ENGINE: 2.0,
            HealthSystem.BRAKES: 2.0,
            HealthSystem.TRANSMISSION: 1.5,
            HealthSystem.FUEL: 1.0,
            HealthSystem.COOLING: 1.0,
            HealthSystem.SUSPENSION: 1.0,
            HealthSystem.EXHAUST: 0.75,
            HealthSystem.ELECTRICAL: 0.75,
        }
    )


class EngineConfig(BaseModel):
    """Top-level configuration for the diagnostics engine."""

    # Telemetry
    sample_interval_ms: int = Field(default=250, gt=0)

    # Adapter
    adapter_port: Optional[str] = Field(default=None, description="Serial port, auto-detect if None")
    adapter_baudrate: Optional[int] = Field(default=None, description="Baud rate, auto-detect if None")
    adapter_protocol: Optional[str] = Field(default=None)
    adapter_timeout: float = Field(default=3.0, gt=0)

    # Reasoning oracle
    oracle_url: Optional[str] = Field(default=None)
    oracle_api_key: Optional[str] = Field(default=None)
    oracle_timeout: float = Field(default=30.0, gt=0)

    # Recalls
    nhtsa_timeout: float = Field(default=8.0, gt=0)

    # Storage
    data_dir: Path = Field(default=DEFAULT_DATA_DIR)

    # DTC ingestion: re-seen codes refresh detected_at/mileage past these deltas
    refresh_mileage_delta: int = Field(default=100, ge=0)
    refresh_interval_s: float = Field(default=3600.0, ge=0)

    max_symptom_chars: int = Field(default=2000, gt=0)

    health: HealthScoreConfig = Field(default_factory=HealthScoreConfig)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "EngineConfig":
        """Build a config from ``GEAR_DIAG_*`` environment variables."""
        env = os.environ if environ is None else environ
        values = {}

        for name in cls.model_fields:
            if name == "health":
                continue
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        # pydantic coerces the strings to the declared field types
        return cls.model_validate(values)
