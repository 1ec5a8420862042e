"""Health score calculation from trouble codes and maintenance compliance."""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional
from uuid import NAMESPACE_URL, uuid5

from ..config import HealthScoreConfig
from ..decoders.dtc import DTCDecoder
from ..errors import ValidationError
from ..models.dtc import CodeStatus, DiagnosticCode, Severity
from ..models.health import HealthStatus, HealthSystem, HealthSystemScore, Trend, VehicleHealthScore
from ..storage.repository import ComplianceSource
from ..storage.store import DiagnosticStore

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400.0


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def recency_factor(age_days: float, config: HealthScoreConfig) -> float:
    """1.0 at detection, falling linearly to the floor over the recency window."""
    age_days = max(0.0, age_days)
    if age_days >= config.recency_window_days:
        return config.recency_floor
    return 1.0 - (1.0 - config.recency_floor) * age_days / config.recency_window_days


def code_penalty(code: DiagnosticCode, now: datetime, config: HealthScoreConfig) -> float:
    """Points a code takes off its system. Zero for codes that no longer count."""
    base = config.severity_penalty.get(code.severity, 0.0)

    if code.status == CodeStatus.FALSE_POSITIVE:
        return 0.0

    if code.is_open:
        age_days = (now - code.detected_at).total_seconds() / SECONDS_PER_DAY
        return base * recency_factor(age_days, config)

    cleared = code.cleared_at or code.updated_at
    age_days = (now - cleared).total_seconds() / SECONDS_PER_DAY
    if age_days > config.recency_window_days:
        return 0.0
    return base * config.resolved_weight * recency_factor(age_days, config)


def compute_trend(overall: int, previous_score: Optional[int], epsilon: float) -> Trend:
    if previous_score is None:
        return Trend.STABLE
    delta = overall - previous_score
    if abs(delta) <= epsilon:
        return Trend.STABLE
    return Trend.IMPROVING if delta > 0 else Trend.DECLINING


def compute_health_score(
    codes: Iterable[DiagnosticCode],
    compliance_pct: float,
    previous_score: Optional[int],
    now: datetime,
    config: Optional[HealthScoreConfig] = None,
    vehicle_id: str = "",
    user_id: Optional[str] = None,
    mileage: Optional[int] = None,
    model_year: Optional[int] = None,
    decoder: Optional[DTCDecoder] = None,
) -> VehicleHealthScore:
    """
    Score every system and the vehicle as a whole.

    Pure: the same inputs always give the same result, including the
    health_id, which is derived from the vehicle and ``now``.

    Args:
        codes: All code records for the vehicle, any status
        compliance_pct: Maintenance compliance, 0-100
        previous_score: Last stored overall score, for the trend
        now: Reference time for recency decay
        config: Weights and thresholds

    Returns:
        The health score

    Raises:
        ValidationError: Compliance outside 0-100
    """
    config = config or HealthScoreConfig()
    decoder = decoder or DTCDecoder()

    if not 0.0 <= compliance_pct <= 100.0:
        raise ValidationError("Maintenance compliance must be between 0 and 100",
                              {"compliance_pct": compliance_pct})

    penalties: Dict[HealthSystem, float] = {system: 0.0 for system in HealthSystem}
    factors: Dict[HealthSystem, List[str]] = {system: [] for system in HealthSystem}

    ordered = sorted(codes, key=lambda c: (c.code, c.diagnostic_id))
    open_codes = [c for c in ordered if c.is_open]
    # Pending codes still cost system points but not the flat critical penalty
    critical_active = [c for c in open_codes
                       if c.status == CodeStatus.ACTIVE and c.severity == Severity.CRITICAL]

    for code in ordered:
        penalty = code_penalty(code, now, config)
        if penalty <= 0.0:
            continue

        system = decoder.system_for(code.code, code.description)
        penalties[system] += penalty
        if code.is_open:
            factors[system].append(f"{code.code} {code.severity.value}: {code.description}")
        else:
            factors[system].append(f"{code.code} recently {code.status.value}")

    maintenance_penalty = (100.0 - compliance_pct) * config.maintenance_weight

    systems: List[HealthSystemScore] = []
    for system in HealthSystem:
        system_factors = factors[system]
        if maintenance_penalty > 0:
            system_factors = system_factors + [f"Maintenance compliance {compliance_pct:.0f}%"]

        score = int(round(_clamp(100.0 - penalties[system] - maintenance_penalty)))
        systems.append(HealthSystemScore(
            system=system,
            score=score,
            status=HealthStatus.from_score(score),
            factors=system_factors,
        ))

    total_weight = sum(config.system_weights.get(s.system, 1.0) for s in systems)
    weighted = sum(s.score * config.system_weights.get(s.system, 1.0) for s in systems)
    overall_raw = weighted / total_weight if total_weight else 100.0
    overall_raw -= config.critical_code_penalty * len(critical_active)
    overall = int(round(_clamp(overall_raw)))

    return VehicleHealthScore(
        health_id=str(uuid5(NAMESPACE_URL, f"health:{vehicle_id}:{now.isoformat()}")),
        vehicle_id=vehicle_id,
        user_id=user_id,
        overall_score=overall,
        systems=systems,
        trend=compute_trend(overall, previous_score, config.trend_epsilon),
        previous_score=previous_score,
        active_code_count=len(open_codes),
        maintenance_compliance_pct=compliance_pct,
        mileage=mileage,
        model_year=model_year,
        calculated_at=now,
    )


class HealthScoreEngine:
    """Gathers inputs for a vehicle, scores it and stores the result."""

    def __init__(
        self,
        store: DiagnosticStore,
        compliance: ComplianceSource,
        config: Optional[HealthScoreConfig] = None,
        decoder: Optional[DTCDecoder] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._compliance = compliance
        self._config = config or HealthScoreConfig()
        self._decoder = decoder or DTCDecoder()
        self._clock = clock

    def calculate(
        self,
        vehicle_id: str,
        user_id: Optional[str] = None,
        mileage: Optional[int] = None,
        model_year: Optional[int] = None,
    ) -> VehicleHealthScore:
        """Compute and store a new score for the vehicle."""
        with self._store.lock(vehicle_id):
            codes = self._store.get_codes(vehicle_id)
            previous = self._store.latest_health_score(vehicle_id)
            compliance = self._compliance.compliance_pct(vehicle_id)

            score = compute_health_score(
                codes,
                compliance,
                previous.overall_score if previous else None,
                self._clock(),
                config=self._config,
                vehicle_id=vehicle_id,
                user_id=user_id,
                mileage=mileage,
                model_year=model_year,
                decoder=self._decoder,
            )
            self._store.add_health_score(score)

        logger.info(f"Health score for {vehicle_id}: {score.overall_score} ({score.trend.value})")
        return score

    def latest(self, vehicle_id: str) -> Optional[VehicleHealthScore]:
        return self._store.latest_health_score(vehicle_id)

    def history(self, vehicle_id: str) -> List[VehicleHealthScore]:
        return self._store.health_history(vehicle_id)
