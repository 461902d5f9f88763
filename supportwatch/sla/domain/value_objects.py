"""
SLA Value Objects
==================

Immutable value objects for SLA domain.

Value objects are defined by their attributes rather than an identity.
They are immutable and can be freely shared.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from supportwatch.config import Priority, Severity, VALID_PRIORITIES

_DEFAULT_THRESHOLDS = {
    Priority.URGENT: (15, 240),
    Priority.HIGH: (60, 480),
    Priority.MEDIUM: (240, 1440),
    Priority.LOW: (480, 2880),
}


class SLAThresholds(BaseModel):
    """Response and resolution limits for one priority tier, in minutes."""
    model_config = ConfigDict(frozen=True)

    response_minutes: int = Field(gt=0)
    resolution_minutes: int = Field(gt=0)


class EscalationLevelConfig(BaseModel):
    """Configuration for a single escalation level."""
    model_config = ConfigDict(frozen=True)

    level: int = Field(ge=1, description="Escalation level (1-based)")
    re_escalate_after_minutes: Optional[int] = Field(
        default=None,
        gt=0,
        description="Unresolved time at this level before moving to the next"
    )
    notify: List[str] = Field(default_factory=list, description="Users, groups or destinations")


def _default_tiers() -> Dict[str, SLAThresholds]:
    return {
        priority: SLAThresholds(response_minutes=response, resolution_minutes=resolution)
        for priority, (response, resolution) in _DEFAULT_THRESHOLDS.items()
    }


class SLAConfig(BaseModel):
    """
    SLA policy loaded from YAML.

    Thresholds come from `applications[<application_id>][<priority>]` when
    present, otherwise from `defaults[<priority>]`.

    A violation is critical once the overrun reaches
    `critical_overrun_ratio` x threshold (0.5 means 50% past the limit).
    """
    model_config = ConfigDict(frozen=True)

    defaults: Dict[str, SLAThresholds] = Field(default_factory=_default_tiers)
    applications: Dict[str, Dict[str, SLAThresholds]] = Field(default_factory=dict)
    critical_overrun_ratio: float = Field(default=0.5, ge=0)
    escalation_levels: List[EscalationLevelConfig] = Field(
        default_factory=lambda: [
            EscalationLevelConfig(level=1, re_escalate_after_minutes=60, notify=["support-leads"]),
            EscalationLevelConfig(level=2, re_escalate_after_minutes=120, notify=["support-managers"]),
            EscalationLevelConfig(level=3, notify=["support-directors"]),
        ]
    )

    @field_validator("defaults")
    @classmethod
    def validate_defaults(cls, v: Dict[str, SLAThresholds]) -> Dict[str, SLAThresholds]:
        """Fill in priorities missing from the file."""
        merged = _default_tiers()
        for priority, thresholds in v.items():
            if priority not in VALID_PRIORITIES:
                raise ValueError(f"Unknown priority '{priority}' in SLA defaults")
            merged[priority] = thresholds
        return merged

    @field_validator("applications")
    @classmethod
    def validate_applications(
        cls,
        v: Dict[str, Dict[str, SLAThresholds]]
    ) -> Dict[str, Dict[str, SLAThresholds]]:
        for application_id, tiers in v.items():
            unknown = [priority for priority in tiers if priority not in VALID_PRIORITIES]
            if unknown:
                raise ValueError(f"Unknown priorities {unknown} for application '{application_id}'")
        return v

    @model_validator(mode="after")
    def validate_escalation_levels(self) -> "SLAConfig":
        levels = [entry.level for entry in self.escalation_levels]
        if len(levels) != len(set(levels)):
            raise ValueError("Escalation levels must be unique")
        return self

    def thresholds_for(self, application_id: Optional[str], priority: str) -> SLAThresholds:
        if application_id and priority in self.applications.get(application_id, {}):
            return self.applications[application_id][priority]
        return self.defaults.get(priority) or self.defaults[Priority.MEDIUM]

    def level_config(self, level: int) -> Optional[EscalationLevelConfig]:
        for entry in self.escalation_levels:
            if entry.level == level:
                return entry
        return None

    @property
    def max_level(self) -> int:
        return max((entry.level for entry in self.escalation_levels), default=1)

    def audience_for_level(self, level: int) -> List[str]:
        entry = self.level_config(level)
        return list(entry.notify) if entry else []


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class - all SLA arithmetic in one place.
    """

    @staticmethod
    def elapsed_minutes(start: datetime, end: datetime) -> float:
        return max(0.0, (end - start).total_seconds() / 60)

    @staticmethod
    def is_breached(elapsed_minutes: float, threshold_minutes: int) -> bool:
        return elapsed_minutes > threshold_minutes

    @staticmethod
    def severity(elapsed_minutes: float, threshold_minutes: int, critical_overrun_ratio: float) -> str:
        """
        Warning for a fresh breach, critical once the overrun reaches the
        configured share of the threshold.
        """
        overrun = elapsed_minutes - threshold_minutes
        if overrun >= threshold_minutes * critical_overrun_ratio:
            return Severity.CRITICAL
        return Severity.WARNING
