"""Backup consistency levels and the stack transitions each one requires."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .prompts import Choice, ChoiceProvider, require_choice


class Transition(str, Enum):
    """Lifecycle transitions the controller can apply to the stack."""

    STOP = "stop"
    PAUSE = "pause"
    RESUME = "resume"
    RESTART = "restart"


class ConsistencyLevel(str, Enum):
    """Trade-off between data consistency and stack availability."""

    HOT = "hot"
    SEMI_COLD = "semi-cold"
    COLD = "cold"

    @property
    def title(self) -> str:
        """Return the human readable name."""
        return _DESCRIPTIONS[self][0]

    @property
    def summary(self) -> str:
        """Return a one-line description of the trade-off."""
        return _DESCRIPTIONS[self][1]


_DESCRIPTIONS: dict[ConsistencyLevel, tuple[str, str]] = {
    ConsistencyLevel.HOT: (
        "Hot Backup",
        "Fast, zero downtime (experimental: keeps the stack running, data may be inconsistent)",
    ),
    ConsistencyLevel.SEMI_COLD: (
        "Semi-Cold Backup",
        "Minimal downtime (pauses the stack briefly for data safety)",
    ),
    ConsistencyLevel.COLD: (
        "Cold Backup",
        "Full consistency (stops the stack, restarts it afterwards)",
    ),
}

_ALIASES: dict[str, ConsistencyLevel] = {
    "hot": ConsistencyLevel.HOT,
    "hot-backup": ConsistencyLevel.HOT,
    "semi-cold": ConsistencyLevel.SEMI_COLD,
    "semicold": ConsistencyLevel.SEMI_COLD,
    "semi-cold-backup": ConsistencyLevel.SEMI_COLD,
    "cold": ConsistencyLevel.COLD,
    "cold-backup": ConsistencyLevel.COLD,
}


@dataclass(frozen=True, slots=True)
class TransitionPlan:
    """Transitions applied before and after data capture."""

    before: Transition | None
    after: Transition | None


_PLANS: dict[ConsistencyLevel, TransitionPlan] = {
    ConsistencyLevel.HOT: TransitionPlan(before=None, after=None),
    ConsistencyLevel.SEMI_COLD: TransitionPlan(before=Transition.PAUSE, after=Transition.RESUME),
    ConsistencyLevel.COLD: TransitionPlan(before=Transition.STOP, after=Transition.RESTART),
}


def transitions_for(level: ConsistencyLevel) -> TransitionPlan:
    """Return the pre/post capture transitions for *level*."""
    return _PLANS[level]


def parse_level(value: str) -> ConsistencyLevel:
    """Return the level named by *value*; raise ``ValueError`` when unknown."""
    key = value.strip().lower().replace("_", "-")
    try:
        return _ALIASES[key]
    except KeyError:
        allowed = ", ".join(level.value for level in ConsistencyLevel)
        raise ValueError(f"Unknown backup type '{value}'. Allowed: {allowed}.") from None


class ConsistencyLevelSelector:
    """Obtain exactly one consistency level from a preset or the operator."""

    def __init__(self, chooser: ChoiceProvider, preset: ConsistencyLevel | None = None) -> None:
        self.chooser = chooser
        self.preset = preset

    def select(self) -> ConsistencyLevel:
        if self.preset is not None:
            return self.preset
        options = [
            Choice(value=level.value, label=f"{level.title} - {level.summary}")
            for level in ConsistencyLevel
        ]
        value = require_choice(self.chooser, "Select the type of backup", options)
        return ConsistencyLevel(value)


__all__ = [
    "ConsistencyLevel",
    "ConsistencyLevelSelector",
    "Transition",
    "TransitionPlan",
    "parse_level",
    "transitions_for",
]
