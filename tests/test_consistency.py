"""Tests for consistency levels and their selection."""
from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from abrctl.consistency import (
    ConsistencyLevel,
    ConsistencyLevelSelector,
    Transition,
    parse_level,
    transitions_for,
)

if TYPE_CHECKING:
    from conftest import ScriptedChooser


@pytest.mark.parametrize(
    ("level", "before", "after"),
    [
        (ConsistencyLevel.HOT, None, None),
        (ConsistencyLevel.SEMI_COLD, Transition.PAUSE, Transition.RESUME),
        (ConsistencyLevel.COLD, Transition.STOP, Transition.RESTART),
    ],
)
def test_transition_plan_per_level(
    level: ConsistencyLevel,
    before: Transition | None,
    after: Transition | None,
) -> None:
    """Each level maps to exactly one pre/post transition pair."""
    plan = transitions_for(level)

    assert plan.before is before
    assert plan.after is after


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("hot", ConsistencyLevel.HOT),
        ("Semi-Cold", ConsistencyLevel.SEMI_COLD),
        ("semi_cold", ConsistencyLevel.SEMI_COLD),
        (" cold ", ConsistencyLevel.COLD),
    ],
)
def test_parse_level_accepts_aliases(raw: str, expected: ConsistencyLevel) -> None:
    """Level names are case and separator tolerant."""
    assert parse_level(raw) is expected


def test_parse_level_rejects_unknown() -> None:
    """Unknown names list the allowed values."""
    with pytest.raises(ValueError, match="hot, semi-cold, cold"):
        parse_level("lukewarm")


def test_selector_returns_preset_without_prompting(
    scripted_chooser: type[ScriptedChooser],
) -> None:
    """A preset level never reaches the operator."""
    chooser = scripted_chooser()

    selected = ConsistencyLevelSelector(chooser, ConsistencyLevel.COLD).select()

    assert selected is ConsistencyLevel.COLD
    assert chooser.prompts == []


def test_selector_reprompts_until_valid(scripted_chooser: type[ScriptedChooser]) -> None:
    """Empty and unknown answers are asked again."""
    chooser = scripted_chooser(choices=[None, "tepid", "semi-cold"])

    assert ConsistencyLevelSelector(chooser).select() is ConsistencyLevel.SEMI_COLD
    assert len(chooser.prompts) == 3
    prompt, values = chooser.prompts[0]
    assert prompt == "Select the type of backup"
    assert values == ["hot", "semi-cold", "cold"]
