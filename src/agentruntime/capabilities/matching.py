"""Mapping free-text action labels onto registered actions.

Labels come from a language model, so matching is deliberately loose:
both sides are lower-cased with underscores removed, and a match is a
substring test in either direction.  Names are tried before similes,
and within each pass the first action in registration order wins, even
when a later action would match more precisely.
"""

from __future__ import annotations

from collections.abc import Iterable

from agentruntime.capabilities.schemas import Action


def normalize_name(label: str | None) -> str:
    if not label:
        return ""
    return label.strip().lower().replace("_", "")


def names_match(candidate: str, label: str | None) -> bool:
    """True when the normalized forms contain one another."""
    a = normalize_name(candidate)
    b = normalize_name(label)
    if not a or not b:
        return False
    return a in b or b in a


def resolve_action(label: str | None, actions: Iterable[Action]) -> Action | None:
    """Return the action *label* refers to, or ``None``."""
    if not normalize_name(label):
        return None
    ordered = list(actions)
    for action in ordered:
        if names_match(action.name, label):
            return action
    for action in ordered:
        if any(names_match(simile, label) for simile in action.similes):
            return action
    return None
