"""Text material for prompts: state-field formatters and template filling.

Every formatter is total: empty input yields an empty string, never
``None``, so composed state can be substituted into any template.
Formatters that shuffle take an explicit ``random.Random``.
"""

from __future__ import annotations

import json
import random
import re
from collections.abc import Mapping
from collections.abc import Sequence
from typing import Any

from agentruntime.capabilities.schemas import Action
from agentruntime.capabilities.schemas import ActionExample
from agentruntime.capabilities.schemas import Evaluator
from agentruntime.models.entities import Actor
from agentruntime.models.entities import Goal
from agentruntime.models.knowledge import KnowledgeItem
from agentruntime.models.memory import Attachment
from agentruntime.models.memory import Memory
from agentruntime.models.memory import now_ms

# Substituted for ``{{user1}}`` ... placeholders in examples.
EXAMPLE_NAMES = (
    "Alice",
    "Bashir",
    "Chen",
    "Dana",
    "Emeka",
    "Farah",
    "Gustavo",
    "Hana",
    "Ivan",
    "Jun",
    "Keira",
    "Luca",
    "Mira",
    "Noor",
    "Oskar",
    "Priya",
)
EXAMPLE_NAME_SLOTS = 5

EVALUATION_TEMPLATE = """TASK: Based on the conversation and conditions, determine which evaluation functions are appropriate to call.
Examples:
{{evaluator_examples}}

INSTRUCTIONS: You are helping me to decide which appropriate functions to call based on the conversation between {{sender_name}} and {{agent_name}}.

{{recent_messages}}

Evaluator Functions:
{{evaluators}}

TASK: Based on the conversation and conditions, determine which evaluation functions are appropriate to call.
Include the name of the function from the list above (e.g. {{evaluator_names}}) (use exact names only).
Do not include any evaluator functions that are not in the provided list.
Respond with a JSON array of the names in a code block, e.g.
```json
["NAME1", "NAME2"]
```
"""

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")
_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)
_ARRAY_RE = re.compile(r"\[.*?\]", re.DOTALL)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def add_header(header: str, body: str | None) -> str:
    """Prefix *body* with *header*; empty body gives an empty section."""
    if not body:
        return ""
    prefix = f"{header}\n" if header else ""
    return f"{prefix}{body}\n"


def compose_context(state: Mapping[str, Any], template: str) -> str:
    """Fill ``{{key}}`` placeholders from *state*; unknown keys become ``""``."""

    def _sub(match: re.Match[str]) -> str:
        value = state.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_sub, template)


def parse_json_array(text: str | None) -> list[Any] | None:
    """Extract the first JSON array from model output.

    Accepts a fenced ``json`` block or a bare array anywhere in the
    text.  Returns ``None`` when nothing parses.
    """
    if not text:
        return None
    fenced = _CODE_FENCE_RE.search(text)
    candidates = [fenced.group(1).strip()] if fenced else []
    bare = _ARRAY_RE.search(text)
    if bare:
        candidates.append(bare.group(0))
    for candidate in candidates:
        for attempt in (candidate, candidate.replace("'", '"')):
            try:
                data = json.loads(attempt)
            except (json.JSONDecodeError, ValueError):
                continue
            if isinstance(data, list):
                return data
    return None


def replace_example_names(text: str, names: Sequence[str]) -> str:
    for index, name in enumerate(names, start=1):
        text = text.replace(f"{{{{user{index}}}}}", name)
    return text


def sample_example_names(rng: random.Random) -> list[str]:
    return rng.sample(EXAMPLE_NAMES, EXAMPLE_NAME_SLOTS)


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


def format_timestamp(created_at: int, *, now: int | None = None) -> str:
    """Human relative age of an epoch-ms timestamp."""
    elapsed = max((now_ms() if now is None else now) - created_at, 0) // 1000
    if elapsed < 60:
        return "just now"
    if elapsed < 3600:
        minutes = elapsed // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    if elapsed < 86400:
        hours = elapsed // 3600
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = elapsed // 86400
    return f"{days} day{'s' if days != 1 else ''} ago"


def _actor_lookup(actors: Sequence[Actor]) -> dict[str, Actor]:
    return {actor.id: actor for actor in actors}


def format_messages(
    messages: Sequence[Memory],
    actors: Sequence[Actor],
    *,
    now: int | None = None,
) -> str:
    """Render recent-first *messages* as a chronological transcript."""
    by_id = _actor_lookup(actors)
    lines: list[str] = []
    for message in reversed(messages):
        if not message.user_id:
            continue
        actor = by_id.get(message.user_id)
        name = actor.name if actor else "Unknown User"
        attachments = message.content.attachments
        attachment_str = (
            " (Attachments: "
            + ", ".join(f"[{a.id} - {a.title} ({a.url})]" for a in attachments)
            + ")"
            if attachments
            else ""
        )
        action = message.content.action
        action_str = f" ({action})" if action and action != "null" else ""
        lines.append(
            f"({format_timestamp(message.created_at, now=now)}) "
            f"[{message.user_id[-5:]}] {name}: {message.content.text}"
            f"{attachment_str}{action_str}"
        )
    return "\n".join(lines)


def format_posts(
    messages: Sequence[Memory],
    actors: Sequence[Actor],
    *,
    conversation_header: bool = True,
    now: int | None = None,
) -> str:
    """Render *messages* as threads grouped by room, most recent room first."""
    by_id = _actor_lookup(actors)
    rooms: dict[str, list[Memory]] = {}
    for message in messages:
        if message.room_id:
            rooms.setdefault(message.room_id, []).append(message)
    for room_messages in rooms.values():
        room_messages.sort(key=lambda m: m.created_at)
    ordered = sorted(rooms.items(), key=lambda kv: kv[1][-1].created_at, reverse=True)

    threads: list[str] = []
    for room_id, room_messages in ordered:
        posts: list[str] = []
        for message in room_messages:
            if not message.user_id:
                continue
            actor = by_id.get(message.user_id)
            reply = (
                f"\nIn reply to: {message.content.in_reply_to}"
                if message.content.in_reply_to
                else ""
            )
            posts.append(
                f"Name: {actor.name if actor else 'Unknown User'} "
                f"(@{actor.username if actor and actor.username else 'unknown'})\n"
                f"ID: {message.id}{reply}\n"
                f"Date: {format_timestamp(message.created_at, now=now)}\n"
                f"Text:\n{message.content.text}"
            )
        header = f"Conversation: {room_id[-5:]}\n" if conversation_header else ""
        threads.append(header + "\n\n".join(posts))
    return "\n\n".join(threads)


def format_actors(actors: Sequence[Actor]) -> str:
    lines = []
    for actor in actors:
        tagline = f": {actor.details.tagline}" if actor.details.tagline else ""
        summary = f"\n{actor.details.summary}" if actor.details.summary else ""
        lines.append(f"{actor.name}{tagline}{summary}")
    return "\n".join(lines)


def format_goals(goals: Sequence[Goal]) -> str:
    blocks = []
    for goal in goals:
        objectives = "\n".join(
            f"- {'[x]' if o.completed else '[ ]'} {o.description} "
            f"{' (DONE)' if o.completed else ' (IN PROGRESS)'}"
            for o in goal.objectives
        )
        blocks.append(f"Goal: {goal.name}\nid: {goal.id}\nObjectives:\n{objectives}")
    return "\n".join(blocks)


def format_knowledge(items: Sequence[KnowledgeItem]) -> str:
    return "\n".join(f"- {item.content.text}" for item in items)


def format_attachments(attachments: Sequence[Attachment]) -> str:
    return "\n".join(
        f"ID: {a.id}\n"
        f"Name: {a.title}\n"
        f"URL: {a.url}\n"
        f"Type: {a.source}\n"
        f"Description: {a.description}\n"
        f"Text: {a.text}\n"
        for a in attachments
    )


def format_topics(agent_name: str, topics: Sequence[str]) -> str:
    """``"<name> is interested in a, b and c"``."""
    if not topics:
        return ""
    if len(topics) == 1:
        joined = topics[0]
    else:
        joined = ", ".join(topics[:-1]) + " and " + topics[-1]
    return f"{agent_name} is interested in {joined}"


def format_example_line(example: ActionExample, names: Sequence[str]) -> str:
    action = f" ({example.content.action})" if example.content.action else ""
    return replace_example_names(
        f"{example.user}: {example.content.text}{action}", names
    )


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


def format_action_names(actions: Sequence[Action], rng: random.Random) -> str:
    names = [action.name for action in actions]
    rng.shuffle(names)
    return ", ".join(names)


def format_actions(actions: Sequence[Action], rng: random.Random) -> str:
    shuffled = list(actions)
    rng.shuffle(shuffled)
    return ",\n".join(f"{action.name}: {action.description}" for action in shuffled)


def compose_action_examples(
    actions: Sequence[Action], count: int, rng: random.Random
) -> str:
    """Pick up to *count* examples round-robin across *actions*."""
    pools = [list(action.examples) for action in actions if action.examples]
    picked: list[Sequence[ActionExample]] = []
    index = 0
    while pools and len(picked) < count:
        slot = index % len(pools)
        pool = pools[slot]
        picked.append(pool.pop(rng.randrange(len(pool))))
        if not pool:
            del pools[slot]
        else:
            index += 1

    blocks = []
    for example in picked:
        names = sample_example_names(rng)
        blocks.append("\n" + "\n".join(format_example_line(m, names) for m in example))
    return "\n".join(blocks)


def format_evaluator_names(evaluators: Sequence[Evaluator]) -> str:
    return ",\n".join(f"'{evaluator.name}'" for evaluator in evaluators)


def format_evaluators(evaluators: Sequence[Evaluator]) -> str:
    return ",\n".join(f"'{e.name}: {e.description}'" for e in evaluators)


def format_evaluator_examples(
    evaluators: Sequence[Evaluator], rng: random.Random
) -> str:
    blocks = []
    for evaluator in evaluators:
        for example in evaluator.examples:
            names = sample_example_names(rng)
            messages = "\n".join(
                format_example_line(m, names) for m in example.messages
            )
            blocks.append(
                f"Context:\n{replace_example_names(example.context, names)}\n\n"
                f"Messages:\n{messages}\n\n"
                f"Outcome:\n{replace_example_names(example.outcome, names)}"
            )
    return "\n\n".join(blocks)
