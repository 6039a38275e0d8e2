"""Store adapter contract for accounts, rooms, participants and goals.

The runtime only establishes existence (create-if-absent) and reads
membership; it never deletes these entities.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable

from agentruntime.models.entities import Account
from agentruntime.models.entities import Actor
from agentruntime.models.entities import ActorDetails
from agentruntime.models.entities import Goal
from agentruntime.models.entities import GoalStatus


@runtime_checkable
class DatabaseAdapter(Protocol):
    async def get_account_by_id(self, user_id: str) -> Account | None: ...

    async def create_account(self, account: Account) -> bool: ...

    async def get_room(self, room_id: str) -> str | None: ...

    async def create_room(self, room_id: str | None = None) -> str: ...

    async def get_participants_for_account(self, user_id: str) -> list[str]: ...

    async def get_participants_for_room(self, room_id: str) -> list[str]: ...

    async def add_participant(self, user_id: str, room_id: str) -> bool: ...

    async def get_rooms_for_participants(self, user_ids: Sequence[str]) -> list[str]: ...

    async def get_actor_details(self, room_id: str) -> list[Actor]: ...

    async def get_goals(
        self,
        room_id: str,
        *,
        user_id: str | None = None,
        only_in_progress: bool = True,
        count: int = 5,
    ) -> list[Goal]: ...


class InMemoryDatabaseAdapter:
    """Dictionary-backed adapter for tests and single-process deployments."""

    def __init__(self) -> None:
        self.accounts: dict[str, Account] = {}
        self.rooms: set[str] = set()
        # room_id -> ordered participant user ids
        self.participants: dict[str, list[str]] = {}
        self.goals: list[Goal] = []

    async def get_account_by_id(self, user_id: str) -> Account | None:
        return self.accounts.get(user_id)

    async def create_account(self, account: Account) -> bool:
        if account.id in self.accounts:
            return False
        self.accounts[account.id] = account
        return True

    async def get_room(self, room_id: str) -> str | None:
        return room_id if room_id in self.rooms else None

    async def create_room(self, room_id: str | None = None) -> str:
        room_id = room_id or str(uuid.uuid4())
        self.rooms.add(room_id)
        self.participants.setdefault(room_id, [])
        return room_id

    async def get_participants_for_account(self, user_id: str) -> list[str]:
        return [room for room, users in self.participants.items() if user_id in users]

    async def get_participants_for_room(self, room_id: str) -> list[str]:
        return list(self.participants.get(room_id, []))

    async def add_participant(self, user_id: str, room_id: str) -> bool:
        users = self.participants.setdefault(room_id, [])
        if user_id in users:
            return False
        users.append(user_id)
        return True

    async def get_rooms_for_participants(self, user_ids: Sequence[str]) -> list[str]:
        wanted = set(user_ids)
        return [room for room, users in self.participants.items() if wanted & set(users)]

    async def get_actor_details(self, room_id: str) -> list[Actor]:
        actors: list[Actor] = []
        for user_id in self.participants.get(room_id, []):
            account = self.accounts.get(user_id)
            if account is None:
                continue
            details = account.details if isinstance(account.details, dict) else {}
            actors.append(
                Actor(
                    id=account.id,
                    name=account.name,
                    username=account.username,
                    details=ActorDetails(
                        tagline=str(details.get("tagline", "")),
                        summary=str(details.get("summary", "")),
                        quote=str(details.get("quote", "")),
                    ),
                )
            )
        return actors

    async def create_goal(self, goal: Goal) -> Goal:
        stored = goal if goal.id else goal.model_copy(update={"id": str(uuid.uuid4())})
        self.goals.append(stored)
        return stored

    async def get_goals(
        self,
        room_id: str,
        *,
        user_id: str | None = None,
        only_in_progress: bool = True,
        count: int = 5,
    ) -> list[Goal]:
        goals = [
            g
            for g in self.goals
            if g.room_id == room_id
            and (user_id is None or g.user_id == user_id)
            and (not only_in_progress or g.status == GoalStatus.IN_PROGRESS)
        ]
        return goals[:count]
