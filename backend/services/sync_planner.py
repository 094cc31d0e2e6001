"""Reconciliation planner - diffs a directory snapshot against local users.

Pure functions only: no database or network access. The output is an
ordered list of actions the sync job applies one by one.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Union

from integrations.directory_protocol import DirectoryEntry
from services.user_repository import LocalUserRecord

logger = logging.getLogger(__name__)

REMOVED_FROM_DIRECTORY = "removed from directory"
DISABLED_IN_DIRECTORY = "disabled in directory"

REQUIRED_ATTRIBUTES = ("external_id", "username", "email")

# Local fields kept in step with the directory
SYNCED_FIELDS = ("username", "email", "display_name")


@dataclass(frozen=True)
class CreateUser:
    """Create a local user for a directory entry seen for the first time."""

    entry: DirectoryEntry
    kind: str = field(default="create", init=False)

    @property
    def username(self) -> str | None:
        return self.entry.username

    @property
    def external_id(self) -> str | None:
        return self.entry.external_id


@dataclass(frozen=True)
class UpdateUser:
    """Apply ``changes`` (only the fields that differ) to an existing user."""

    user: LocalUserRecord
    entry: DirectoryEntry
    changes: dict[str, Any]
    kind: str = field(default="update", init=False)

    @property
    def username(self) -> str | None:
        return self.entry.username

    @property
    def external_id(self) -> str | None:
        return self.user.external_id


@dataclass(frozen=True)
class DeactivateUser:
    """Mark a directory-sourced user inactive. Users are never deleted."""

    user: LocalUserRecord
    reason: str
    kind: str = field(default="deactivate", init=False)

    @property
    def username(self) -> str:
        return self.user.username

    @property
    def external_id(self) -> str | None:
        return self.user.external_id


SyncAction = Union[CreateUser, UpdateUser, DeactivateUser]


@dataclass(frozen=True)
class PlannerNote:
    """Something the planner noticed but could not turn into an action."""

    level: str  # "info" | "warning" | "error"
    message: str
    external_id: str | None = None
    username: str | None = None
    details: dict | None = None


@dataclass
class SyncPlan:
    """Ordered actions plus the notes produced while planning."""

    actions: list[SyncAction] = field(default_factory=list)
    notes: list[PlannerNote] = field(default_factory=list)
    entry_count: int = 0

    @property
    def creates(self) -> int:
        return sum(1 for a in self.actions if isinstance(a, CreateUser))

    @property
    def updates(self) -> int:
        return sum(1 for a in self.actions if isinstance(a, UpdateUser))

    @property
    def deactivates(self) -> int:
        return sum(1 for a in self.actions if isinstance(a, DeactivateUser))

    @property
    def removals(self) -> int:
        """Deactivations of users the directory no longer returns."""
        return sum(
            1 for a in self.actions
            if isinstance(a, DeactivateUser) and a.reason == REMOVED_FROM_DIRECTORY
        )

    @property
    def work_items(self) -> int:
        """Progress units: one per directory entry plus one per removal."""
        return self.entry_count + self.removals


def _missing_attributes(entry: DirectoryEntry) -> list[str]:
    return [name for name in REQUIRED_ATTRIBUTES if not getattr(entry, name)]


def _diff(user: LocalUserRecord, entry: DirectoryEntry) -> dict[str, Any]:
    """Fields of ``user`` that differ from ``entry``.

    An entry without a display name leaves the local one alone.
    """
    changes: dict[str, Any] = {}
    for name in SYNCED_FIELDS:
        new = getattr(entry, name)
        if name == "display_name" and new is None:
            continue
        if getattr(user, name) != new:
            changes[name] = new
    return changes


def plan(
    entries: Iterable[DirectoryEntry],
    existing_users: Iterable[LocalUserRecord],
) -> SyncPlan:
    """Compute the actions that bring local users in line with the directory.

    Args:
        entries: Every entry of the current directory snapshot.
        existing_users: Local users. Users without an external id were
            created locally and are ignored.

    Returns:
        A SyncPlan whose creates and updates follow directory order and
        whose deactivations come last.
    """
    result = SyncPlan()

    # 1. external id -> entry (last duplicate wins)
    current: dict[str, DirectoryEntry] = {}
    seen_ids: set[str] = set()
    for entry in entries:
        result.entry_count += 1
        if not entry.external_id:
            result.notes.append(PlannerNote(
                level="error",
                message="Directory entry has no external identifier; skipped",
                username=entry.username,
                details={"dn": entry.dn, "missing": ["external_id"]},
            ))
            continue
        seen_ids.add(entry.external_id)
        if entry.external_id in current:
            result.notes.append(PlannerNote(
                level="warning",
                message=(
                    f"Duplicate external identifier {entry.external_id!r} in "
                    "directory results; using the last entry"
                ),
                external_id=entry.external_id,
                username=entry.username,
                details={
                    "dn": entry.dn,
                    "replaced_dn": current[entry.external_id].dn,
                },
            ))
        current[entry.external_id] = entry

    # 2. external id -> directory-sourced local user
    existing: dict[str, LocalUserRecord] = {
        user.external_id: user
        for user in existing_users
        if user.external_id is not None
    }

    deactivations: list[DeactivateUser] = []

    # 3 + 4. creates and updates in directory order
    for external_id, entry in current.items():
        missing = _missing_attributes(entry)
        if missing:
            result.notes.append(PlannerNote(
                level="error",
                message=(
                    f"Directory entry {external_id!r} is missing required "
                    f"attribute(s): {', '.join(missing)}; skipped"
                ),
                external_id=external_id,
                username=entry.username,
                details={"dn": entry.dn, "missing": missing},
            ))
            continue

        user = existing.get(external_id)
        if user is None:
            if not entry.enabled:
                result.notes.append(PlannerNote(
                    level="info",
                    message=f"Directory account {entry.username} is disabled; not created",
                    external_id=external_id,
                    username=entry.username,
                ))
                continue
            result.actions.append(CreateUser(entry=entry))
            continue

        changes = _diff(user, entry)
        if not entry.enabled:
            if user.is_active:
                deactivations.append(DeactivateUser(user=user, reason=DISABLED_IN_DIRECTORY))
        elif not user.is_active:
            changes["is_active"] = True
        if changes:
            result.actions.append(UpdateUser(user=user, entry=entry, changes=changes))

    # 5. users no longer returned by the directory; entries skipped above
    # for missing attributes still count as present
    for external_id, user in existing.items():
        if external_id not in seen_ids and user.is_active:
            deactivations.append(DeactivateUser(user=user, reason=REMOVED_FROM_DIRECTORY))

    # 6. deactivations after every create/update
    result.actions.extend(deactivations)

    logger.info(
        "Reconciliation plan: %d entries, %d create, %d update, %d deactivate, %d notes",
        result.entry_count, result.creates, result.updates,
        result.deactivates, len(result.notes),
    )
    return result
