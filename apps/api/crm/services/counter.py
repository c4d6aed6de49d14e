"""Live count of leads that need a viewer's attention.

The counter is seeded from an authoritative store count and then adjusted in
place from the lead change stream. Events may arrive late, twice, or not at
all, so the reducer clamps at zero and treats any state it cannot reconcile
as drift, which triggers a fresh count from the store.
"""
from __future__ import annotations

import logging
from collections import deque
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..db.session import transaction
from ..models.lead import LeadStatus
from ..models.staff import StaffRole
from ..repositories import leads as leads_repo
from ..schemas.changes import ChangeOp, LeadChange
from .changes import LeadSubscription

logger = logging.getLogger(__name__)


class _LeadLike(Protocol):
    status: LeadStatus
    assigned_to: str | None


@dataclass(frozen=True, slots=True)
class ActionablePredicate:
    """Decide whether a lead counts towards a viewer's badge."""

    staff_id: str
    restricted: bool

    @classmethod
    def for_viewer(
        cls,
        staff_id: str,
        role: StaffRole | str,
        restricted_roles: Collection[str] | None = None,
    ) -> "ActionablePredicate":
        role_value = role.value if isinstance(role, StaffRole) else str(role)
        restricted = restricted_roles if restricted_roles is not None else settings.restricted_roles
        return cls(staff_id=staff_id, restricted=role_value in restricted)

    def __call__(self, lead: _LeadLike | None) -> bool:
        if lead is None or lead.status != LeadStatus.NEW:
            return False
        if self.restricted:
            return lead.assigned_to == self.staff_id
        return True

    def count_filters(self) -> dict[str, Any]:
        """Keyword filters for the equivalent store-side count."""

        return {
            "status": LeadStatus.NEW,
            "assigned_to": self.staff_id if self.restricted else None,
        }


async def fetch_count(session: AsyncSession, predicate: ActionablePredicate) -> int:
    """Return the authoritative number of leads matching ``predicate``."""

    async with transaction(session, "count leads"):
        return await leads_repo.count_leads(session, **predicate.count_filters())


CountFetcher = Callable[[ActionablePredicate], Awaitable[int]]
CountListener = Callable[[int], Awaitable[None]]


class LiveCounter:
    """Reducer over the lead change stream for one viewing session."""

    def __init__(
        self,
        predicate: ActionablePredicate,
        fetch: CountFetcher,
        *,
        on_change: CountListener | None = None,
        dedupe_window: int | None = None,
    ) -> None:
        self.predicate = predicate
        self._fetch = fetch
        self._on_change = on_change
        self._count = 0
        self._mounted = False
        window = dedupe_window or settings.counter_dedupe_window
        self._seen_order: deque[str] = deque(maxlen=window)
        self._seen: set[str] = set()
        self._synced_at: datetime | None = None
        self.resyncs = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> int:
        """Seed the count from the store."""

        self._mounted = True
        await self._sync()
        return self._count

    async def refresh(self) -> int:
        """Replace the local count with the store's."""

        self.resyncs += 1
        await self._sync()
        return self._count

    def apply(self, change: LeadChange) -> bool:
        """Fold one change into the count.

        Returns True when the local count can no longer be trusted and must be
        re-fetched. Changes emitted before the last authoritative fetch
        started are already part of the count and are ignored.
        """

        if self._synced_at is not None and change.emitted_at < self._synced_at:
            return False
        if self._already_seen(change.event_id):
            return False

        if change.op is ChangeOp.INSERT:
            if self.predicate(change.after):
                self._count += 1
            return False

        if change.op is ChangeOp.DELETE:
            if self.predicate(change.before):
                return self._decrement()
            return False

        if change.before is None:
            logger.debug("Update %s arrived without a before image", change.event_id)
            return True

        was_counted = self.predicate(change.before)
        is_counted = self.predicate(change.after)
        if was_counted and not is_counted:
            return self._decrement()
        if is_counted and not was_counted:
            self._count += 1
        return False

    async def handle(self, change: LeadChange) -> int:
        """Apply ``change`` and resynchronise on drift."""

        previous = self._count
        if self.apply(change):
            logger.info("Live counter for %s drifted, re-fetching", self.predicate.staff_id)
            return await self.refresh()
        if self._count != previous:
            await self._notify()
        return self._count

    async def run(self, subscription: LeadSubscription) -> None:
        """Consume ``subscription`` until cancelled."""

        async for change in subscription:
            if subscription.take_lagged():
                # Queued changes predate the refetch and are already in the store count.
                subscription.drain()
                await self.refresh()
                continue
            await self.handle(change)

    def _decrement(self) -> bool:
        if self._count == 0:
            return True
        self._count -= 1
        return False

    def _already_seen(self, event_id: str) -> bool:
        if event_id in self._seen:
            return True
        if len(self._seen_order) == self._seen_order.maxlen:
            self._seen.discard(self._seen_order[0])
        self._seen_order.append(event_id)
        self._seen.add(event_id)
        return False

    async def _sync(self) -> None:
        self._synced_at = datetime.now(timezone.utc)
        await self._set(await self._fetch(self.predicate))

    async def _set(self, value: int) -> None:
        self._count = max(0, int(value))
        await self._notify()

    async def _notify(self) -> None:
        if self._on_change is not None:
            await self._on_change(self._count)
