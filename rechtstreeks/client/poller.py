"""Client-side section poller.

Keeps a local copy of the section list in sync while any section is
generating. Each fetch carries a sequence number and responses older than
the last applied one are discarded, so overlapping fetches cannot roll the
view back.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable

import httpx

from rechtstreeks.client.api import ApiError, AuthenticationLost, WorkflowApiClient
from rechtstreeks.config import get_settings
from rechtstreeks.models.sections import SECTION_STATUS_LABELS, Section, SectionKey, SectionStatus

logger = logging.getLogger(__name__)


class SectionPoller:
    """Polling controller for one summons."""

    def __init__(
        self,
        api: WorkflowApiClient,
        case_id: uuid.UUID,
        summons_id: uuid.UUID,
        *,
        poll_interval: float | None = None,
        on_update: Callable[[list[Section]], None] | None = None,
    ) -> None:
        self._api = api
        self._case_id = case_id
        self._summons_id = summons_id
        self.poll_interval = (
            poll_interval if poll_interval is not None else get_settings().section_poll_interval_seconds
        )
        self._on_update = on_update

        self._sections: list[Section] = []
        self._issued = 0
        self._applied = 0
        self._task: asyncio.Task[None] | None = None
        self.closed = False

    @property
    def sections(self) -> list[Section]:
        return list(self._sections)

    @property
    def is_generating(self) -> bool:
        return any(s.status == SectionStatus.generating for s in self._sections)

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> bool:
        """Fetch the section list once.

        Returns:
            True if the response was applied, False if it was stale or the
            poller is closed

        Raises:
            AuthenticationLost: After closing the poller
        """
        if self.closed:
            return False

        self._issued += 1
        sequence = self._issued
        try:
            sections = await self._api.list_sections(self._case_id, self._summons_id)
        except AuthenticationLost:
            await self.close()
            raise

        if self.closed or sequence < self._applied:
            logger.debug(f"Discarding stale section response {sequence} (applied {self._applied})")
            return False

        self._applied = sequence
        self._set(sections)
        return True

    def ensure_polling(self) -> None:
        """Start the refresh loop if a section is generating and no loop runs."""
        if self.closed or self.is_polling or not self.is_generating:
            return
        self._task = asyncio.create_task(self._run())

    async def generate(self, key: SectionKey) -> Section:
        """Issue generate with an optimistic local flip to generating."""
        return await self._start(key, self._api.generate)

    async def reopen(self, key: SectionKey) -> Section:
        """Issue reopen with an optimistic local flip to generating."""
        return await self._start(key, self._api.reopen)

    async def approve(self, key: SectionKey) -> Section:
        section = await self._api.approve(self._case_id, self._summons_id, key)
        await self.refresh()
        return section

    async def reject(self, key: SectionKey, feedback: str = "") -> Section:
        section = await self._api.reject(self._case_id, self._summons_id, key, feedback)
        await self.refresh()
        return section

    async def close(self) -> None:
        """Stop polling; late responses are dropped."""
        self.closed = True
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _start(
        self,
        key: SectionKey,
        command: Callable[[uuid.UUID, uuid.UUID, SectionKey], Awaitable[Section]],
    ) -> Section:
        flipped_at = self._applied
        previous = self._flip(key, SectionStatus.generating)
        try:
            section = await command(self._case_id, self._summons_id, key)
        except (ApiError, httpx.TransportError):
            # Server state wins once a fetch has landed after the flip
            if previous is not None and self._applied == flipped_at:
                self._flip(key, previous)
            raise

        if not self._merge(section):
            await self.refresh()
        self.ensure_polling()
        return section

    def _merge(self, section: Section) -> bool:
        """Replace the local copy of a section; False if it is not known yet."""
        for index, current in enumerate(self._sections):
            if current.section_key == section.section_key:
                self._sections[index] = section
                self._notify()
                return True
        return False

    def _flip(self, key: SectionKey, status: SectionStatus) -> SectionStatus | None:
        """Set a local status; returns the status it replaced."""
        for index, section in enumerate(self._sections):
            if section.section_key == key:
                self._sections[index] = section.model_copy(
                    update={"status": status, "status_label": SECTION_STATUS_LABELS[status]}
                )
                self._notify()
                return section.status
        return None

    def _set(self, sections: list[Section]) -> None:
        self._sections = list(sections)
        self._notify()

    def _notify(self) -> None:
        if self._on_update is not None:
            self._on_update(self.sections)

    async def _run(self) -> None:
        """Refresh every poll_interval until nothing is generating."""
        while not self.closed:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except AuthenticationLost:
                logger.warning("Authentication lost; section polling stopped")
                return
            except (ApiError, httpx.TransportError) as e:
                logger.warning(f"Section refresh failed, retrying: {e}")
                continue

            if not self.is_generating:
                return
