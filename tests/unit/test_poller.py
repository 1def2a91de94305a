"""Unit tests for the client-side section poller."""

import asyncio
import uuid
from datetime import datetime, timezone

import pytest

from rechtstreeks.client.api import ApiError, AuthenticationLost
from rechtstreeks.client.poller import SectionPoller
from rechtstreeks.models.sections import (
    SECTION_SPECS,
    SECTION_STATUS_LABELS,
    Section,
    SectionKey,
    SectionStatus,
)

CASE_ID = uuid.uuid4()
SUMMONS_ID = uuid.uuid4()


def _sections(**statuses: SectionStatus) -> list[Section]:
    now = datetime.now(timezone.utc)
    result = []
    for spec in SECTION_SPECS:
        status = statuses.get(spec.key.value, SectionStatus.pending)
        result.append(
            Section(
                id=uuid.uuid4(),
                summons_id=SUMMONS_ID,
                section_key=spec.key,
                section_name=spec.name,
                step_order=spec.step_order,
                status=status,
                status_label=SECTION_STATUS_LABELS[status],
                updated_at=now,
            )
        )
    return result


def _status(poller: SectionPoller, key: SectionKey) -> SectionStatus:
    return next(s.status for s in poller.sections if s.section_key == key)


class FakeApi:
    """Scripted stand-in for WorkflowApiClient."""

    def __init__(self) -> None:
        self.responses: list[list[Section] | Exception] = []
        self.gates: list[asyncio.Event] = []
        self.calls = 0
        self.generate_error: Exception | None = None

    async def list_sections(self, case_id: uuid.UUID, summons_id: uuid.UUID) -> list[Section]:
        index = self.calls
        self.calls += 1
        if index < len(self.gates):
            await self.gates[index].wait()
        response = self.responses[min(index, len(self.responses) - 1)]
        if isinstance(response, Exception):
            raise response
        return response

    async def generate(self, case_id: uuid.UUID, summons_id: uuid.UUID, key: SectionKey) -> Section:
        if self.generate_error:
            raise self.generate_error
        return next(s for s in _sections(**{key.value: SectionStatus.generating}) if s.section_key == key)


@pytest.mark.asyncio
async def test_stops_polling_when_nothing_generating() -> None:
    api = FakeApi()
    api.responses = [
        _sections(FEITEN=SectionStatus.generating),
        _sections(FEITEN=SectionStatus.generating),
        _sections(FEITEN=SectionStatus.ready_for_review),
    ]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=0.01)  # type: ignore[arg-type]

    await poller.refresh()
    poller.ensure_polling()
    assert poller.is_polling
    await asyncio.wait_for(poller._task, timeout=1)  # type: ignore[arg-type]

    assert not poller.is_polling
    assert _status(poller, SectionKey.FEITEN) == SectionStatus.ready_for_review
    assert api.calls == 3


@pytest.mark.asyncio
async def test_no_polling_when_idle() -> None:
    api = FakeApi()
    api.responses = [_sections()]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=0.01)  # type: ignore[arg-type]

    await poller.refresh()
    poller.ensure_polling()

    assert not poller.is_polling


@pytest.mark.asyncio
async def test_stale_response_is_discarded() -> None:
    """An older fetch finishing last does not roll the view back."""
    api = FakeApi()
    api.responses = [
        _sections(FEITEN=SectionStatus.generating),
        _sections(FEITEN=SectionStatus.ready_for_review),
    ]
    api.gates = [asyncio.Event(), asyncio.Event()]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID)  # type: ignore[arg-type]

    first = asyncio.create_task(poller.refresh())
    second = asyncio.create_task(poller.refresh())
    await asyncio.sleep(0)

    api.gates[1].set()
    assert await second is True
    api.gates[0].set()
    assert await first is False

    assert _status(poller, SectionKey.FEITEN) == SectionStatus.ready_for_review


@pytest.mark.asyncio
async def test_optimistic_flip_then_server_wins() -> None:
    api = FakeApi()
    api.responses = [_sections(), _sections(FEITEN=SectionStatus.ready_for_review)]
    updates: list[list[Section]] = []
    poller = SectionPoller(
        api, CASE_ID, SUMMONS_ID, poll_interval=0.01, on_update=updates.append  # type: ignore[arg-type]
    )
    await poller.refresh()

    await poller.generate(SectionKey.FEITEN)

    assert _status(poller, SectionKey.FEITEN) == SectionStatus.generating
    assert poller.is_polling
    await asyncio.wait_for(poller._task, timeout=1)  # type: ignore[arg-type]
    assert _status(poller, SectionKey.FEITEN) == SectionStatus.ready_for_review
    assert len(updates) == 4


@pytest.mark.asyncio
async def test_generate_without_prior_refresh_starts_polling() -> None:
    """A fresh poller learns the generating status from the server and polls."""
    api = FakeApi()
    api.responses = [
        _sections(FEITEN=SectionStatus.generating),
        _sections(FEITEN=SectionStatus.ready_for_review),
    ]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=0.01)  # type: ignore[arg-type]

    await poller.generate(SectionKey.FEITEN)

    assert _status(poller, SectionKey.FEITEN) == SectionStatus.generating
    assert poller.is_polling
    await asyncio.wait_for(poller._task, timeout=1)  # type: ignore[arg-type]
    assert _status(poller, SectionKey.FEITEN) == SectionStatus.ready_for_review
    assert api.calls == 2


@pytest.mark.asyncio
async def test_generate_merges_returned_section() -> None:
    api = FakeApi()
    api.responses = [_sections(), _sections(FEITEN=SectionStatus.ready_for_review)]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=10)  # type: ignore[arg-type]
    await poller.refresh()

    returned = await poller.generate(SectionKey.FEITEN)

    merged = next(s for s in poller.sections if s.section_key == SectionKey.FEITEN)
    assert merged.id == returned.id
    assert api.calls == 1
    await poller.close()


@pytest.mark.asyncio
async def test_failed_command_reverts_flip() -> None:
    api = FakeApi()
    api.responses = [_sections(FEITEN=SectionStatus.rejected)]
    api.generate_error = ApiError(409, {"error": "invalid_transition"})
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID)  # type: ignore[arg-type]
    await poller.refresh()

    with pytest.raises(ApiError):
        await poller.generate(SectionKey.FEITEN)

    assert _status(poller, SectionKey.FEITEN) == SectionStatus.rejected
    assert not poller.is_polling


@pytest.mark.asyncio
async def test_authentication_failure_closes_poller() -> None:
    api = FakeApi()
    api.responses = [_sections(FEITEN=SectionStatus.generating), AuthenticationLost(401, "expired")]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=0.01)  # type: ignore[arg-type]
    await poller.refresh()

    poller.ensure_polling()
    await asyncio.wait_for(poller._task, timeout=1)  # type: ignore[arg-type]

    assert poller.closed
    assert await poller.refresh() is False


@pytest.mark.asyncio
async def test_transient_errors_keep_polling() -> None:
    api = FakeApi()
    api.responses = [
        _sections(FEITEN=SectionStatus.generating),
        ApiError(503, "unavailable"),
        _sections(FEITEN=SectionStatus.ready_for_review),
    ]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=0.01)  # type: ignore[arg-type]
    await poller.refresh()

    poller.ensure_polling()
    await asyncio.wait_for(poller._task, timeout=1)  # type: ignore[arg-type]

    assert _status(poller, SectionKey.FEITEN) == SectionStatus.ready_for_review


@pytest.mark.asyncio
async def test_close_cancels_loop_and_drops_late_responses() -> None:
    api = FakeApi()
    api.responses = [_sections(FEITEN=SectionStatus.generating), _sections()]
    poller = SectionPoller(api, CASE_ID, SUMMONS_ID, poll_interval=10)  # type: ignore[arg-type]
    await poller.refresh()
    poller.ensure_polling()

    await poller.close()

    assert not poller.is_polling
    assert _status(poller, SectionKey.FEITEN) == SectionStatus.generating
    assert api.calls == 1
