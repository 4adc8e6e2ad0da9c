"""DB-backed tests for the recurring appointment service."""

import uuid
from datetime import date, datetime, time, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mentalspace.core.models import AppointmentDB, RecurringAppointmentDB
from mentalspace.scheduling import (
    MaterializationError,
    RecurrenceException,
    RecurrenceRule,
    RecurrenceValidationError,
    RecurringAppointmentService,
    ReferenceNotFoundError,
    SeriesNotFoundError,
    SeriesStateError,
)
from tests.conftest import CLIENT_ID, STAFF_ID


def _rule(**overrides) -> RecurrenceRule:
    data = {
        "recurrence_pattern": "Weekly",
        "start_date": date(2025, 1, 6),
        "start_time": time(9, 0),
        "duration_minutes": 50,
        "number_of_occurrences": 4,
    }
    data.update(overrides)
    return RecurrenceRule(**data)


@pytest.fixture
def service(session: AsyncSession, seed_data) -> RecurringAppointmentService:
    return RecurringAppointmentService(session, tz=timezone.utc, max_occurrences=52)


async def _create(service: RecurringAppointmentService, rule: RecurrenceRule | None = None):
    return await service.create_series(
        rule or _rule(),
        client_id=CLIENT_ID,
        provider_id=STAFF_ID,
        appointment_type="Individual Therapy",
        created_by=STAFF_ID,
    )


async def _count(session: AsyncSession, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestCreateSeries:
    async def test_materializes_every_occurrence(self, service, session):
        series, created = await _create(service)

        assert len(created) == 4
        assert series.status == "Active"
        assert series.duration_minutes == 50
        assert [a.start_time.date() for a in created] == [
            date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27),
        ]
        assert all(a.recurring_appointment_id == series.id for a in created)
        assert all(a.status == "Scheduled" for a in created)
        assert all(a.duration_minutes == 50 for a in created)
        assert len(series.generated_appointments) == 4
        assert await _count(session, AppointmentDB) == 4

    async def test_exceptions_applied_at_creation(self, service):
        target = datetime(2025, 1, 21, 15, 0, tzinfo=timezone.utc)
        rule = _rule(
            exceptions=[
                {"date": date(2025, 1, 13), "reason": "Holiday"},
                {"date": date(2025, 1, 20), "is_rescheduled": True, "rescheduled_to": target},
            ]
        )
        series, created = await _create(service, rule)

        assert len(created) == 3
        assert len(series.exceptions) == 2
        moved = [a for a in created if a.notes]
        assert len(moved) == 1
        assert moved[0].start_time == target
        assert moved[0].notes == "Rescheduled from 2025-01-20"

    async def test_unknown_client(self, service):
        with pytest.raises(ReferenceNotFoundError):
            await service.create_series(
                _rule(),
                client_id=uuid.uuid4(),
                provider_id=STAFF_ID,
                appointment_type="Individual Therapy",
            )

    async def test_unknown_provider(self, service):
        with pytest.raises(ReferenceNotFoundError):
            await service.create_series(
                _rule(),
                client_id=CLIENT_ID,
                provider_id=uuid.uuid4(),
                appointment_type="Individual Therapy",
            )

    async def test_failure_rolls_back_whole_series(self, service, session, monkeypatch):
        real_create = service.appointment_repo.create
        calls = {"n": 0}

        async def flaky_create(**kwargs):
            calls["n"] += 1
            if calls["n"] == 3:
                raise SQLAlchemyError("disk full")
            return await real_create(**kwargs)

        monkeypatch.setattr(service.appointment_repo, "create", flaky_create)

        with pytest.raises(MaterializationError):
            await _create(service)
        await session.rollback()

        assert await _count(session, RecurringAppointmentDB) == 0
        assert await _count(session, AppointmentDB) == 0

    async def test_count_above_cap_rejected(self, service, session):
        with pytest.raises(RecurrenceValidationError, match="52"):
            await _create(service, _rule(number_of_occurrences=53))

        assert await _count(session, RecurringAppointmentDB) == 0

    async def test_every_occurrence_skipped(self, service, session):
        rule = _rule(
            number_of_occurrences=2,
            exceptions=[{"date": date(2025, 1, 6)}, {"date": date(2025, 1, 13)}],
        )
        series, created = await _create(service, rule)

        assert created == []
        assert series.status == "Active"
        assert len(series.exceptions) == 2
        assert await _count(session, AppointmentDB) == 0

    async def test_reschedule_onto_another_occurrence_keeps_both(self, service):
        clash = datetime(2025, 1, 13, 9, 0, tzinfo=timezone.utc)
        rule = _rule(
            number_of_occurrences=3,
            exceptions=[{"date": date(2025, 1, 6), "is_rescheduled": True, "rescheduled_to": clash}],
        )
        _, created = await _create(service, rule)

        assert len(created) == 3
        assert [a.start_time for a in created].count(clash) == 2
        assert sorted(a.notes or "" for a in created) == ["", "", "Rescheduled from 2025-01-06"]


class TestCancelSeries:
    async def test_cancels_only_future_appointments(self, service):
        series, created = await _create(service)
        now = datetime(2025, 1, 15, tzinfo=timezone.utc)

        series, cancelled = await service.cancel_series(
            series.id, "Client moved away", user_id=STAFF_ID, now=now
        )

        assert cancelled == 2
        assert series.status == "Cancelled"
        assert series.notes == "Client moved away"
        assert [a.status for a in created] == ["Scheduled", "Scheduled", "Cancelled", "Cancelled"]
        assert created[2].cancellation_reason == "Client moved away"

    async def test_terminal_appointments_keep_status(self, service):
        series, created = await _create(service)
        created[3].status = "Completed"

        _, cancelled = await service.cancel_series(
            series.id, "Done", now=datetime(2025, 1, 1, tzinfo=timezone.utc)
        )

        assert cancelled == 3
        assert created[3].status == "Completed"

    async def test_reason_required(self, service):
        series, _ = await _create(service)
        with pytest.raises(RecurrenceValidationError):
            await service.cancel_series(series.id, "   ")

    async def test_unknown_series(self, service):
        with pytest.raises(SeriesNotFoundError):
            await service.cancel_series(uuid.uuid4(), "Gone")


class TestAddException:
    async def test_skip_cancels_live_appointment(self, service):
        series, created = await _create(service)

        await service.add_exception(
            series.id, RecurrenceException(date=date(2025, 1, 13), reason="Vacation")
        )

        assert created[1].status == "Cancelled"
        assert created[1].cancellation_reason == "Vacation"
        assert len(series.exceptions) == 1
        assert len(series.generated_appointments) == 4

    async def test_reschedule_books_replacement(self, service):
        series, created = await _create(service)
        target = datetime(2025, 1, 21, 15, 0, tzinfo=timezone.utc)

        await service.add_exception(
            series.id,
            RecurrenceException(date=date(2025, 1, 20), is_rescheduled=True, rescheduled_to=target),
            user_id=STAFF_ID,
        )

        assert created[2].status == "Rescheduled"
        assert len(series.generated_appointments) == 5
        replacement = series.generated_appointments[-1]
        assert replacement.start_time == target
        assert replacement.duration_minutes == 50
        assert replacement.notes == "Rescheduled from 2025-01-20"

    async def test_rejected_on_cancelled_series(self, service):
        series, _ = await _create(service)
        await service.cancel_series(series.id, "Stopped")

        with pytest.raises(SeriesStateError):
            await service.add_exception(series.id, RecurrenceException(date=date(2025, 1, 13)))


class TestUpdatesAndCompletion:
    async def test_update_descriptive_fields(self, service):
        series, _ = await _create(service)

        updated = await service.update_series(
            series.id, user_id=STAFF_ID, notes="Bring worksheet", location="Virtual"
        )

        assert updated.notes == "Bring worksheet"
        assert updated.location == "Virtual"
        assert updated.recurrence_pattern == "Weekly"

    async def test_complete_exhausted_series(self, service):
        finished, _ = await _create(service)
        ongoing, _ = await _create(service, _rule(start_date=date(2025, 6, 2)))

        completed = await service.complete_exhausted_series(
            now=datetime(2025, 3, 1, tzinfo=timezone.utc)
        )

        assert [s.id for s in completed] == [finished.id]
        assert finished.status == "Completed"
        assert ongoing.status == "Active"

    async def test_completion_ignores_skipped_and_moved_dates(self, service):
        series, created = await _create(service)
        now = datetime(2025, 1, 15, tzinfo=timezone.utc)

        await service.add_exception(series.id, RecurrenceException(date=date(2025, 1, 20)))
        await service.add_exception(
            series.id,
            RecurrenceException(
                date=date(2025, 1, 27),
                is_rescheduled=True,
                rescheduled_to=datetime(2025, 1, 14, 15, 0, tzinfo=timezone.utc),
            ),
        )
        assert [a.status for a in created[2:]] == ["Cancelled", "Rescheduled"]

        completed = await service.complete_exhausted_series(now=now)

        assert [s.id for s in completed] == [series.id]
        assert series.status == "Completed"
