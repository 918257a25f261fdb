import asyncio
from datetime import datetime, timezone

import pytest

from presence_board.confirmation import ConfirmationOutcome
from presence_board.errors import ConfirmationExpired, DuplicateActionRejection, OwnershipRejection
from presence_board.models import Action, AttendanceEvent, MessageType
from presence_board.rendering import FEEDBACK_ALREADY_OUT, FEEDBACK_OUT_ALREADY_RECORDED

from .conftest import ALICE, BOB, CHAT_ID


def board_text(service, gateway):
    board = service.database.get_board(CHAT_ID, MessageType.STATUS)
    return gateway.messages[board.message_id]["text"]


def events(service, clock):
    start, _ = clock.day_bounds(clock.today())
    return service.database.query_events(CHAT_ID, start, clock.now())


async def press_out(service, clock, user_id=ALICE, name="alice"):
    clock.advance(minutes=1)
    outcome = await service.on_user_action(CHAT_ID, user_id, name, Action.OUT)
    dialog_id = max(service.confirmations._pending)
    return outcome, dialog_id


@pytest.mark.asyncio
async def test_in_is_recorded_and_shown_on_the_board(service, gateway, clock):
    outcome = await service.on_user_action(CHAT_ID, ALICE, "alice", "in")

    assert outcome.value == "recorded"
    assert [e.action for e in events(service, clock)] == [Action.IN]
    assert "alice" in board_text(service, gateway)


@pytest.mark.asyncio
async def test_repeated_status_is_rejected_without_side_effects(service, gateway, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    before = board_text(service, gateway)
    sends = gateway.count("send")

    clock.advance(minutes=5)
    with pytest.raises(DuplicateActionRejection) as excinfo:
        await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)

    assert "already" in excinfo.value.feedback
    assert len(events(service, clock)) == 1
    assert board_text(service, gateway) == before
    assert gateway.count("send") == sends


@pytest.mark.asyncio
async def test_out_opens_a_confirmation_instead_of_recording(service, gateway, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)

    outcome, dialog_id = await press_out(service, clock)

    assert outcome.value == "confirmation_pending"
    assert len(service.confirmations) == 1
    assert service.confirmations.get(dialog_id).owner_user_id == ALICE
    assert "alice" in gateway.messages[dialog_id]["text"]
    assert [e.action for e in events(service, clock)] == [Action.IN]
    await service.confirmations.shutdown()


@pytest.mark.asyncio
async def test_only_the_owner_can_answer(service, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, dialog_id = await press_out(service, clock)

    with pytest.raises(OwnershipRejection):
        await service.on_confirmation_response(dialog_id, BOB, accept=True)
    with pytest.raises(OwnershipRejection):
        await service.on_confirmation_response(dialog_id, BOB, accept=False)

    assert service.confirmations.get(dialog_id) is not None
    assert [e.action for e in events(service, clock)] == [Action.IN]
    await service.confirmations.shutdown()


@pytest.mark.asyncio
async def test_owner_confirm_records_exactly_one_out(service, gateway, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, dialog_id = await press_out(service, clock)
    pending = service.confirmations.get(dialog_id)

    clock.advance(seconds=2)
    outcome = await service.on_confirmation_response(dialog_id, ALICE, accept=True)
    await asyncio.gather(pending.task, return_exceptions=True)

    assert outcome is ConfirmationOutcome.CONFIRMED
    assert [e.action for e in events(service, clock)] == [Action.IN, Action.OUT]
    assert len(service.confirmations) == 0
    assert pending.task.cancelled()
    assert dialog_id not in gateway.messages
    assert "Signed out" in board_text(service, gateway)

    with pytest.raises(ConfirmationExpired):
        await service.on_confirmation_response(dialog_id, ALICE, accept=True)


@pytest.mark.asyncio
async def test_cancel_records_nothing(service, gateway, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, dialog_id = await press_out(service, clock)

    outcome = await service.on_confirmation_response(dialog_id, ALICE, accept=False)

    assert outcome is ConfirmationOutcome.CANCELLED
    assert [e.action for e in events(service, clock)] == [Action.IN]
    assert len(service.confirmations) == 0
    assert dialog_id not in gateway.messages


@pytest.mark.asyncio
async def test_unanswered_confirmation_expires(service, gateway, clock):
    service.confirmations.tick_seconds = 0.01
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, dialog_id = await press_out(service, clock)

    await asyncio.sleep(0.2)

    assert len(service.confirmations) == 0
    assert dialog_id not in gateway.messages
    assert [e.action for e in events(service, clock)] == [Action.IN]
    with pytest.raises(ConfirmationExpired):
        await service.on_confirmation_response(dialog_id, ALICE, accept=True)


@pytest.mark.asyncio
async def test_countdown_edits_the_dialog(service, gateway, clock):
    service.confirmations.tick_seconds = 0.01
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, dialog_id = await press_out(service, clock)

    await asyncio.sleep(0.2)

    edits = [call for call in gateway.calls if call == ("edit", CHAT_ID, dialog_id)]
    assert len(edits) == 3


@pytest.mark.asyncio
async def test_second_dialog_cannot_record_a_second_out(service, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, first = await press_out(service, clock)
    _, second = await press_out(service, clock)
    assert first != second

    await service.on_confirmation_response(first, ALICE, accept=True)
    clock.advance(seconds=1)
    with pytest.raises(DuplicateActionRejection) as excinfo:
        await service.on_confirmation_response(second, ALICE, accept=True)

    assert excinfo.value.feedback == FEEDBACK_OUT_ALREADY_RECORDED
    assert [e.action for e in events(service, clock)] == [Action.IN, Action.OUT]
    assert service.confirmations.get(second) is not None
    await service.confirmations.shutdown()


@pytest.mark.asyncio
async def test_nothing_is_accepted_after_signing_out(service, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    _, dialog_id = await press_out(service, clock)
    await service.on_confirmation_response(dialog_id, ALICE, accept=True)

    for action in Action:
        clock.advance(minutes=1)
        with pytest.raises(DuplicateActionRejection) as excinfo:
            await service.on_user_action(CHAT_ID, ALICE, "alice", action)
        assert excinfo.value.feedback == FEEDBACK_ALREADY_OUT

    # other users are unaffected
    assert (await service.on_user_action(CHAT_ID, BOB, "bob", Action.IN)).value == "recorded"


@pytest.mark.asyncio
async def test_day_summary_and_month_report(service, clock):
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.IN)
    clock.advance(hours=2)
    await service.on_user_action(CHAT_ID, ALICE, "alice", Action.BREAK)
    clock.advance(hours=1)

    summary = service.get_day_summary(CHAT_ID, clock.today())
    (row,) = summary["users"]
    assert row["status"] == "break"
    assert row["work_time"] == "02:00"
    assert row["work_seconds"] == 7200
    assert row["last_out"] is None

    report = service.get_month_report(CHAT_ID, 2025, 5)
    assert report["start"] == "2025-05-01"
    assert report["end"] == "2025-05-31"
    assert report["users"][0]["days_worked"] == 1

    text = service.render_month_report(CHAT_ID, 2025, 5)
    assert "2025-05-01 – 2025-05-31" in text
    assert "alice" in text
    assert "02:00" in text


def test_report_years_and_months(service, database):
    assert service.report_years() == []

    for moment in (datetime(2024, 11, 3, 8, tzinfo=timezone.utc), datetime(2025, 2, 10, 8, tzinfo=timezone.utc)):
        database.append_event(AttendanceEvent(ALICE, CHAT_ID, "alice", moment, Action.IN))

    assert service.report_years() == [2024, 2025]
    assert service.report_months(CHAT_ID, 2024) == [11]
    assert service.report_months(CHAT_ID, 2025) == [2]
    assert service.report_months(CHAT_ID - 1, 2025) == []
    assert "No data for this period." in service.render_month_report(CHAT_ID, 2025, 3)
