from datetime import datetime, timedelta, timezone

from presence_board.models import Action
from presence_board.rendering import MAX_MESSAGE_LENGTH, render_board
from presence_board.worktime import UserDaySummary

NOW = datetime(2025, 5, 20, 9, 0, tzinfo=timezone.utc)


def row(user_id: int) -> UserDaySummary:
    return UserDaySummary(
        user_id=user_id,
        display_name=f"member {user_id}",
        latest_action=Action.IN,
        last_activity=NOW,
        work_time=timedelta(hours=1),
        first_in=NOW - timedelta(hours=1),
    )


def test_board_lists_everyone_when_it_fits():
    text = render_board([row(1), row(2)], NOW, timezone.utc)

    assert "member 1" in text
    assert "member 2" in text
    assert "more" not in text


def test_large_board_is_cut_to_one_message():
    text = render_board([row(i) for i in range(1, 201)], NOW, timezone.utc)

    assert len(text) <= MAX_MESSAGE_LENGTH
    assert "member 1<" in text
    assert "member 200<" not in text
    shown = text.count("tg://user?id=")
    assert text.endswith(f"…and {200 - shown} more</i>")
