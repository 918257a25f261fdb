"""Display strings and keyboards shown in the chat."""

from __future__ import annotations

import calendar
import html
from datetime import date, datetime, tzinfo
from typing import Iterable, List

from .gateway import Button, Keyboard
from .models import Action
from .worktime import UserDaySummary, UserPeriodSummary, format_duration

CONFIRM_OUT = "confirm_out"
CANCEL_OUT = "cancel_out"
REPORT_YEAR = "report_year:"
REPORT_MONTH = "report_month:"
SEPARATOR = "<code>────────────────────</code>"
# Bot API limit for a single message text
MAX_MESSAGE_LENGTH = 4096

ACTION_EMOJI = {Action.IN: "🟢", Action.BREAK: "🟡", Action.OUT: "🔴"}
ACTION_LABEL = {Action.IN: "In", Action.BREAK: "Break", Action.OUT: "Out"}


def status_keyboard() -> Keyboard:
    return [[Button(f"{ACTION_EMOJI[action]}{ACTION_LABEL[action]}", action.value) for action in Action]]


def confirmation_keyboard() -> Keyboard:
    return [[Button("✅ Confirm out", CONFIRM_OUT), Button("❌ Cancel", CANCEL_OUT)]]


def _hhmm(moment: datetime, tz: tzinfo) -> str:
    return moment.astimezone(tz).strftime("%H:%M")


def render_board(rows: Iterable[UserDaySummary], now: datetime, tz: tzinfo) -> str:
    """Board text, cut at whole user blocks so it stays within one message."""

    header = "\n".join(
        [
            "🕒 <b>Team attendance</b>",
            f"<i>{now.astimezone(tz).strftime('%Y-%m-%d %H:%M')}</i>",
            SEPARATOR,
        ]
    )
    blocks = [_user_block(row, tz) for row in rows]

    text = header
    for shown, block in enumerate(blocks):
        hidden = len(blocks) - shown - 1
        footer = f"\n<i>…and {hidden} more</i>" if hidden else ""
        if len(text) + 1 + len(block) + len(footer) > MAX_MESSAGE_LENGTH:
            return text + f"\n<i>…and {len(blocks) - shown} more</i>"
        text += "\n" + block
    return text


def _user_block(row: UserDaySummary, tz: tzinfo) -> str:
    link = f'<a href="tg://user?id={row.user_id}">{html.escape(row.display_name)}</a>'
    lines = [
        f"{ACTION_EMOJI[row.latest_action]} {link}",
        f"⏳ Worked today: <code>{format_duration(row.work_time)}</code>",
    ]
    if row.first_in is not None:
        lines.append(f"🟢 Started: <code>{_hhmm(row.first_in, tz)}</code>")
    if row.latest_action is Action.OUT:
        lines.append("🔴 Signed out")
    else:
        lines.append(
            f"🔄 Last activity: <code>{_hhmm(row.last_activity, tz)}</code> "
            f"({ACTION_LABEL[row.latest_action]})"
        )
    if row.last_out is not None:
        lines.append(f"🔴 Finished: <code>{_hhmm(row.last_out, tz)}</code>")
        lines.append("🚫 No more check-ins today")
    lines.append(SEPARATOR)
    return "\n".join(lines)


def render_countdown(owner_name: str, seconds_left: int) -> str:
    return (
        f"⚠️ <b>Confirm sign-out for {html.escape(owner_name)}</b>\n\n"
        f"Time left: <b>{seconds_left}</b> seconds"
    )


def render_welcome() -> str:
    return (
        "🕒 <b>Attendance bot</b>\n\n"
        "Use the buttons below to record your status.\n"
        "Admins can use /report to get monthly totals."
    )


def render_report(rows: Iterable[UserPeriodSummary], start: date, end: date) -> str:
    lines = [f"📊 <b>Report {start.isoformat()} – {end.isoformat()}</b>", SEPARATOR]
    for row in rows:
        lines.append(
            f"{html.escape(row.display_name)}: <code>{format_duration(row.work_time)}</code> "
            f"over {row.days_worked} day(s)"
        )
    if len(lines) == 2:
        lines.append("No data for this period.")
    return "\n".join(lines)


# region Report picker
def _rows_of(buttons: List[Button], width: int = 3) -> Keyboard:
    return [buttons[i : i + width] for i in range(0, len(buttons), width)]


def year_keyboard(years: Iterable[int]) -> Keyboard:
    """Newest year first."""
    return _rows_of([Button(str(year), f"{REPORT_YEAR}{year}") for year in sorted(years, reverse=True)])


def month_keyboard(year: int, months: Iterable[int]) -> Keyboard:
    return _rows_of(
        [Button(calendar.month_name[month], f"{REPORT_MONTH}{year}:{month:02d}") for month in sorted(months)]
    )


def render_month_picker(year: int) -> str:
    return f"✅ {year}: pick a month for the report."


PICK_YEAR = "Pick a year for the report."
# endregion


# region Feedback
def feedback_recorded(action: Action) -> str:
    return f"Status recorded: {ACTION_LABEL[action]}"


def feedback_already_in_state(action: Action) -> str:
    return f"⚠️ You are already in status {ACTION_LABEL[action]}."


FEEDBACK_ALREADY_OUT = "🚫 You have signed out today and cannot record another status."
FEEDBACK_OUT_ALREADY_RECORDED = "⚠️ Your sign-out is already recorded."
FEEDBACK_NOT_YOUR_CONFIRMATION = "❌ This confirmation is not yours."
FEEDBACK_CONFIRMATION_EXPIRED = "⌛ This confirmation has expired."
FEEDBACK_OUT_CONFIRMED = "✅ Sign-out recorded."
FEEDBACK_OUT_CANCELLED = "❌ Sign-out cancelled."
FEEDBACK_PROCESSING_ERROR = "Error while processing the request."
FEEDBACK_ADMINS_ONLY = "❌ Only admins can request reports."
FEEDBACK_UNKNOWN_COMMAND = "❌ Unknown command."
FEEDBACK_NO_DATA = "No data has been recorded yet."
FEEDBACK_NO_DATA_FOR_YEAR = "No data for this year."
FEEDBACK_GENERATING_REPORT = "Generating the report…"
# endregion


__all__ = [
    "CONFIRM_OUT",
    "CANCEL_OUT",
    "REPORT_YEAR",
    "REPORT_MONTH",
    "MAX_MESSAGE_LENGTH",
    "status_keyboard",
    "confirmation_keyboard",
    "render_board",
    "render_countdown",
    "render_welcome",
    "render_report",
    "year_keyboard",
    "month_keyboard",
    "render_month_picker",
    "PICK_YEAR",
    "feedback_recorded",
    "feedback_already_in_state",
    "FEEDBACK_ALREADY_OUT",
    "FEEDBACK_OUT_ALREADY_RECORDED",
    "FEEDBACK_NOT_YOUR_CONFIRMATION",
    "FEEDBACK_CONFIRMATION_EXPIRED",
    "FEEDBACK_OUT_CONFIRMED",
    "FEEDBACK_OUT_CANCELLED",
    "FEEDBACK_PROCESSING_ERROR",
    "FEEDBACK_ADMINS_ONLY",
    "FEEDBACK_UNKNOWN_COMMAND",
    "FEEDBACK_NO_DATA",
    "FEEDBACK_NO_DATA_FOR_YEAR",
    "FEEDBACK_GENERATING_REPORT",
]
