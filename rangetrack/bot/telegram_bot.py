"""
RangeTrack — Telegram Bot.

Telegram is the farmer's interface to RangeTrack: logging tasks, managing
resources, dashboards, reports, the team and the FarmAI assistant all flow
through this bot. Handlers only parse input and render FarmService results.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from rangetrack.config import settings
from rangetrack.core.errors import ValidationError
from rangetrack.core.reports import DEFAULT_PERIOD, PERIOD_DAYS, format_report
from rangetrack.core.validation import (
    optional_text,
    parse_health,
    parse_id,
    parse_quantity,
    parse_when,
    validate_priority,
    validate_resource_type,
    validate_task_type,
)
from rangetrack.core.weather import format_weather, simulate_weather
from rangetrack.data.models import PRIORITIES, RESOURCE_TYPES, TASK_TYPES

if TYPE_CHECKING:
    from rangetrack.core.farm_service import FarmService
    from rangetrack.data.models import Resource, Task
    from rangetrack.data.storage import LocalStorage
    from rangetrack.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

MAX_LISTED_TASKS = 15
CHAT_HISTORY_LIMIT = 20
EDITABLE_RESOURCE_FIELDS = ("name", "type", "quantity", "status", "health", "notes")


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores updates from users not in ALLOWED_USER_IDS.

    Nothing is sent back, so strangers can't tell the bot exists.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        if user is None or user.id not in settings.ALLOWED_USER_IDS:
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _service(context: ContextTypes.DEFAULT_TYPE) -> FarmService:
    return context.bot_data["service"]


def _farmer_id(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Return the caller's user id, registering them on first contact."""
    user = update.effective_user
    if not context.user_data.get("registered"):
        result = _service(context).register(user.id, user.first_name or "")
        if result.ok:
            context.user_data["registered"] = True
    return user.id


def _pretty(value: str) -> str:
    return value.replace("_", " ")


def _tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def format_task(task: Task, resources: dict[int, Resource] | None = None) -> str:
    when = datetime.fromtimestamp(task.ts / 1000, _tz()).strftime("%b %d %H:%M")
    mark = "✅" if task.completed else "⬜"
    parts = [f"{mark} #{task.id} {_pretty(task.type)}", when]
    if task.resource_id is not None:
        resource = (resources or {}).get(task.resource_id)
        parts.append(resource.name if resource else f"resource #{task.resource_id}")
    if task.qty is not None:
        parts.append(f"qty {task.qty}")
    if task.priority:
        parts.append(f"{task.priority} priority")
    line = " · ".join(parts)
    if task.notes:
        line += f"\n     {task.notes}"
    return line


def format_resource(resource: Resource) -> str:
    parts = [f"#{resource.id} {resource.name} ({resource.type})"]
    if resource.quantity is not None:
        parts.append(f"qty {resource.quantity}")
    if resource.health is not None:
        parts.append(f"health {resource.health}%")
    if resource.status:
        parts.append(resource.status)
    return " · ".join(parts)


def _keyboard(options: tuple[str, ...] | list[str], per_row: int = 3, skip: bool = False) -> ReplyKeyboardMarkup:
    labels = list(options)
    if skip:
        labels.append("Skip")
    rows = [labels[i:i + per_row] for i in range(0, len(labels), per_row)]
    return ReplyKeyboardMarkup(rows, one_time_keyboard=True, resize_keyboard=True)


async def _reply_result_error(update: Update, error: str | None) -> None:
    await update.message.reply_text(f"⚠️ {error}", reply_markup=ReplyKeyboardRemove())


# ---------------------------------------------------------------------------
# Basic commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — register the farmer and say hello."""
    user = update.effective_user
    result = _service(context).register(user.id, user.first_name or "")
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    context.user_data["registered"] = True
    await update.message.reply_text(
        f"Welcome to RangeTrack, {result.data.name}! 🤠\n\n"
        "I keep your ranch records in one place:\n"
        "• /addtask to log feeding, watering, repairs and more\n"
        "• /addresource to track animals, fields, equipment and feed\n"
        "• /dashboard for today's overview\n"
        "• Or just ask me a farming question\n\n"
        "Type /help for the full command list.",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "Farm\n"
        "/dashboard — Metrics, today's and upcoming tasks\n"
        "/tasks — Recent tasks\n"
        "/addtask — Log a task\n"
        "/done <id> — Toggle a task complete\n"
        "/resources — List resources\n"
        "/addresource — Add a resource\n"
        "/editresource <id> <field> <value> — Change a resource\n"
        "/deleteresource <id> — Remove a resource\n\n"
        "Insights\n"
        "/awards — Your badges\n"
        "/insights — Task and resource stats\n"
        "/report [week|month|quarter|year] — Farm report\n"
        "/weather — Conditions and forecast\n\n"
        "Team\n"
        "/team — Members and pending invites\n"
        "/invite <email> [role] — Invite someone\n"
        "/cancelinvite <id> — Withdraw an invite\n"
        "/removemember <id> — Remove a member\n"
        "/join <invite id> — Accept an invite\n\n"
        "You\n"
        "/profile <name> | <location> | <email> — Update your profile\n"
        "/clearchat — Forget the assistant conversation\n\n"
        "Anything else you type goes to FarmAI.",
    )


@authorized_only
async def cmd_dashboard(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dashboard — metric cards, task lists and weather."""
    user_id = _farmer_id(update, context)
    service = _service(context)
    result = service.dashboard(user_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return

    d = result.data
    resources = {r.id: r for r in service.state(user_id).resources}
    lines = [
        "📊 Dashboard",
        f"🌾 Feed days remaining: {d.feed_days_remaining}",
        f"✅ Completion rate (7d): {d.completion_rate:.0f}%",
        f"❤️ Average health: {d.average_health}%",
        f"🔧 Equipment uptime: {d.equipment_uptime:.0f}%",
        f"🏆 Awards: {d.award_count}",
        "",
        "Today:",
    ]
    if d.todays_tasks:
        lines.extend(format_task(t, resources) for t in d.todays_tasks)
    else:
        lines.append("  nothing logged yet")
    if d.upcoming_tasks:
        lines.append("")
        lines.append("Upcoming:")
        lines.extend(format_task(t, resources) for t in d.upcoming_tasks)

    weather = context.bot_data.get("weather")
    if weather is not None:
        lines.append("")
        lines.append(format_weather(weather, with_forecast=False))

    await update.message.reply_text("\n".join(lines))


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------

# ConversationHandler states for /addtask
(
    TASK_TYPE,
    TASK_RESOURCE,
    TASK_QTY,
    TASK_PRIORITY,
    TASK_WHEN,
    TASK_NOTES,
) = range(6)

_TASK_KEYS = ("task_type", "task_resource_id", "task_qty", "task_priority", "task_ts")


@authorized_only
async def cmd_tasks(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /tasks — most recent tasks first."""
    user_id = _farmer_id(update, context)
    state = _service(context).state(user_id)
    if not state.tasks:
        await update.message.reply_text("No tasks yet. Use /addtask to log one.")
        return

    resources = {r.id: r for r in state.resources}
    tasks = sorted(state.tasks, key=lambda t: t.ts, reverse=True)[:MAX_LISTED_TASKS]
    lines = ["📝 Recent tasks:"]
    lines.extend(format_task(t, resources) for t in tasks)
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_addtask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /addtask — start the task logging conversation."""
    _farmer_id(update, context)
    _clear_task_data(context)
    await update.message.reply_text(
        "What kind of task? (/cancel to stop)",
        reply_markup=_keyboard([_pretty(t) for t in TASK_TYPES]),
    )
    return TASK_TYPE


async def addtask_type(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the task type, ask which resource it touches."""
    try:
        context.user_data["task_type"] = validate_task_type(update.message.text)
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return TASK_TYPE

    resources = _service(context).state(update.effective_user.id).resources
    options = [f"#{r.id} {r.name}" for r in resources]
    await update.message.reply_text(
        "Which resource is this for? Pick one or tap Skip.",
        reply_markup=_keyboard(options, per_row=2, skip=True),
    )
    return TASK_RESOURCE


async def addtask_resource(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive a resource reference ("#12 Hay" or "12") or Skip."""
    text = update.message.text.strip()
    if optional_text(text) is None:
        context.user_data["task_resource_id"] = None
    else:
        try:
            resource_id = parse_id(text.split()[0], "resource id")
        except ValidationError as exc:
            await update.message.reply_text(str(exc))
            return TASK_RESOURCE
        if _service(context).state(update.effective_user.id).find_resource(resource_id) is None:
            await update.message.reply_text(f"Resource #{resource_id} not found. Try again or Skip.")
            return TASK_RESOURCE
        context.user_data["task_resource_id"] = resource_id

    await update.message.reply_text(
        "Quantity? (a whole number, or Skip)",
        reply_markup=_keyboard(["1", "5", "10", "25", "50"], skip=True),
    )
    return TASK_QTY


async def addtask_qty(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the optional quantity, ask for priority."""
    try:
        context.user_data["task_qty"] = parse_quantity(update.message.text)
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return TASK_QTY

    await update.message.reply_text("Priority?", reply_markup=_keyboard(PRIORITIES, skip=True))
    return TASK_PRIORITY


async def addtask_priority(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the optional priority, ask when the task happens."""
    text = update.message.text
    try:
        context.user_data["task_priority"] = (
            validate_priority(text) if optional_text(text) is not None else None
        )
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return TASK_PRIORITY

    await update.message.reply_text(
        "When? (YYYY-MM-DD or YYYY-MM-DD HH:MM, or Skip for now)",
        reply_markup=_keyboard([], skip=True),
    )
    return TASK_WHEN


async def addtask_when(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the optional date and time, ask for notes."""
    try:
        context.user_data["task_ts"] = parse_when(update.message.text, _tz())
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return TASK_WHEN

    await update.message.reply_text(
        "Any notes? (or Skip)", reply_markup=_keyboard([], skip=True),
    )
    return TASK_NOTES


async def addtask_notes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive notes, save the task and announce any new awards."""
    user_id = update.effective_user.id
    result = _service(context).add_task(
        user_id,
        context.user_data.get("task_type", ""),
        ts=context.user_data.get("task_ts"),
        resource_id=context.user_data.get("task_resource_id"),
        qty=context.user_data.get("task_qty"),
        notes=optional_text(update.message.text),
        priority=context.user_data.get("task_priority"),
    )
    _clear_task_data(context)

    if not result.ok:
        await _reply_result_error(update, result.error)
        return ConversationHandler.END

    logged = result.data
    lines = [f"✅ Logged task #{logged.task.id}: {_pretty(logged.task.type)}"]
    for award in logged.new_awards:
        lines.append(f"\n🏆 New award: {award.label}\n{award.reason}")
    await update.message.reply_text("\n".join(lines), reply_markup=ReplyKeyboardRemove())
    return ConversationHandler.END


def _clear_task_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    """Remove all /addtask keys from user_data."""
    for k in _TASK_KEYS:
        context.user_data.pop(k, None)


@authorized_only
async def cmd_done(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /done <id> — toggle a task's completion."""
    if not context.args:
        await update.message.reply_text("Usage: /done <task_id>\nUse /tasks to see IDs.")
        return
    try:
        task_id = parse_id(context.args[0], "task id")
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return

    result = _service(context).toggle_task(_farmer_id(update, context), task_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    status = "complete ✅" if result.data.completed else "open again ⬜"
    await update.message.reply_text(f"Task #{task_id} ({_pretty(result.data.type)}) marked {status}")


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

# ConversationHandler states for /addresource
(
    RES_TYPE,
    RES_NAME,
    RES_QTY,
    RES_HEALTH,
    RES_NOTES,
) = range(6, 11)

_RESOURCE_KEYS = ("res_type", "res_name", "res_qty", "res_health")


@authorized_only
async def cmd_resources(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /resources — list resources grouped by type."""
    user_id = _farmer_id(update, context)
    resources = _service(context).state(user_id).resources
    if not resources:
        await update.message.reply_text("No resources yet. Use /addresource to add one.")
        return

    lines = ["📦 Resources:"]
    for resource_type in RESOURCE_TYPES:
        group = [r for r in resources if r.type == resource_type]
        if group:
            lines.append(f"\n{resource_type.title()}:")
            lines.extend(f"  {format_resource(r)}" for r in group)
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_addresource(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /addresource — start the resource conversation."""
    _farmer_id(update, context)
    _clear_resource_data(context)
    await update.message.reply_text(
        "What type of resource? (/cancel to stop)",
        reply_markup=_keyboard(RESOURCE_TYPES, per_row=2),
    )
    return RES_TYPE


async def addresource_type(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    try:
        context.user_data["res_type"] = validate_resource_type(update.message.text)
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return RES_TYPE
    await update.message.reply_text("What's it called?", reply_markup=ReplyKeyboardRemove())
    return RES_NAME


async def addresource_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    name = update.message.text.strip()
    if not name:
        await update.message.reply_text("Please give it a name.")
        return RES_NAME
    context.user_data["res_name"] = name
    await update.message.reply_text(
        "Quantity? (head count, acres, bales... or Skip)",
        reply_markup=_keyboard([], skip=True),
    )
    return RES_QTY


async def addresource_qty(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    try:
        context.user_data["res_qty"] = parse_quantity(update.message.text)
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return RES_QTY
    await update.message.reply_text(
        "Health score 0-100? (or Skip)",
        reply_markup=_keyboard(["100", "90", "75", "50"], per_row=4, skip=True),
    )
    return RES_HEALTH


async def addresource_health(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    try:
        context.user_data["res_health"] = parse_health(update.message.text)
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return RES_HEALTH
    await update.message.reply_text("Any notes? (or Skip)", reply_markup=_keyboard([], skip=True))
    return RES_NOTES


async def addresource_notes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive notes and save the resource."""
    result = _service(context).add_resource(
        update.effective_user.id,
        context.user_data.get("res_type", ""),
        context.user_data.get("res_name", ""),
        quantity=context.user_data.get("res_qty"),
        health=context.user_data.get("res_health"),
        notes=optional_text(update.message.text),
    )
    _clear_resource_data(context)

    if not result.ok:
        await _reply_result_error(update, result.error)
        return ConversationHandler.END
    await update.message.reply_text(
        f"✅ Added {format_resource(result.data)}", reply_markup=ReplyKeyboardRemove(),
    )
    return ConversationHandler.END


def _clear_resource_data(context: ContextTypes.DEFAULT_TYPE) -> None:
    for k in _RESOURCE_KEYS:
        context.user_data.pop(k, None)


async def conversation_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Cancel whichever add conversation is running."""
    _clear_task_data(context)
    _clear_resource_data(context)
    await update.message.reply_text("Cancelled.", reply_markup=ReplyKeyboardRemove())
    return ConversationHandler.END


def _parse_resource_update(field: str, value: str) -> dict[str, Any]:
    field = field.lower()
    if field not in EDITABLE_RESOURCE_FIELDS:
        raise ValidationError(f"Unknown field '{field}'. Editable: {', '.join(EDITABLE_RESOURCE_FIELDS)}.")
    if field == "quantity":
        return {"quantity": parse_quantity(value)}
    if field == "health":
        return {"health": parse_health(value)}
    if field == "type":
        return {"type": validate_resource_type(value)}
    if field == "name":
        if not value.strip():
            raise ValidationError("Name can't be empty.")
        return {"name": value.strip()}
    return {field: optional_text(value)}


@authorized_only
async def cmd_editresource(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /editresource <id> <field> <value>."""
    args = context.args or []
    if len(args) < 3:
        await update.message.reply_text(
            "Usage: /editresource <id> <field> <value>\n"
            f"Fields: {', '.join(EDITABLE_RESOURCE_FIELDS)}"
        )
        return
    try:
        resource_id = parse_id(args[0], "resource id")
        updates = _parse_resource_update(args[1], " ".join(args[2:]))
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return

    result = _service(context).update_resource(_farmer_id(update, context), resource_id, **updates)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text(f"✏️ Updated {format_resource(result.data)}")


@authorized_only
async def cmd_deleteresource(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deleteresource <id>."""
    if not context.args:
        await update.message.reply_text("Usage: /deleteresource <id>\nUse /resources to see IDs.")
        return
    try:
        resource_id = parse_id(context.args[0], "resource id")
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return

    result = _service(context).delete_resource(_farmer_id(update, context), resource_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text(f"🗑️ Resource #{resource_id} deleted.")


# ---------------------------------------------------------------------------
# Insights
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_awards(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /awards — earned badges, newest first."""
    awards = _service(context).state(_farmer_id(update, context)).awards
    if not awards:
        await update.message.reply_text("No awards yet. Keep logging tasks! 🏆")
        return

    lines = ["🏆 Your awards:"]
    for award in sorted(awards, key=lambda a: a.earned_ts, reverse=True):
        earned = datetime.fromtimestamp(award.earned_ts / 1000, _tz()).strftime("%b %d, %Y")
        lines.append(f"\n{award.label} ({earned})\n  {award.reason}")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_insights(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /insights — 30-day task stats, resource summary, usage."""
    user_id = _farmer_id(update, context)
    service = _service(context)
    result = service.insights(user_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return

    ins = result.data
    stats = ins.task_stats
    summary = ins.resource_summary
    names = {r.id: r.name for r in service.state(user_id).resources}
    lines = [
        f"📈 Last {stats['period']}",
        f"Tasks: {stats['completed_tasks']}/{stats['total_tasks']} completed "
        f"({stats['completion_rate']:.0f}%)",
    ]
    lines.extend(f"  {_pretty(t)}: {n}" for t, n in sorted(stats["tasks_by_type"].items()))
    lines.append(f"\nResources: {summary['total_resources']} ({summary['active_resources']} active)")
    lines.extend(
        f"  {t}: {b['count']} (total qty {b['total_quantity']})"
        for t, b in sorted(summary["resources_by_type"].items())
    )
    if ins.utilization:
        lines.append("\nUsage (share of the last 30 days):")
        lines.extend(f"  {names.get(rid, rid)}: {frac:.0%}" for rid, frac in ins.utilization.items())
    if ins.uptime:
        lines.append("\nEquipment uptime:")
        lines.extend(f"  {names.get(rid, rid)}: {pct:.0f}%" for rid, pct in ins.uptime.items())
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_report(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /report [week|month|quarter|year]."""
    period = (context.args[0].lower() if context.args else DEFAULT_PERIOD)
    if period not in PERIOD_DAYS:
        await update.message.reply_text(f"Usage: /report [{'|'.join(PERIOD_DAYS)}]")
        return

    result = _service(context).report(_farmer_id(update, context), period)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text(format_report(result.data))


@authorized_only
async def cmd_weather(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /weather — current conditions, forecast, field advice."""
    weather = context.bot_data.get("weather")
    if weather is None:
        weather = simulate_weather(datetime.now(_tz()))
        context.bot_data["weather"] = weather
    await update.message.reply_text(format_weather(weather))


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_team(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /team — collaborators and pending invitations."""
    result = _service(context).team(_farmer_id(update, context))
    if not result.ok:
        await _reply_result_error(update, result.error)
        return

    team = result.data
    if not team.collaborators and not team.invitations:
        await update.message.reply_text("No team members yet. Use /invite <email> [role].")
        return

    lines = ["👥 Team:"]
    lines.extend(
        f"  #{c.id} {c.name or c.email} ({c.role}, {c.status})" for c in team.collaborators
    )
    if team.invitations:
        lines.append("\nPending invitations:")
        lines.extend(
            f"  #{i.id} {i.email} as {i.role}, expires {i.expires_at[:10]}"
            for i in team.invitations
        )
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_invite(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /invite <email> [role] [message...]."""
    args = context.args or []
    if not args:
        await update.message.reply_text("Usage: /invite <email> [manager|worker|viewer] [message]")
        return
    role = args[1] if len(args) > 1 else "worker"
    message = " ".join(args[2:]) or None

    result = _service(context).invite(_farmer_id(update, context), args[0], role, message)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    inv = result.data
    await update.message.reply_text(
        f"📨 Invitation #{inv.id} created for {inv.email} as {inv.role}.\n"
        f"They can accept with /join {inv.id} before {inv.expires_at[:10]}."
    )


@authorized_only
async def cmd_cancelinvite(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancelinvite <id>."""
    if not context.args:
        await update.message.reply_text("Usage: /cancelinvite <id>")
        return
    try:
        invitation_id = parse_id(context.args[0], "invitation id")
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return

    result = _service(context).cancel_invitation(_farmer_id(update, context), invitation_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text(f"Invitation #{invitation_id} cancelled.")


@authorized_only
async def cmd_removemember(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /removemember <id>."""
    if not context.args:
        await update.message.reply_text("Usage: /removemember <id>")
        return
    try:
        member_id = parse_id(context.args[0], "member id")
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return

    result = _service(context).remove_member(_farmer_id(update, context), member_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text(f"Member #{member_id} removed from your team.")


@authorized_only
async def cmd_join(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /join <invitation id> — accept a team invitation."""
    if not context.args:
        await update.message.reply_text("Usage: /join <invitation id>")
        return
    try:
        invitation_id = parse_id(context.args[0], "invitation id")
    except ValidationError as exc:
        await update.message.reply_text(str(exc))
        return

    result = _service(context).join(_farmer_id(update, context), invitation_id)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text(f"🤝 You joined the team as {result.data.role}.")


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_profile(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /profile [name | location | email] — show or update."""
    user_id = _farmer_id(update, context)
    service = _service(context)
    raw = " ".join(context.args or []).strip()

    if not raw:
        user = service.state(user_id).user
        if user is None:
            await update.message.reply_text("No profile yet. Send /start first.")
            return
        await update.message.reply_text(
            f"👤 {user.name}\n📍 {user.location or '-'}\n✉️ {user.email or '-'}\n\n"
            "Update with: /profile <name> | <location> | <email>\n"
            "Leave a part empty to keep it."
        )
        return

    parts = [p.strip() for p in raw.split("|")] + ["", "", ""]
    name, location, email = (p or None for p in parts[:3])
    result = service.update_profile(user_id, name=name, location=location, email=email)
    if not result.ok:
        await _reply_result_error(update, result.error)
        return
    await update.message.reply_text("✅ Profile updated.")


# ---------------------------------------------------------------------------
# Assistant
# ---------------------------------------------------------------------------


def _chat_key(user_id: int) -> str:
    return f"chat_{user_id}"


def _remember(storage: LocalStorage | None, user_id: int, role: str, content: str) -> None:
    if storage is None:
        return
    history = storage.load_data(_chat_key(user_id)) or []
    history.append({"role": role, "content": content, "timestamp": int(time.time() * 1000)})
    storage.save_data(_chat_key(user_id), history[-CHAT_HISTORY_LIMIT:])


@authorized_only
async def cmd_clearchat(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clearchat — drop the stored assistant conversation."""
    storage: LocalStorage | None = context.bot_data.get("storage")
    if storage is not None:
        storage.clear_data(_chat_key(update.effective_user.id))
    await update.message.reply_text("🧹 Chat history cleared.")


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text — ask FarmAI with the farm as context."""
    from rangetrack.core.assistant import ask

    user_id = _farmer_id(update, context)
    storage: LocalStorage | None = context.bot_data.get("storage")
    question = update.message.text

    _remember(storage, user_id, "user", question)
    farm_context = _service(context).farm_context(user_id)
    answer = await ask(question, farm_context)
    _remember(storage, user_id, "assistant", answer)
    await update.message.reply_text(answer)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_service(db_path: str | None = None) -> FarmService:
    """Wire a FarmService over the SQLite tables at `db_path`."""
    from rangetrack.core.farm_service import FarmService
    from rangetrack.data.db import AwardDB, ResourceDB, TaskDB, TeamDB, UserDB

    return FarmService(
        user_db=UserDB(db_path),
        resource_db=ResourceDB(db_path),
        task_db=TaskDB(db_path),
        award_db=AwardDB(db_path),
        team_db=TeamDB(db_path),
        tz=_tz(),
    )


def build_app(
    service: FarmService | None = None,
    notifier: NotificationPort | None = None,
    storage: LocalStorage | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        service: FarmService to use. Defaults to one over DATABASE_PATH.
        notifier: NotificationPort for the daily digest. Defaults to a
                  TelegramNotifier over this app's bot.
        storage: Key/value store for assistant chat history.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if service is None:
        service = build_service()

    if notifier is None:
        from rangetrack.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    if storage is None:
        from rangetrack.data.storage import LocalStorage
        storage = LocalStorage()

    app.bot_data["service"] = service
    app.bot_data["notifier"] = notifier
    app.bot_data["storage"] = storage
    app.bot_data["weather"] = simulate_weather(datetime.now(_tz()))

    commands = {
        "start": cmd_start,
        "help": cmd_help,
        "dashboard": cmd_dashboard,
        "tasks": cmd_tasks,
        "done": cmd_done,
        "resources": cmd_resources,
        "editresource": cmd_editresource,
        "deleteresource": cmd_deleteresource,
        "awards": cmd_awards,
        "insights": cmd_insights,
        "report": cmd_report,
        "weather": cmd_weather,
        "team": cmd_team,
        "invite": cmd_invite,
        "cancelinvite": cmd_cancelinvite,
        "removemember": cmd_removemember,
        "join": cmd_join,
        "profile": cmd_profile,
        "clearchat": cmd_clearchat,
    }
    for name, handler in commands.items():
        app.add_handler(CommandHandler(name, handler))

    _text = filters.TEXT & ~filters.COMMAND
    app.add_handler(ConversationHandler(
        entry_points=[CommandHandler("addtask", cmd_addtask)],
        states={
            TASK_TYPE: [MessageHandler(_text, addtask_type)],
            TASK_RESOURCE: [MessageHandler(_text, addtask_resource)],
            TASK_QTY: [MessageHandler(_text, addtask_qty)],
            TASK_PRIORITY: [MessageHandler(_text, addtask_priority)],
            TASK_WHEN: [MessageHandler(_text, addtask_when)],
            TASK_NOTES: [MessageHandler(_text, addtask_notes)],
        },
        fallbacks=[CommandHandler("cancel", conversation_cancel)],
    ))
    app.add_handler(ConversationHandler(
        entry_points=[CommandHandler("addresource", cmd_addresource)],
        states={
            RES_TYPE: [MessageHandler(_text, addresource_type)],
            RES_NAME: [MessageHandler(_text, addresource_name)],
            RES_QTY: [MessageHandler(_text, addresource_qty)],
            RES_HEALTH: [MessageHandler(_text, addresource_health)],
            RES_NOTES: [MessageHandler(_text, addresource_notes)],
        },
        fallbacks=[CommandHandler("cancel", conversation_cancel)],
    ))

    # Free text goes to the assistant
    app.add_handler(MessageHandler(_text, handle_text))

    _setup_jobs(app, service, notifier)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_jobs(app: Application, service: FarmService, notifier: NotificationPort) -> None:
    """Register the daily digest and the weather refresh on the job queue."""
    from rangetrack.core.scheduler import send_daily_digest

    tz = _tz()
    digest_time = dt_time(hour=settings.DAILY_DIGEST_HOUR, minute=0, tzinfo=tz)

    async def _digest_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_daily_digest(notifier, service, context.bot_data.get("weather"))

    async def _weather_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        context.bot_data["weather"] = simulate_weather(datetime.now(tz))
        logger.debug("Weather refreshed")

    app.job_queue.run_daily(_digest_job_callback, time=digest_time, name="daily_digest")
    app.job_queue.run_repeating(
        _weather_job_callback,
        interval=settings.WEATHER_REFRESH_MINUTES * 60,
        first=settings.WEATHER_REFRESH_MINUTES * 60,
        name="weather_refresh",
    )

    logger.info(
        "Daily digest scheduled at %02d:00 %s; weather refresh every %d min",
        settings.DAILY_DIGEST_HOUR,
        settings.TIMEZONE,
        settings.WEATHER_REFRESH_MINUTES,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting RangeTrack bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
