"""
RangeTrack — FarmAI conversational assistant.

Builds a farm summary from the user's records, embeds it in the system
prompt and asks, in order: the local Ollama model, the configured cloud
provider, and finally a keyword-driven fallback responder that always
answers. Each call is independent; no chat state is kept here.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Callable, Sequence

from rangetrack.core import llm
from rangetrack.core.metrics import DAY_MS, average_health, feed_days_remaining
from rangetrack.data.models import Resource, Task

logger = logging.getLogger(__name__)

MAX_PROMPT_RESOURCES = 10
MAX_PROMPT_TASKS = 5
FEED_ORDER_THRESHOLD_DAYS = 7


@dataclass
class FarmContext:
    """Snapshot of the farm handed to the assistant."""

    total_animals: int = 0
    total_equipment: int = 0
    completed_tasks_this_week: int = 0
    feed_days_remaining: int = 0
    average_health: int = 100
    recent_activity: str = "No recent activity logged"
    resources: list[Resource] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)


def _pretty(task_type: str) -> str:
    return task_type.replace("_", " ")


def build_farm_context(
    tasks: Sequence[Task],
    resources: Sequence[Resource],
    now_ms: int | None = None,
    tz: tzinfo | None = None,
) -> FarmContext:
    now = int(time.time() * 1000) if now_ms is None else now_ms
    recent = [t for t in tasks if t.ts >= now - 7 * DAY_MS]

    activity = [_pretty(t.type) for t in recent[:MAX_PROMPT_TASKS]]
    return FarmContext(
        total_animals=sum(1 for r in resources if r.type == "animal"),
        total_equipment=sum(1 for r in resources if r.type == "equipment"),
        completed_tasks_this_week=sum(1 for t in recent if t.completed),
        feed_days_remaining=feed_days_remaining(tasks, resources, now_ms=now, tz=tz),
        average_health=average_health(resources),
        recent_activity=(
            f"Recent activities: {', '.join(activity)}" if activity
            else "No recent activity logged"
        ),
        resources=list(resources),
        tasks=list(tasks),
    )


def build_system_prompt(context: FarmContext) -> str:
    resource_lines = "\n".join(
        f"- {r.name} ({r.type}): "
        f"{r.quantity if r.quantity is not None else 'N/A'} units, "
        f"Health: {f'{r.health}%' if r.health is not None else 'N/A'}"
        for r in context.resources[:MAX_PROMPT_RESOURCES]
    ) or "- none tracked"
    task_lines = "\n".join(
        f"- {_pretty(t.type)} ({'Completed' if t.completed else 'Pending'})"
        for t in context.tasks[:MAX_PROMPT_TASKS]
    ) or "- none logged"

    return (
        "You are FarmAI, an expert agricultural assistant inside the RangeTrack "
        "farm management bot. You answer questions about this farm's operations "
        "and give general farming advice.\n\n"
        "FARM CONTEXT:\n"
        f"- Animals: {context.total_animals} (Average health: {context.average_health}%)\n"
        f"- Equipment: {context.total_equipment} pieces\n"
        f"- Tasks completed this week: {context.completed_tasks_this_week}\n"
        f"- Feed supply: {context.feed_days_remaining} days remaining\n"
        f"- {context.recent_activity}\n\n"
        f"RESOURCES:\n{resource_lines}\n\n"
        f"RECENT TASKS:\n{task_lines}\n\n"
        "Instructions:\n"
        "1. Answer as a practical, knowledgeable farmer would.\n"
        "2. Use the farm context above to personalise advice; reference specific "
        "animals or equipment when asked.\n"
        "3. Fall back to general farming knowledge when the data has no answer.\n"
        "4. Keep replies to two or three short paragraphs.\n"
        "5. Put animal welfare and sustainable practice first."
    )


# ---------------------------------------------------------------------------
# Rule-based fallback
# ---------------------------------------------------------------------------

_Responder = Callable[[FarmContext], str]


def _static(text: str) -> _Responder:
    return lambda context: text


def _feed_reply(context: FarmContext) -> str:
    days = context.feed_days_remaining
    if days <= FEED_ORDER_THRESHOLD_DAYS:
        return (
            f"🌾 Your feed inventory covers about {days} days. Order more soon. "
            "Cattle typically eat 2-3% of body weight in dry matter per day; "
            "hay or silage can stretch supplies in the meantime."
        )
    return (
        f"🌾 Feed supply looks healthy at {days} days remaining. Keep rations "
        "balanced: 12-16% protein for cattle, enough energy and minerals, and "
        "clean water. Check body condition scores regularly."
    )


def _health_reply(context: FarmContext) -> str:
    return (
        f"🏥 Your {context.total_animals} animals average a health score of "
        f"{context.average_health}%. Stay on top of vaccinations, parasite "
        "control, nutrition, clean water and sanitation. Reduced appetite or "
        "lethargy are early warning signs; call a vet for anything serious."
    )


def _equipment_reply(context: FarmContext) -> str:
    return (
        f"🔧 You have {context.total_equipment} pieces of equipment tracked. "
        "Check fluids, grease fittings, tyre pressure and belts weekly, keep a "
        "maintenance log, and fix small issues before they become breakdowns."
    )


def _task_reply(context: FarmContext) -> str:
    return (
        f"📝 You've completed {context.completed_tasks_this_week} tasks this "
        "week! Plan around daily animal checks, regular equipment maintenance "
        "and the season ahead, and prioritise by urgency and weather."
    )


def _cattle_reply(context: FarmContext) -> str:
    return (
        "🐄 Cattle basics:\n"
        "• Feed: 2-3% of body weight daily\n"
        "• Water: 30-50 gallons a day\n"
        "• Health: regular vaccinations and hoof care\n"
        "• Housing: shelter with good ventilation\n\n"
        f"You currently have {context.total_animals} animals on record."
    )


def _generic_reply(context: FarmContext) -> str:
    return (
        "🚜 I can help with equipment and tools, animal care, crop management, "
        "seasonal planning and soil health.\n\n"
        f"You're managing {context.total_animals} animals and "
        f"{context.total_equipment} pieces of equipment. What would you like "
        "guidance on?"
    )


# Ordered: first keyword hit wins.
_FALLBACK_RULES: list[tuple[tuple[str, ...], _Responder]] = [
    (("rake",), _static(
        "🔧 A rake gathers and levels material with a row of tines. Hay rakes "
        "windrow cut grass for baling, garden rakes prep soil, leaf rakes clear "
        "debris and power rakes hitch to a tractor for large hay fields."
    )),
    (("tractor",), _static(
        "🚜 The tractor pulls or powers most farm implements: plowing, planting, "
        "running PTO-driven gear and hauling. Sizes run from compact "
        "(25-50 HP) to 200+ HP for large operations."
    )),
    (("plow", "plough"), _static(
        "🌾 A plow breaks and turns soil to prepare a seedbed. Moldboard plows "
        "invert the soil fully, disc plows cut with rotating discs and chisel "
        "plows loosen without inverting."
    )),
    (("harrow",), _static(
        "⚡ A harrow breaks clods and smooths the soil after plowing, leaving a "
        "fine, level seedbed. Common types are disc, spring-tooth and drag harrows."
    )),
    (("cultivator",), _static(
        "🌱 A cultivator loosens soil and cuts weeds between crop rows without "
        "turning the soil over, which keeps soil structure intact."
    )),
    (("seed drill", "seeder", "planter"), _static(
        "🌰 Seed drills place small grains in rows, planters space larger seeds "
        "like corn and soybeans, and broadcast seeders spread seed over wide "
        "areas. Depth and spacing drive germination."
    )),
    (("cattle", "cow", "bull"), _cattle_reply),
    (("crop rotation", "rotation"), _static(
        "🔄 Rotating crops on the same field rebuilds soil nutrients and breaks "
        "pest, disease and weed cycles. Corn-soybean and wheat-fallow are "
        "common, as are longer four-year cycles."
    )),
    (("fertilizer", "fertilize"), _static(
        "🧪 Nitrogen drives leaf growth, phosphorus roots and flowering, and "
        "potassium disease resistance. A soil test tells you exactly what to apply."
    )),
    (("feed", "nutrition"), _feed_reply),
    (("health", "sick", "disease"), _health_reply),
    (("weather", "season", "winter", "summer"), _static(
        "🌤️ In winter plan for shelter, unfrozen water and extra feed energy; in "
        "summer for shade, fresh water and heat stress. Watch the forecast when "
        "scheduling field work."
    )),
    (("equipment", "maintenance", "repair"), _equipment_reply),
    (("task", "schedule", "plan"), _task_reply),
    (("spring", "fall"), _static(
        "🌤️ Spring: field prep and planting. Summer: monitoring, pest control "
        "and haying. Fall: harvest and winterising. Winter: planning, repairs "
        "and livestock care."
    )),
    (("soil", "dirt"), _static(
        "🌱 Most crops like a pH of 6.0-7.0, balanced NPK, good drainage and "
        "3-5% organic matter. Test every 2-3 years to guide fertilizer and lime."
    )),
    (("water", "irrigation", "irrigate"), _static(
        "💧 Most crops need 1-2 inches of water a week. Water early in the "
        "morning, consider drip irrigation to save 30-50%, and keep livestock "
        "water clean and always available."
    )),
    (("pest", "bug", "insect", "weed"), _static(
        "🐛 Integrated pest management: prevent with rotation and resistant "
        "varieties, scout regularly, encourage natural predators, and use "
        "targeted chemicals only as a last resort."
    )),
    (("profit", "cost", "money"), _static(
        "💰 Track every expense and sale, budget for seasonal cash flow, "
        "diversify income and insure crops and livestock. Your local extension "
        "office can help with detailed planning."
    )),
    (("what is", "define", "explain"), _static(
        "📚 I can explain tools (rake, plow, harrow, seeder), practices (crop "
        "rotation, fertilizing, irrigation), animals, crops and soil. Which "
        "term should I explain?"
    )),
]


def fallback_response(message: str, context: FarmContext) -> str:
    """Answer without any model: first matching keyword rule, else a generic reply."""
    lowered = message.lower()
    for keywords, responder in _FALLBACK_RULES:
        if any(keyword in lowered for keyword in keywords):
            return responder(context)
    return _generic_reply(context)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def ask(message: str, context: FarmContext) -> str:
    """Answer a farming question. Never raises."""
    system = build_system_prompt(context)

    try:
        return await llm.complete_local(system, message)
    except Exception as exc:
        logger.warning("Local model unavailable, trying cloud: %s", exc)

    if llm.cloud_enabled():
        try:
            reply = await llm.complete(system, message)
            if reply and reply.strip():
                return reply.strip()
        except Exception as exc:
            logger.warning("Cloud LLM failed, using fallback: %s", exc)

    return fallback_response(message, context)
