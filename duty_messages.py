from __future__ import annotations

from datetime import date
from typing import Any

WEEKDAY_NAMES = ("mandag", "tirsdag", "onsdag", "torsdag", "fredag", "lørdag", "søndag")
MONTH_NAMES = (
    "januar",
    "februar",
    "mars",
    "april",
    "mai",
    "juni",
    "juli",
    "august",
    "september",
    "oktober",
    "november",
    "desember",
)
NO_DUTIES_TEXT = "Ingen vakter planlagt i dag."


def day_label(target: date) -> str:
    return WEEKDAY_NAMES[target.weekday()].capitalize()


def format_duties_for_template(duties: list[dict[str, Any]]) -> str:
    if not duties:
        return NO_DUTIES_TEXT
    return "\n".join(f"📍 {duty['crossing']}: {duty['child']}" for duty in duties)


def format_date_for_template(target: date) -> str:
    return f"{WEEKDAY_NAMES[target.weekday()]} {target.day}. {MONTH_NAMES[target.month - 1]}"


def format_today_message(duties: list[dict[str, Any]], target: date) -> str:
    header = f"🚸 Trafikkvakter for {WEEKDAY_NAMES[target.weekday()]} {target.strftime('%d.%m.%Y')}"
    if not duties:
        return f"{header}\n\n{NO_DUTIES_TEXT}"
    lines = [header, ""]
    lines.extend(f"📍 {duty['crossing']}: {duty['child']}" for duty in duties)
    lines.append("")
    lines.append("Husk å møte opp 5 minutter før skoletid!")
    lines.append("Ta kontakt hvis du ikke kan møte opp.")
    return "\n".join(lines)


def template_preview(duties: list[dict[str, Any]], target: date) -> dict[str, Any]:
    date_text = format_date_for_template(target)
    duties_text = format_duties_for_template(duties)
    return {
        "dateText": {"value": date_text, "length": len(date_text)},
        "dutiesText": {
            "value": duties_text,
            "length": len(duties_text),
            "lines": len(duties_text.split("\n")),
        },
    }
