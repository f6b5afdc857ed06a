from __future__ import annotations

from datetime import date

from duty_messages import (
    NO_DUTIES_TEXT,
    day_label,
    format_date_for_template,
    format_duties_for_template,
    format_today_message,
    template_preview,
)

FRIDAY = date(2025, 10, 17)
DUTIES = [{"child": "Ada", "crossing": "Elm St"}, {"child": "Bob", "crossing": "Oak Ave"}]


def test_date_and_day_labels():
    assert day_label(FRIDAY) == "Fredag"
    assert format_date_for_template(FRIDAY) == "fredag 17. oktober"
    assert format_date_for_template(date(2025, 5, 1)) == "torsdag 1. mai"


def test_duties_text():
    assert format_duties_for_template(DUTIES) == "📍 Elm St: Ada\n📍 Oak Ave: Bob"
    assert format_duties_for_template([]) == NO_DUTIES_TEXT


def test_today_message():
    message = format_today_message(DUTIES, FRIDAY)

    assert message.startswith("🚸 Trafikkvakter for fredag 17.10.2025\n\n📍 Elm St: Ada")
    assert "Husk å møte opp" in message
    assert format_today_message([], FRIDAY).endswith(NO_DUTIES_TEXT)


def test_template_preview_reports_lengths():
    preview = template_preview(DUTIES, FRIDAY)

    assert preview["dateText"] == {"value": "fredag 17. oktober", "length": 18}
    assert preview["dutiesText"]["lines"] == 2
