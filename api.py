from __future__ import annotations

from datetime import date
from typing import Any

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from data_service import (
    normalize_children,
    normalize_crossings,
    normalize_schedule,
    schedule_for_date,
)

api_bp = Blueprint("api", __name__, url_prefix="/api")


def _services():
    return current_app.extensions["trafikkvakt"]


def _json_body() -> Any:
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValueError("expected JSON payload")
    return payload


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


@api_bp.errorhandler(ValueError)
def invalid_request(exc):
    current_app.logger.warning("Invalid request to %s: %s", request.path, exc)
    return jsonify({"error": str(exc)}), 400


@api_bp.route("/duties", methods=["GET"])
def get_duties():
    return jsonify(_services().duties.get_duties())


@api_bp.route("/duties", methods=["PUT"])
def put_duties():
    stamp = _services().duties.replace_duties(_json_body())
    return jsonify({"success": True, "lastUpdate": stamp})


@api_bp.route("/duties/auto-fill", methods=["POST"])
def auto_fill_duties():
    result = _services().duties.auto_fill()
    current_app.logger.info("Auto-fill completed: %s", result["distribution"])
    return jsonify({"success": True, **result})


@api_bp.route("/duties/swap", methods=["POST"])
def swap_duties():
    payload = _json_body()
    if not isinstance(payload, dict):
        raise ValueError("expected JSON object with source and target")
    result = _services().duties.swap(payload.get("source"), payload.get("target"))
    return jsonify({"success": True, **result})


@api_bp.route("/duties/today", methods=["GET"])
def todays_duties():
    target = _parse_date(request.args.get("date")) or date.today()
    duties = _services().duties.duties_for_weekday(target.weekday())
    return jsonify(
        {
            "date": target.isoformat(),
            "isWeekday": duties is not None,
            "duties": duties or [],
        }
    )


@api_bp.route("/children", methods=["GET"])
def get_children():
    return jsonify(_services().data_service.get_children())


@api_bp.route("/children", methods=["PUT"])
def put_children():
    children = normalize_children(_json_body())
    _services().data_service.store_children(children)
    current_app.logger.info("Children updated (%d)", len(children["children"]))
    return jsonify({"success": True, **children})


@api_bp.route("/crossings", methods=["GET"])
def get_crossings():
    return jsonify(_services().data_service.get_crossings())


@api_bp.route("/crossings", methods=["PUT"])
def put_crossings():
    crossings = normalize_crossings(_json_body())
    _services().data_service.store_crossings(crossings)
    current_app.logger.info("Crossings updated (%d)", len(crossings["crossings"]))
    return jsonify({"success": True, **crossings})


@api_bp.route("/schedule", methods=["GET"])
def get_schedule():
    return jsonify(_services().data_service.get_schedule())


@api_bp.route("/schedule", methods=["PUT"])
def put_schedule():
    schedule = normalize_schedule(_json_body())
    _services().data_service.store_schedule(schedule)
    return jsonify({"success": True, "schedule": schedule})


@api_bp.route("/schedule/from-date", methods=["POST"])
def schedule_from_date():
    payload = _json_body()
    target = _parse_date(payload.get("date") if isinstance(payload, dict) else None)
    if not target:
        raise ValueError("date is required (YYYY-MM-DD)")
    schedule = schedule_for_date(target)
    _services().data_service.store_schedule(schedule)
    return jsonify({"success": True, "schedule": schedule})


@api_bp.route("/audit-log", methods=["GET"])
def get_audit_log():
    return jsonify({"auditLog": _services().audit_log.list_entries()})


@api_bp.route("/audit-log", methods=["POST"])
def add_audit_entry():
    entry = _services().audit_log.append(_json_body())
    return jsonify({"success": True, "entry": entry})


@api_bp.route("/audit-log", methods=["DELETE"])
def clear_audit_log():
    _services().audit_log.clear()
    return jsonify({"success": True})


@api_bp.route("/data-version", methods=["GET"])
def data_version():
    return jsonify(_services().change_feed.version())


@api_bp.route("/events", methods=["GET"])
def events():
    feed = _services().change_feed
    client = feed.subscribe()
    return Response(
        stream_with_context(feed.stream(client)),
        mimetype="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )
