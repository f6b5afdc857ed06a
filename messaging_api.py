from __future__ import annotations

from datetime import date, datetime

from flask import Blueprint, current_app, jsonify, request

from duty_messages import (
    day_label,
    format_date_for_template,
    format_duties_for_template,
    format_today_message,
    template_preview,
)

whatsapp_bp = Blueprint("whatsapp_business", __name__, url_prefix="/api/whatsapp-business")
notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


def _services():
    return current_app.extensions["trafikkvakt"]


def _today() -> date:
    return _services().scheduler.now().date()


def _todays_duties(today: date) -> list[dict[str, str]]:
    return _services().duties.duties_for_weekday(today.weekday()) or []


def _bad_request(exc):
    current_app.logger.warning("Invalid request to %s: %s", request.path, exc)
    return jsonify({"error": str(exc)}), 400


whatsapp_bp.register_error_handler(ValueError, _bad_request)
notifications_bp.register_error_handler(ValueError, _bad_request)


@whatsapp_bp.route("/status", methods=["GET"])
def whatsapp_status():
    return jsonify(_services().messenger.get_status())


@whatsapp_bp.route("/connect", methods=["POST"])
def whatsapp_connect():
    messenger = _services().messenger
    info = messenger.initialize()
    return jsonify(
        {
            "message": "WhatsApp Business API connected successfully",
            "phone": info,
            "status": messenger.get_status(),
        }
    )


@whatsapp_bp.route("/send", methods=["POST"])
def whatsapp_send():
    payload = request.get_json(silent=True) or {}
    message = payload.get("message")
    if not message:
        return jsonify({"error": "Message is required"}), 400
    return jsonify(_services().messenger.send_message(message, payload.get("recipient")))


@whatsapp_bp.route("/send-template", methods=["POST"])
def whatsapp_send_template():
    payload = request.get_json(silent=True) or {}
    template_name = payload.get("templateName")
    if not template_name:
        return jsonify({"error": "Template name is required"}), 400
    result = _services().messenger.send_template_message(
        template_name,
        payload.get("languageCode") or "en_US",
        payload.get("components"),
    )
    return jsonify(result)


@whatsapp_bp.route("/test-template", methods=["POST"])
def whatsapp_test_template():
    return jsonify(_services().messenger.send_hello_world_template())


@whatsapp_bp.route("/test-custom-template", methods=["POST"])
def whatsapp_test_custom_template():
    today = _today()
    duties = _todays_duties(today)
    date_text = format_date_for_template(today)
    duties_text = format_duties_for_template(duties)
    result = _services().messenger.send_duties_template(duties_text, date_text)
    return jsonify(
        {
            "success": True,
            "message": "Custom template test sent successfully",
            "result": result,
            "dutiesCount": len(duties),
            "templateData": {
                "dateText": date_text,
                "dutiesText": duties_text if len(duties_text) <= 100 else duties_text[:100] + "...",
            },
        }
    )


@whatsapp_bp.route("/test-basic-template", methods=["POST"])
def whatsapp_test_basic_template():
    result = _services().messenger.send_duties_template("Hhh", "Hhh")
    return jsonify({"success": True, "message": "Basic template test sent successfully", "result": result})


@whatsapp_bp.route("/template-preview", methods=["GET"])
def whatsapp_template_preview():
    today = _today()
    duties = _todays_duties(today)
    return jsonify(
        {
            "todayName": day_label(today),
            "dutiesCount": len(duties),
            "rawDuties": duties,
            "templateParameters": template_preview(duties, today),
        }
    )


@whatsapp_bp.route("/send-today", methods=["POST"])
def whatsapp_send_today():
    today = _today()
    duties = _todays_duties(today)
    result = _services().messenger.send_duties_template(
        format_duties_for_template(duties),
        format_date_for_template(today),
    )
    return jsonify(
        {
            "success": True,
            "message": "Today's duty notification sent via WhatsApp Business API (template)",
            "messageId": result.get("messageId"),
            "template": result.get("template"),
            "dutiesCount": len(duties),
            "sentAt": result.get("timestamp"),
        }
    )


@whatsapp_bp.route("/message/today", methods=["GET"])
def whatsapp_message_today():
    today = _today()
    duties = _todays_duties(today)
    return jsonify(
        {
            "message": format_today_message(duties, today),
            "isEmpty": not duties,
            "dutiesCount": len(duties),
            "dayName": day_label(today),
            "duties": duties,
        }
    )


@whatsapp_bp.route("/templates", methods=["GET"])
def whatsapp_templates():
    return jsonify({"templates": _services().messenger.get_message_templates()})


@whatsapp_bp.route("/profile", methods=["GET"])
def whatsapp_profile():
    return jsonify(_services().messenger.get_business_profile())


@whatsapp_bp.route("/test", methods=["POST"])
def whatsapp_test():
    sent_at = datetime.now(_services().scheduler.tz).strftime("%d.%m.%Y %H:%M")
    message = (
        "🧪 WhatsApp Business API Test\n\n"
        "This is a test message from Trafikkvakt.\n\n"
        f"Sent at: {sent_at}"
    )
    result = _services().messenger.send_message(message)
    return jsonify({"success": True, "message": "Test message sent successfully", "result": result})


@notifications_bp.route("/status", methods=["GET"])
def notification_status():
    return jsonify(_services().scheduler.get_status())


@notifications_bp.route("/test", methods=["POST"])
def notification_test():
    result = _services().scheduler.send_test_notification()
    return jsonify({"message": "Test notification sent successfully", "result": result})


@notifications_bp.route("/send-todays-duties", methods=["POST"])
def notification_send_todays_duties():
    result = _services().scheduler.check_and_send_todays_duties(_today())
    return jsonify({"message": "Today's duties notification processed", "result": result})


@notifications_bp.route("/schedule", methods=["PUT"])
def notification_schedule():
    payload = request.get_json(silent=True) or {}
    enabled = payload.get("enabled")
    if enabled is not None and not isinstance(enabled, bool):
        raise ValueError("enabled must be true or false")
    status = _services().scheduler.update_schedule(payload.get("time"), enabled=enabled)
    current_app.logger.info("Notification schedule updated to %s", status["notificationTime"])
    return jsonify(
        {
            "message": "Notification schedule updated successfully",
            "time": status["notificationTime"],
            "status": status,
        }
    )
