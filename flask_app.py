from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional

from flask import Flask, jsonify, render_template, request
from flask_cors import CORS

from audit_log import AuditLogManager
from change_feed import ChangeFeed
from config import Config
from data_service import DataService, StorageError, build_data_service
from duty_messages import day_label
from duty_service import DAYS, DutyManager, child_workload, crossing_names
from notification_scheduler import NotificationScheduler
from whatsapp_service import WhatsAppAPIError, WhatsAppBusinessClient, WhatsAppConfigError

EXTENSION_KEY = "trafikkvakt"


@dataclass
class Services:
    data_service: DataService
    change_feed: ChangeFeed
    audit_log: AuditLogManager
    duties: DutyManager
    messenger: WhatsAppBusinessClient
    scheduler: NotificationScheduler


def build_services(
    config: Mapping[str, Any],
    data_service: Optional[DataService] = None,
    messenger: Optional[WhatsAppBusinessClient] = None,
    rng: Optional[random.Random] = None,
) -> Services:
    data_service = data_service or build_data_service(dict(config))
    change_feed = ChangeFeed()
    audit_log = AuditLogManager(data_service)
    messenger = messenger or WhatsAppBusinessClient(
        access_token=config.get("WHATSAPP_ACCESS_TOKEN"),
        phone_number_id=config.get("WHATSAPP_PHONE_NUMBER_ID"),
        recipient_number=config.get("WHATSAPP_RECIPIENT_NUMBER"),
        business_account_id=config.get("WHATSAPP_BUSINESS_ACCOUNT_ID"),
        api_version=config.get("WHATSAPP_API_VERSION") or "v22.0",
    )
    scheduler = NotificationScheduler(
        data_service,
        messenger,
        enabled=bool(config.get("WHATSAPP_NOTIFICATIONS_ENABLED")),
        notification_time=config.get("NOTIFICATION_TIME") or "07:00",
        timezone=config.get("NOTIFICATION_TIMEZONE") or "Europe/Oslo",
    )
    return Services(
        data_service=data_service,
        change_feed=change_feed,
        audit_log=audit_log,
        duties=DutyManager(data_service, audit_log, change_feed, rng=rng),
        messenger=messenger,
        scheduler=scheduler,
    )


def create_app(
    overrides: Optional[Mapping[str, Any]] = None,
    services: Optional[Services] = None,
) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    services = services or build_services(app.config)
    app.extensions[EXTENSION_KEY] = services
    CORS(
        app,
        origins="*" if app.config.get("DEBUG") else app.config.get("CORS_ALLOWED_ORIGINS", []),
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    from api import api_bp
    from messaging_api import notifications_bp, whatsapp_bp

    app.register_blueprint(api_bp)
    app.register_blueprint(whatsapp_bp)
    app.register_blueprint(notifications_bp)

    @app.before_request
    def log_request():
        app.logger.info("%s %s", request.method, request.path)

    @app.errorhandler(StorageError)
    def storage_failed(exc):
        app.logger.error("Storage failure: %s", exc)
        return jsonify({"error": "Storage is unavailable", "detail": str(exc)}), 500

    @app.errorhandler(WhatsAppConfigError)
    def whatsapp_not_configured(exc):
        app.logger.warning("WhatsApp not configured: %s", exc)
        return jsonify({"error": str(exc)}), 500

    @app.errorhandler(WhatsAppAPIError)
    def whatsapp_failed(exc):
        app.logger.error("WhatsApp Business API error: %s", exc)
        return jsonify({"error": str(exc), "code": exc.code}), 500

    @app.route("/")
    def index():
        duties = services.duties.get_duties()["duties"]
        crossings = services.data_service.get_crossings()["crossings"]
        names = crossing_names(crossings)
        names.extend(name for name in duties if name not in names)
        links = {c.get("name"): c.get("googleMapsLink") for c in crossings if isinstance(c, dict)}
        today = date.today()
        return render_template(
            "duties.html",
            days=DAYS,
            crossings=names,
            links=links,
            duties=duties,
            schedule=services.data_service.get_schedule(),
            workload=child_workload({"duties": duties}),
            today_label=day_label(today),
        )

    @app.route("/api/health")
    def health():
        return jsonify(
            {
                "status": "OK",
                "timestamp": services.change_feed.version()["timestamp"],
                "environment": app.config.get("APP_ENV"),
                "pid": os.getpid(),
                "storage": services.data_service.describe(),
                "sseClients": services.change_feed.client_count,
                "scheduler": services.scheduler.get_status(),
            }
        )

    if app.config.get("START_SCHEDULER") and not app.config.get("TESTING"):
        services.scheduler.load_persisted_settings()
        services.scheduler.start()

    return app


if __name__ == "__main__":
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    create_app().run(
        host="0.0.0.0",
        port=int(os.getenv("PORT", "3001")),
        debug=Config.DEBUG,
        threaded=True,
        use_reloader=False,
    )
