from __future__ import annotations

import logging
import re
import threading
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from data_service import DataService, StorageError
from duty_messages import format_date_for_template, format_duties_for_template
from duty_service import WEEKDAY_TO_DAY, duties_for_day
from whatsapp_service import WhatsAppAPIError, WhatsAppBusinessClient, WhatsAppConfigError

TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
DEFAULT_TIMEZONE = "Europe/Oslo"
NOTIFICATION_WEEKDAYS = frozenset(range(5))

logger = logging.getLogger(__name__)


def parse_time(value: Any) -> time:
    match = TIME_PATTERN.match(str(value or "").strip())
    if not match:
        raise ValueError("Invalid time format. Use HH:MM format (e.g., 07:00)")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError("Invalid time format. Use HH:MM format (e.g., 07:00)")
    return time(hours, minutes)


def next_run_after(now: datetime, at: time, weekdays=NOTIFICATION_WEEKDAYS) -> datetime:
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    while candidate.weekday() not in weekdays:
        candidate += timedelta(days=1)
    return candidate


class NotificationScheduler:
    """Sends today's duties through WhatsApp every weekday at a fixed time."""

    def __init__(
        self,
        data_service: DataService,
        messenger: WhatsAppBusinessClient,
        enabled: bool = False,
        notification_time: str = "07:00",
        timezone: str = DEFAULT_TIMEZONE,
    ) -> None:
        self.data_service = data_service
        self.messenger = messenger
        self.enabled = enabled
        self.notification_time = parse_time(notification_time).strftime("%H:%M")
        self.tz = ZoneInfo(timezone)
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self.last_run: Optional[dict[str, Any]] = None

    def load_persisted_settings(self) -> None:
        try:
            settings = self.data_service.get_notification_settings()
        except StorageError:
            logger.exception("Unable to load notification settings")
            return
        if not settings:
            return
        try:
            self.notification_time = parse_time(settings.get("time", self.notification_time)).strftime("%H:%M")
        except ValueError:
            logger.warning("Ignoring stored notification time %r", settings.get("time"))
        if "enabled" in settings:
            self.enabled = bool(settings["enabled"])

    def _persist_settings(self) -> None:
        self.data_service.store_notification_settings(
            {"enabled": self.enabled, "time": self.notification_time}
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        current = now or self.now()
        return next_run_after(current.astimezone(self.tz), parse_time(self.notification_time))

    def seconds_until(self, fire_at: datetime, now: Optional[datetime] = None) -> float:
        # subtract in UTC so a DST change before fire_at is counted
        current = now or self.now()
        return (fire_at.astimezone(timezone.utc) - current.astimezone(timezone.utc)).total_seconds()

    def start(self) -> bool:
        if not self.enabled:
            logger.info("WhatsApp notifications are disabled")
            return False
        with self._lock:
            if self.running:
                return True
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="notification-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info("Notification scheduler started for %s on weekdays (%s)", self.notification_time, self.tz.key)
        return True

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()
        if thread and thread is not threading.current_thread():
            thread.join(timeout=5)
            logger.info("Notification scheduler stopped")

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            fire_at = self.next_run()
            delay = self.seconds_until(fire_at)
            if stop_event.wait(timeout=max(delay, 0)):
                return
            logger.info("Running scheduled WhatsApp notification check")
            try:
                self.check_and_send_todays_duties(fire_at.date())
            except Exception:
                logger.exception("Error sending daily notification")

    def update_schedule(self, new_time: str, enabled: Optional[bool] = None) -> dict[str, Any]:
        self.notification_time = parse_time(new_time).strftime("%H:%M")
        if enabled is not None:
            self.enabled = bool(enabled)
        self._persist_settings()
        if self.running:
            self.stop()
        if self.enabled:
            self.start()
        return self.get_status()

    def todays_duties(self, today: date) -> Optional[list[dict[str, str]]]:
        day = WEEKDAY_TO_DAY.get(today.weekday())
        if day is None:
            return None
        return duties_for_day(self.data_service.get_duties(), day)

    def check_and_send_todays_duties(self, today: Optional[date] = None) -> dict[str, Any]:
        today = today or self.now().date()
        duties = self.todays_duties(today)
        if duties is None:
            logger.info("Today is %s, skipping notification", today.strftime("%A"))
            self.last_run = {"date": today.isoformat(), "status": "skipped"}
            return self.last_run
        date_text = format_date_for_template(today)
        duties_text = format_duties_for_template(duties)
        try:
            result = self.messenger.send_duties_template(duties_text, date_text)
            status = "sent"
        except (WhatsAppAPIError, WhatsAppConfigError) as exc:
            logger.warning("Custom template failed, using hello world fallback: %s", exc)
            result = self.messenger.send_hello_world_template()
            status = "fallback"
        logger.info("Daily notification %s (%d duties)", status, len(duties))
        self.last_run = {
            "date": today.isoformat(),
            "status": status,
            "dutiesCount": len(duties),
            "messageId": result.get("messageId"),
        }
        return self.last_run

    def send_test_notification(self) -> dict[str, Any]:
        logger.info("Sending test notification")
        return self.messenger.send_hello_world_template()

    def get_status(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "running": self.running,
            "notificationTime": self.notification_time,
            "timezone": self.tz.key,
            "nextScheduled": self.next_run().isoformat() if self.enabled else None,
            "lastRun": self.last_run,
        }
