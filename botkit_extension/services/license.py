import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from botkit_extension import config as settings
from botkit_extension.db import get_setting, set_setting

logger = logging.getLogger(__name__)

DEFAULT_STATUS = "inactive"
_STATUS_FIELDS = ("license", "license_status", "status")


@dataclass
class LicenseConfig:
    store_url: str
    item_id: int
    site_url: str
    timeout_s: float = 15.0


class CheckSchedule(Protocol):
    def start(self, check) -> None: ...

    def stop(self) -> None: ...

    @property
    def running(self) -> bool: ...


def resolve_status(data: dict[str, Any]) -> str | None:
    for name in _STATUS_FIELDS:
        value = data.get(name)
        if value:
            return str(value)
    return None


def status_display(status: str) -> dict[str, str]:
    if status == "valid":
        return {"status": "valid", "message": "Extension license is valid", "class": "valid"}
    if status == "invalid":
        return {"status": "invalid", "message": "Extension license is invalid", "class": "invalid"}
    if status == "deactivated":
        return {"status": "inactive", "message": "Extension license is deactivated", "class": "warning"}
    return {"status": "inactive", "message": "Extension license not activated", "class": "warning"}


def admin_notice(status: str) -> tuple[str, str] | None:
    """Notice (severity, text) to show outside the license page, if any."""
    if status == "invalid":
        return "error", "Your BotKit Extension license is invalid or expired. Please enter a valid license key."
    if status in ("inactive", "deactivated"):
        return "warning", "Your BotKit Extension license is not activated. Please activate your license key."
    return None


class LicenseManager:
    def __init__(self, config: LicenseConfig, schedule: CheckSchedule | None = None):
        self.config = config
        self.schedule = schedule

    def get_license_key(self) -> str:
        return get_setting(settings.LICENSE_KEY_OPTION) or ""

    def get_license_status(self) -> str:
        return get_setting(settings.LICENSE_STATUS_OPTION) or DEFAULT_STATUS

    def is_licensed(self) -> bool:
        return self.get_license_status() == "valid"

    def status_display(self) -> dict[str, str]:
        return status_display(self.get_license_status())

    def activate(self, license_key: str) -> tuple[bool, str]:
        data = self.remote_request("activate_license", license_key)
        if not data or not data.get("success"):
            set_setting(settings.LICENSE_STATUS_OPTION, "invalid")
            logger.warning("license_activation_failed", extra={"error": (data or {}).get("error")})
            return False, "Invalid license key or activation failed."

        status = resolve_status(data) or "valid"
        set_setting(settings.LICENSE_KEY_OPTION, license_key)
        set_setting(settings.LICENSE_STATUS_OPTION, status)
        logger.info("license_activated", extra={"license_status": status})
        if status == "valid":
            self._start_schedule()
        return True, "Extension license activated successfully."

    def deactivate(self, license_key: str) -> tuple[bool, str]:
        data = self.remote_request("deactivate_license", license_key)
        if not data or not data.get("success"):
            return False, "License deactivation failed."

        set_setting(settings.LICENSE_STATUS_OPTION, "inactive")
        self._stop_schedule()
        logger.info("license_deactivated")
        return True, "Extension license deactivated successfully."

    def check(self, license_key: str) -> str | None:
        data = self.remote_request("check_license", license_key)
        if not data or not data.get("success"):
            # a failed remote call never invalidates the stored status
            return None
        status = resolve_status(data)
        if status is None:
            logger.error("unexpected_license_response", extra={"response": data})
        return status

    def maybe_validate(self, now: float | None = None) -> None:
        current = self.get_license_status()
        if current != "valid":
            return

        now = time.time() if now is None else now
        last_check = float(get_setting(settings.LAST_CHECK_OPTION) or 0)
        if now - last_check <= settings.CHECK_INTERVAL_S:
            return

        license_key = self.get_license_key()
        if not license_key:
            return

        remote = self.check(license_key)
        if remote is not None and remote != current:
            set_setting(settings.LICENSE_STATUS_OPTION, remote)
            logger.info("license_status_changed", extra={"old_status": current, "new_status": remote})
            if remote != "valid":
                self._stop_schedule()
        set_setting(settings.LAST_CHECK_OPTION, str(int(now)))

    def ensure_schedule(self) -> None:
        if self.is_licensed():
            if self.schedule is not None and not self.schedule.running:
                self._start_schedule()
        else:
            self._stop_schedule()

    def remote_request(self, action: str, license_key: str) -> dict[str, Any] | None:
        params = {
            "edd_action": action,
            "license": license_key,
            "item_id": str(self.config.item_id),
            "url": self.config.site_url,
        }
        try:
            response = httpx.post(self.config.store_url, data=params, timeout=self.config.timeout_s)
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("license_store_unreachable", extra={"edd_action": action, "error": str(exc)})
            return None
        return data if isinstance(data, dict) else None

    def _start_schedule(self) -> None:
        if self.schedule is not None:
            self.schedule.start(self.maybe_validate)

    def _stop_schedule(self) -> None:
        if self.schedule is not None:
            self.schedule.stop()
