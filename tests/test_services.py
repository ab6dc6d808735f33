import threading
import time

import httpx

from botkit_extension import config
from botkit_extension.db import get_setting, set_setting
from botkit_extension.services.license import (
    LicenseConfig,
    LicenseManager,
    admin_notice,
    resolve_status,
    status_display,
)
from botkit_extension.services.nonce import create_nonce, verify_nonce
from botkit_extension.services import scheduler as scheduler_module
from botkit_extension.services.scheduler import LicenseCheckScheduler

from conftest import FakeSchedule


def _manager(schedule=None) -> LicenseManager:
    return LicenseManager(
        LicenseConfig(store_url="https://store.test/", item_id=573656, site_url="https://site.test"),
        schedule,
    )


def test_activate_stores_key_and_valid_status(panel_db, fake_store):
    fake_store.replies["activate_license"] = {"success": True, "license": "valid"}
    schedule = FakeSchedule()

    ok, msg = _manager(schedule).activate("KEY-1")

    assert ok is True
    assert msg == "Extension license activated successfully."
    assert get_setting(config.LICENSE_KEY_OPTION) == "KEY-1"
    assert get_setting(config.LICENSE_STATUS_OPTION) == "valid"
    assert schedule.running is True
    assert fake_store.calls[0] == {
        "edd_action": "activate_license",
        "license": "KEY-1",
        "item_id": "573656",
        "url": "https://site.test",
    }


def test_activate_without_status_field_defaults_to_valid(panel_db, fake_store):
    fake_store.replies["activate_license"] = {"success": True}
    ok, _ = _manager().activate("KEY-1")
    assert ok is True
    assert get_setting(config.LICENSE_STATUS_OPTION) == "valid"


def test_activate_with_non_valid_status_does_not_schedule(panel_db, fake_store):
    fake_store.replies["activate_license"] = {"success": True, "license_status": "expired"}
    schedule = FakeSchedule()

    ok, _ = _manager(schedule).activate("KEY-1")

    assert ok is True
    assert get_setting(config.LICENSE_STATUS_OPTION) == "expired"
    assert schedule.starts == 0


def test_activate_rejected_marks_invalid(panel_db, fake_store):
    fake_store.replies["activate_license"] = {"success": False, "license": "invalid", "error": "missing"}

    ok, msg = _manager().activate("BAD")

    assert ok is False
    assert msg == "Invalid license key or activation failed."
    assert get_setting(config.LICENSE_STATUS_OPTION) == "invalid"
    assert get_setting(config.LICENSE_KEY_OPTION) is None


def test_activate_store_unreachable_marks_invalid(panel_db, fake_store):
    fake_store.replies["activate_license"] = httpx.ConnectError("down")
    ok, _ = _manager().activate("KEY-1")
    assert ok is False
    assert get_setting(config.LICENSE_STATUS_OPTION) == "invalid"


def test_deactivate_success_sets_inactive_and_stops_schedule(panel_db, fake_store):
    set_setting(config.LICENSE_STATUS_OPTION, "valid")
    fake_store.replies["deactivate_license"] = {"success": True, "license": "deactivated"}
    schedule = FakeSchedule()
    schedule.running = True

    ok, msg = _manager(schedule).deactivate("KEY-1")

    assert ok is True
    assert msg == "Extension license deactivated successfully."
    assert get_setting(config.LICENSE_STATUS_OPTION) == "inactive"
    assert schedule.running is False


def test_deactivate_failure_leaves_status(panel_db, fake_store):
    set_setting(config.LICENSE_STATUS_OPTION, "valid")
    fake_store.replies["deactivate_license"] = {"success": False, "license": "failed"}

    ok, msg = _manager().deactivate("KEY-1")

    assert ok is False
    assert msg == "License deactivation failed."
    assert get_setting(config.LICENSE_STATUS_OPTION) == "valid"


def test_check_returns_none_on_unreadable_body(panel_db, fake_store):
    fake_store.replies["check_license"] = ValueError("not json")
    assert _manager().check("KEY-1") is None


def test_maybe_validate_updates_changed_status(panel_db, fake_store):
    set_setting(config.LICENSE_KEY_OPTION, "KEY-1")
    set_setting(config.LICENSE_STATUS_OPTION, "valid")
    fake_store.replies["check_license"] = {"success": True, "license": "expired"}
    schedule = FakeSchedule()
    schedule.running = True

    _manager(schedule).maybe_validate(now=1_000_000)

    assert get_setting(config.LICENSE_STATUS_OPTION) == "expired"
    assert get_setting(config.LAST_CHECK_OPTION) == "1000000"
    assert schedule.running is False


def test_maybe_validate_keeps_status_when_store_fails(panel_db, fake_store):
    set_setting(config.LICENSE_KEY_OPTION, "KEY-1")
    set_setting(config.LICENSE_STATUS_OPTION, "valid")
    fake_store.replies["check_license"] = httpx.ReadTimeout("slow")

    _manager().maybe_validate(now=1_000_000)

    assert get_setting(config.LICENSE_STATUS_OPTION) == "valid"
    assert get_setting(config.LAST_CHECK_OPTION) == "1000000"


def test_maybe_validate_respects_interval(panel_db, fake_store):
    set_setting(config.LICENSE_KEY_OPTION, "KEY-1")
    set_setting(config.LICENSE_STATUS_OPTION, "valid")
    set_setting(config.LAST_CHECK_OPTION, "1000000")

    _manager().maybe_validate(now=1_000_000 + config.CHECK_INTERVAL_S - 1)

    assert fake_store.calls == []


def test_maybe_validate_waits_past_the_full_interval(panel_db, fake_store):
    set_setting(config.LICENSE_KEY_OPTION, "KEY-1")
    set_setting(config.LICENSE_STATUS_OPTION, "valid")
    set_setting(config.LAST_CHECK_OPTION, "1000000")
    fake_store.replies["check_license"] = {"success": True, "license": "valid"}

    _manager().maybe_validate(now=1_000_000 + config.CHECK_INTERVAL_S)
    assert fake_store.calls == []

    _manager().maybe_validate(now=1_000_000 + config.CHECK_INTERVAL_S + 1)
    assert [call["edd_action"] for call in fake_store.calls] == ["check_license"]


def test_maybe_validate_skips_when_not_valid(panel_db, fake_store):
    set_setting(config.LICENSE_KEY_OPTION, "KEY-1")
    _manager().maybe_validate(now=1_000_000)
    assert fake_store.calls == []


def test_resolve_status_field_precedence():
    assert resolve_status({"license": "valid", "status": "expired"}) == "valid"
    assert resolve_status({"license_status": "expired", "status": "valid"}) == "expired"
    assert resolve_status({"status": "disabled"}) == "disabled"
    assert resolve_status({"success": True}) is None


def test_status_display_mapping():
    assert status_display("valid") == {"status": "valid", "message": "Extension license is valid", "class": "valid"}
    assert status_display("invalid")["class"] == "invalid"
    assert status_display("deactivated") == {
        "status": "inactive",
        "message": "Extension license is deactivated",
        "class": "warning",
    }
    assert status_display("expired")["message"] == "Extension license not activated"


def test_admin_notice():
    assert admin_notice("invalid")[0] == "error"
    assert admin_notice("inactive")[0] == "warning"
    assert admin_notice("deactivated")[0] == "warning"
    assert admin_notice("valid") is None


def test_nonce_accepts_current_and_previous_window():
    nonce = create_nonce("secret", "act", now=100_000)
    assert verify_nonce("secret", "act", nonce, now=100_000)
    assert verify_nonce("secret", "act", nonce, now=100_000 + 43_200)
    assert not verify_nonce("secret", "act", nonce, now=100_000 + 2 * 43_200)
    assert not verify_nonce("secret", "other", nonce, now=100_000)
    assert not verify_nonce("secret", "act", "", now=100_000)


def test_scheduler_runs_check_until_stopped():
    ticked = threading.Event()
    schedule = LicenseCheckScheduler(interval_s=0.01)

    schedule.start(ticked.set)
    assert ticked.wait(timeout=2)
    assert schedule.running is True

    schedule.stop()
    assert schedule.running is False


def test_nonce_with_non_ascii_input_is_rejected():
    assert not verify_nonce("secret", "act", "é", now=100_000)
    assert not verify_nonce("secret", "act", "ключ-nonce", now=100_000)


def test_scheduler_start_twice_restarts():
    schedule = LicenseCheckScheduler(interval_s=0.01)

    schedule.start(lambda: None)
    first = schedule._thread
    schedule.start(lambda: None)
    second = schedule._thread

    assert second is not first
    assert not first.is_alive()
    assert [t for t in threading.enumerate() if t.name == "license-check"] == [second]

    schedule.stop()


def test_scheduler_stop_does_not_wait_for_slow_check(monkeypatch):
    monkeypatch.setattr(scheduler_module, "JOIN_TIMEOUT_S", 0.05)
    entered = threading.Event()
    release = threading.Event()

    def slow_check():
        entered.set()
        release.wait(timeout=5)

    schedule = LicenseCheckScheduler(interval_s=0.01)
    schedule.start(slow_check)
    assert entered.wait(timeout=2)

    started = time.monotonic()
    schedule.stop()
    elapsed = time.monotonic() - started
    release.set()

    assert elapsed < 1
    assert schedule.running is False
