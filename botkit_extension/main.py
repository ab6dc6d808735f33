import logging
import os
from pathlib import Path

import uvicorn
from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates

from botkit_extension import config
from botkit_extension.db import get_setting, init_db
from botkit_extension.schemas import LicenseActionData, LicenseActionResponse, StatusDisplay
from botkit_extension.services.activation import (
    ACTIVATE_LABEL,
    DEACTIVATE_CONFIRM,
    DEACTIVATE_LABEL,
    LICENSE_KEY_FIELD,
)
from botkit_extension.services.license import LicenseConfig, LicenseManager, admin_notice
from botkit_extension.services.nonce import create_nonce, verify_nonce
from botkit_extension.services.scheduler import LicenseCheckScheduler

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent

app = FastAPI(title="BotKit Extension Panel")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
schedule = LicenseCheckScheduler(interval_s=config.CHECK_INTERVAL_S)


def get_license_manager() -> LicenseManager:
    store_url = get_setting(config.STORE_URL_OPTION) or config.STORE_URL
    return LicenseManager(
        LicenseConfig(
            store_url=store_url,
            item_id=config.ITEM_ID,
            site_url=config.HOME_URL,
            timeout_s=config.REQUEST_TIMEOUT_S,
        ),
        schedule,
    )


def _rejection(message: str, status_code: int = 200) -> JSONResponse:
    body = LicenseActionResponse(success=False, data=LicenseActionData(message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


def _page_context(manager: LicenseManager) -> dict:
    licensed = manager.is_licensed()
    return {
        "display": manager.status_display(),
        "license_key": manager.get_license_key(),
        "license_key_field": LICENSE_KEY_FIELD,
        "nonce": create_nonce(config.NONCE_SECRET, config.NONCE_ACTION),
        "licensed": licensed,
        "button_label": DEACTIVATE_LABEL if licensed else ACTIVATE_LABEL,
        "confirm": DEACTIVATE_CONFIRM if licensed else None,
    }


@app.on_event("startup")
def startup() -> None:
    init_db()
    get_license_manager().ensure_schedule()


@app.on_event("shutdown")
def shutdown() -> None:
    schedule.stop()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request, manager: LicenseManager = Depends(get_license_manager)):
    notice = admin_notice(manager.get_license_status())
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {"notice": notice, "display": manager.status_display()},
    )


@app.get("/license", response_class=HTMLResponse)
def license_page(request: Request, manager: LicenseManager = Depends(get_license_manager)):
    return templates.TemplateResponse(request, "license.html", _page_context(manager))


@app.get("/license/status", response_model=StatusDisplay)
def license_status(manager: LicenseManager = Depends(get_license_manager)):
    return StatusDisplay(**manager.status_display())


@app.post("/ajax", response_model=LicenseActionResponse, response_model_exclude_none=True)
def ajax(
    action: str = Form(...),
    nonce: str = Form(""),
    license_action: str = Form(""),
    license_key: str = Form("", alias=LICENSE_KEY_FIELD),
    manager: LicenseManager = Depends(get_license_manager),
):
    if action != config.AJAX_ACTION:
        raise HTTPException(status_code=400, detail="Unknown action")
    if not verify_nonce(config.NONCE_SECRET, config.NONCE_ACTION, nonce):
        logger.warning("license_nonce_rejected")
        return _rejection("Security check failed. Please reload the page.", status_code=403)
    if license_action not in ("activate", "deactivate"):
        return _rejection("Invalid license action.")

    key = license_key.strip()
    if not key and license_action == "deactivate":
        key = manager.get_license_key()
    if not key:
        return _rejection("Please enter a license key.")

    if license_action == "activate":
        ok, message = manager.activate(key)
    else:
        ok, message = manager.deactivate(key)
    if not ok:
        return _rejection(message)

    return LicenseActionResponse(
        success=True,
        data=LicenseActionData(message=message, status_display=StatusDisplay(**manager.status_display())),
    )


def run() -> None:
    uvicorn.run(app, host=os.getenv("BOTKIT_HOST", "127.0.0.1"), port=int(os.getenv("BOTKIT_PORT", "8000")))
