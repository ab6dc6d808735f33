import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI, Form, HTTPException
from pydantic import BaseModel

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("LICENSE_STORE_DATA_DIR", str(BASE_DIR / "data")))
DB_PATH = DATA_DIR / "license_store.db"
API_TOKEN = os.getenv("LICENSE_API_TOKEN", "change-me")

app = FastAPI(title="BotKit License Store")


class IssueRequest(BaseModel):
    api_token: str
    license_key: str
    max_activations: int = 1


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def init_db() -> None:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    with get_conn() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS licenses (
                license_key TEXT PRIMARY KEY,
                status TEXT NOT NULL DEFAULT 'active',
                max_activations INTEGER NOT NULL DEFAULT 1,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS activations (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                license_key TEXT NOT NULL,
                site_url TEXT NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                UNIQUE(license_key, site_url)
            )
            """
        )


def _site_count(conn: sqlite3.Connection, license_key: str) -> int:
    row = conn.execute("SELECT COUNT(*) AS c FROM activations WHERE license_key = ?", (license_key,)).fetchone()
    return int(row["c"])


def _is_active_on(conn: sqlite3.Connection, license_key: str, site_url: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM activations WHERE license_key = ? AND site_url = ?",
        (license_key, site_url),
    ).fetchone()
    return row is not None


def activate(conn: sqlite3.Connection, license_row: sqlite3.Row | None, site_url: str) -> dict:
    if not license_row:
        return {"success": False, "license": "invalid", "error": "missing"}
    if license_row["status"] != "active":
        return {"success": False, "license": "invalid", "error": "disabled"}

    license_key = license_row["license_key"]
    limit = int(license_row["max_activations"])
    if not _is_active_on(conn, license_key, site_url) and _site_count(conn, license_key) >= limit:
        return {"success": False, "license": "invalid", "error": "no_activations_left"}

    conn.execute(
        "INSERT OR IGNORE INTO activations(license_key, site_url) VALUES(?, ?)",
        (license_key, site_url),
    )
    return {
        "success": True,
        "license": "valid",
        "site_count": _site_count(conn, license_key),
        "license_limit": limit,
    }


def deactivate(conn: sqlite3.Connection, license_row: sqlite3.Row | None, site_url: str) -> dict:
    if not license_row or not _is_active_on(conn, license_row["license_key"], site_url):
        return {"success": False, "license": "failed"}
    conn.execute(
        "DELETE FROM activations WHERE license_key = ? AND site_url = ?",
        (license_row["license_key"], site_url),
    )
    return {"success": True, "license": "deactivated"}


def check(conn: sqlite3.Connection, license_row: sqlite3.Row | None, site_url: str) -> dict:
    if not license_row:
        return {"success": True, "license": "invalid"}
    if license_row["status"] != "active":
        return {"success": True, "license": "disabled"}
    if not _is_active_on(conn, license_row["license_key"], site_url):
        return {"success": True, "license": "inactive"}
    return {"success": True, "license": "valid"}


EDD_ACTIONS = {
    "activate_license": activate,
    "deactivate_license": deactivate,
    "check_license": check,
}


@app.on_event("startup")
def startup() -> None:
    init_db()


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/")
def edd_endpoint(
    edd_action: str = Form(...),
    license: str = Form(""),
    item_id: str = Form(""),
    url: str = Form(""),
):
    handler = EDD_ACTIONS.get(edd_action)
    if handler is None:
        raise HTTPException(status_code=400, detail="unknown edd_action")

    with get_conn() as conn:
        license_row = conn.execute("SELECT * FROM licenses WHERE license_key = ?", (license.strip(),)).fetchone()
        result = handler(conn, license_row, url.strip())

    logger.info("edd_action", extra={"edd_action": edd_action, "item_id": item_id, "success": result["success"]})
    return {**result, "item_id": item_id}


@app.post("/api/v1/issue")
def issue_license(body: IssueRequest):
    if body.api_token != API_TOKEN:
        raise HTTPException(status_code=403, detail="forbidden")
    with get_conn() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO licenses(license_key, status, max_activations) VALUES(?, 'active', ?)",
            (body.license_key.strip(), body.max_activations),
        )
    return {"status": "ok", "license_key": body.license_key}


@app.post("/api/v1/revoke")
def revoke_license(body: IssueRequest):
    if body.api_token != API_TOKEN:
        raise HTTPException(status_code=403, detail="forbidden")
    with get_conn() as conn:
        conn.execute("UPDATE licenses SET status = 'revoked' WHERE license_key = ?", (body.license_key.strip(),))
    return {"status": "ok"}


def run() -> None:
    uvicorn.run(app, host=os.getenv("LICENSE_STORE_HOST", "127.0.0.1"), port=int(os.getenv("LICENSE_STORE_PORT", "8100")))
