import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("BOTKIT_DATA_DIR", str(BASE_DIR / "data")))

STORE_URL = os.getenv("LICENSE_STORE_URL", "https://dev1.edwiser.org/")
ITEM_ID = int(os.getenv("LICENSE_ITEM_ID", "573656"))
HOME_URL = os.getenv("BOTKIT_HOME_URL", "http://localhost:8000")
NONCE_SECRET = os.getenv("BOTKIT_NONCE_SECRET", "change-me")

REQUEST_TIMEOUT_S = float(os.getenv("LICENSE_REQUEST_TIMEOUT", "15"))
# 60 seconds while testing; 86400 in production
CHECK_INTERVAL_S = int(os.getenv("LICENSE_CHECK_INTERVAL", "60"))

LICENSE_KEY_OPTION = "wdm_ai_botkit_extension_license_key"
LICENSE_STATUS_OPTION = "wdm_ai_botkit_extension_license_status"
LAST_CHECK_OPTION = "wdm_ai_botkit_extension_license_last_check"
STORE_URL_OPTION = "wdm_ai_botkit_extension_store_url"

NONCE_ACTION = "wdm_ai_botkit_extension_license"
AJAX_ACTION = "license_action"
