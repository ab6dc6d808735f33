"""Client side of the license settings page.

``LicenseActivationController`` drives the activate/deactivate form against
the panel's AJAX endpoint: one request in flight per form, the submit control
disabled while it runs and always restored afterwards, and exactly one
notification per submission outcome.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from bs4 import BeautifulSoup

from botkit_extension.config import AJAX_ACTION, LICENSE_KEY_OPTION
from botkit_extension.services.notifications import NotificationChannel, Severity
from botkit_extension.services.status import LicenseState, LicenseStatus

logger = logging.getLogger(__name__)

LICENSE_KEY_FIELD = LICENSE_KEY_OPTION

ACTIVATE_LABEL = "Activate License"
DEACTIVATE_LABEL = "Deactivate License"
BUSY_LABEL = "Processing..."
DEACTIVATE_CONFIRM = "Are you sure you want to deactivate the license?"

SUCCESS_MESSAGE = "License updated successfully."
REJECTION_MESSAGE = "License request failed. Please try again."
TRANSPORT_MESSAGE = "An error occurred while processing the license request. Please try again."


class LicenseAction(str, Enum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"


class LicenseClientError(Exception):
    severity = Severity.ERROR


class ValidationError(LicenseClientError):
    """Submission refused before any request was sent."""

    severity = Severity.WARNING


class ServerRejection(LicenseClientError):
    """The endpoint answered with ``success: false``."""


class TransportError(LicenseClientError):
    """Network failure, HTTP error status or an unreadable response body."""


@dataclass
class ActivationRequest:
    action: LicenseAction
    license_key: str
    nonce: str
    fields: dict[str, str] = field(default_factory=dict)

    def payload(self) -> dict[str, str]:
        return {
            **self.fields,
            "action": AJAX_ACTION,
            "nonce": self.nonce,
            "license_action": self.action.value,
            LICENSE_KEY_FIELD: self.license_key,
        }


@dataclass
class ActivationResult:
    success: bool
    message: str | None = None
    state: LicenseState | None = None
    error: LicenseClientError | None = None


@dataclass
class SubmitControl:
    label: str = ACTIVATE_LABEL
    css_class: str = "button button-primary"
    disabled: bool = False
    confirm: str | None = None

    def show_action(self, action: LicenseAction) -> None:
        if action is LicenseAction.DEACTIVATE:
            self.label = DEACTIVATE_LABEL
            self.css_class = "button button-secondary"
            self.confirm = DEACTIVATE_CONFIRM
        else:
            self.label = ACTIVATE_LABEL
            self.css_class = "button button-primary"
            self.confirm = None


@dataclass
class LicenseForm:
    """Page state the controller attaches to."""

    state: LicenseState
    control: SubmitControl
    nonce: str
    license_key: str = ""

    @classmethod
    def from_markup(cls, html: str) -> "LicenseForm":
        soup = BeautifulSoup(html, "html.parser")

        state = LicenseState()
        status_el = soup.find(id="extension-license-status")
        if status_el is not None:
            css_class = next((c for c in status_el.get("class", []) if c != "ai-botkit-license-status"), "")
            state = LicenseState.from_display(
                {
                    "status": status_el.get("data-status", ""),
                    "class": css_class,
                    "message": status_el.get_text(" ", strip=True),
                }
            )

        nonce_el = soup.find("input", attrs={"name": "nonce"})
        key_el = soup.find("input", attrs={"name": LICENSE_KEY_FIELD})

        control = SubmitControl()
        button = soup.find("input", attrs={"type": "submit"})
        if button is not None:
            control = SubmitControl(
                label=button.get("value", ACTIVATE_LABEL),
                css_class=" ".join(button.get("class", [])) or control.css_class,
                disabled=button.has_attr("disabled"),
                confirm=button.get("data-confirm"),
            )

        return cls(
            state=state,
            control=control,
            nonce=nonce_el.get("value", "") if nonce_el is not None else "",
            license_key=key_el.get("value", "") if key_el is not None else "",
        )


class LicenseActivationController:
    def __init__(
        self,
        form: LicenseForm,
        client: httpx.AsyncClient,
        endpoint: str,
        notifications: NotificationChannel,
    ):
        self.form = form
        self.client = client
        self.endpoint = endpoint
        self.notifications = notifications
        self._in_flight = False

    @property
    def state(self) -> LicenseState:
        return self.form.state

    @property
    def control(self) -> SubmitControl:
        return self.form.control

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def next_action(self) -> LicenseAction:
        if self.form.state.status is LicenseStatus.VALID:
            return LicenseAction.DEACTIVATE
        return LicenseAction.ACTIVATE

    def build_request(self, license_key: str | None = None, **fields: str) -> ActivationRequest:
        key = self.form.license_key if license_key is None else license_key
        return ActivationRequest(action=self.next_action, license_key=key, nonce=self.form.nonce, fields=fields)

    async def submit(self, request: ActivationRequest) -> ActivationResult:
        try:
            self._validate(request)
        except ValidationError as exc:
            return self._fail(exc)

        self._in_flight = True
        original_label = self.control.label
        self.control.disabled = True
        self.control.label = BUSY_LABEL

        error: LicenseClientError | None = None
        data: dict[str, Any] = {}
        try:
            data = await self._send(request)
        except LicenseClientError as exc:
            error = exc
        finally:
            self.control.label = original_label
            self.control.disabled = False
            self._in_flight = False

        if error is not None:
            return self._fail(error)
        return self._apply(request, data)

    def _validate(self, request: ActivationRequest) -> None:
        if self._in_flight:
            raise ValidationError("A license request is already in progress.")
        if not request.nonce:
            raise ValidationError("Security token missing. Please reload the page.")
        if not isinstance(request.action, LicenseAction):
            raise ValidationError("No license action to perform.")
        if not request.license_key.strip():
            raise ValidationError("Please enter a license key.")

    async def _send(self, request: ActivationRequest) -> dict[str, Any]:
        try:
            response = await self.client.post(self.endpoint, data=request.payload())
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise TransportError(TRANSPORT_MESSAGE) from exc

        if not isinstance(body, dict):
            raise TransportError(TRANSPORT_MESSAGE)

        data = body.get("data")
        if not isinstance(data, dict):
            data = {}
        if body.get("success") is not True:
            raise ServerRejection(data.get("message") or REJECTION_MESSAGE)
        return data

    def _apply(self, request: ActivationRequest, data: dict[str, Any]) -> ActivationResult:
        message = data.get("message") or SUCCESS_MESSAGE
        self.form.license_key = request.license_key
        state = None
        display = data.get("status_display")
        if isinstance(display, dict) and display:
            state = LicenseState.from_display(display)
            self.form.state = state
            self.control.show_action(self.next_action)

        logger.info(
            "license_request_succeeded",
            extra={"license_action": request.action.value, "license_status": self.form.state.status.value},
        )
        self.notifications.notify(message, Severity.SUCCESS)
        return ActivationResult(success=True, message=message, state=state)

    def _fail(self, error: LicenseClientError) -> ActivationResult:
        message = str(error)
        logger.warning("license_request_failed", extra={"error_type": type(error).__name__, "error": message})
        self.notifications.notify(message, error.severity)
        return ActivationResult(success=False, message=message, error=error)
