from dataclasses import dataclass
from enum import Enum
from typing import Any


class LicenseStatus(str, Enum):
    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"
    WARNING = "warning"
    ERROR = "error"


class IconKind(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


_STATUS_BY_CLASS = {
    "invalid": LicenseStatus.INVALID,
    "warning": LicenseStatus.WARNING,
    "error": LicenseStatus.ERROR,
}


@dataclass(frozen=True)
class LicenseState:
    """Validity of the extension license as last reported by the panel."""

    status: LicenseStatus = LicenseStatus.UNKNOWN
    message: str = ""
    css_class: str = ""

    @property
    def is_valid(self) -> bool:
        return self.status is LicenseStatus.VALID

    @classmethod
    def from_display(cls, display: dict[str, Any]) -> "LicenseState":
        """Build a state from a ``status_display`` mapping ({status, class, message})."""
        css_class = str(display.get("class") or "")
        if display.get("status") == "valid":
            status = LicenseStatus.VALID
        else:
            status = _STATUS_BY_CLASS.get(css_class, LicenseStatus.UNKNOWN)
        return cls(status=status, message=str(display.get("message") or ""), css_class=css_class)


@dataclass(frozen=True)
class StatusView:
    css_class: str
    icon_kind: IconKind
    message: str

    @property
    def dashicon(self) -> str:
        return "yes-alt" if self.icon_kind is IconKind.POSITIVE else "no-alt"


def render(state: LicenseState) -> StatusView:
    icon_kind = IconKind.POSITIVE if state.is_valid else IconKind.NEGATIVE
    return StatusView(css_class=state.css_class, icon_kind=icon_kind, message=state.message)
