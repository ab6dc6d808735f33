from pydantic import BaseModel, ConfigDict, Field


class StatusDisplay(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str
    message: str
    css_class: str = Field(alias="class")


class LicenseActionData(BaseModel):
    message: str
    status_display: StatusDisplay | None = None


class LicenseActionResponse(BaseModel):
    success: bool
    data: LicenseActionData
