from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from lock_it.utils.time import WEEKDAYS, format_minute_of_day, parse_time_string


class PasswordType(str, Enum):
    FIXED = "fixed"
    TOTP = "totp"
    BOTH = "both"


class UnlockMethod(str, Enum):
    FIXED = "fixed"
    TOTP = "totp"


class PrivilegedAction(str, Enum):
    """Actions gated behind a second authentication round."""

    QUIT = "quit"
    SETTINGS_CLOSE = "settings_close"


class CloseDecision(str, Enum):
    PROCEED = "proceed"
    CANCEL = "cancel"


class TimeSlot(BaseModel):
    """A lock window as minutes of the day. end < start spans midnight."""

    start: int = Field(ge=0, le=1439)
    end: int = Field(ge=0, le=1439)

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_clock(cls, value):
        # The store keeps "HH:MM" strings
        if isinstance(value, str):
            return parse_time_string(value)
        return value

    @field_serializer("start", "end", when_used="json")
    def dump_clock(self, value: int) -> str:
        return format_minute_of_day(value)

    @property
    def wraps(self) -> bool:
        return self.end < self.start


class DaySchedule(BaseModel):
    enabled: bool = False
    slots: list[TimeSlot] = Field(default_factory=list)


def _workday() -> DaySchedule:
    return DaySchedule(enabled=True, slots=[TimeSlot(start=8 * 60, end=17 * 60)])


class WeeklySchedule(BaseModel):
    """Lock windows for each weekday. Defaults to 08:00-17:00 on workdays."""

    monday: DaySchedule = Field(default_factory=_workday)
    tuesday: DaySchedule = Field(default_factory=_workday)
    wednesday: DaySchedule = Field(default_factory=_workday)
    thursday: DaySchedule = Field(default_factory=_workday)
    friday: DaySchedule = Field(default_factory=_workday)
    saturday: DaySchedule = Field(default_factory=DaySchedule)
    sunday: DaySchedule = Field(default_factory=DaySchedule)

    def day(self, name: str) -> DaySchedule:
        if name not in WEEKDAYS:
            raise ValueError(f"Unknown weekday: {name}")
        return getattr(self, name)


class PasswordConfig(BaseModel):
    type: PasswordType = PasswordType.FIXED
    fixed_password: str | None = Field(default="123456", repr=False)
    totp_secret: str | None = Field(default=None, repr=False)
    totp_device_name: str | None = None


class VerifyResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    method: UnlockMethod | None = None


class TotpProvisioning(BaseModel):
    secret: str = Field(repr=False)
    otpauth_url: str = Field(repr=False)
    device_name: str


class UnlockRecord(BaseModel):
    """One credential submission. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)
    success: bool
    attempt_count: int = Field(default=1, ge=0)
    unlock_method: UnlockMethod | None = None
    photo_data: str | None = Field(default=None, repr=False)
    photo_path: str | None = None
    error: str | None = None


AppLanguage = Literal["zh-CN", "en-US", "ja-JP", "ko-KR"]


class AppConfig(BaseModel):
    """Everything kept in the config store. Only password and schedule matter to the engine."""

    model_config = ConfigDict(extra="ignore")

    has_completed_setup: bool = False
    password: PasswordConfig = Field(default_factory=PasswordConfig)
    schedule: WeeklySchedule = Field(default_factory=WeeklySchedule)
    language: AppLanguage = "en-US"
    selected_camera: str | None = None

    # Passed through untouched
    style: dict[str, Any] = Field(default_factory=dict)
    startup: dict[str, Any] = Field(default_factory=dict)
    update: dict[str, Any] = Field(default_factory=dict)
