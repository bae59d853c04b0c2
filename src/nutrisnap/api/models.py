"""Request and response models for the HTTP API."""

from pydantic import BaseModel, Field, field_validator

from nutrisnap.domain.records import NutritionRecord, clean_record_name


class CredentialsRequest(BaseModel):
    """Email and password for sign-in or sign-up."""

    email: str = Field(min_length=3)
    password: str = Field(min_length=6)


class NewRecord(BaseModel):
    """A record submitted for logging; id and timestamp are optional."""

    id: str | None = None
    name: str = Field(min_length=1)
    calories: float = Field(default=0.0, ge=0.0)
    protein: float = Field(default=0.0, ge=0.0)
    carbs: float = Field(default=0.0, ge=0.0)
    fat: float = Field(default=0.0, ge=0.0)
    portion: str = ""
    timestamp: int | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return clean_record_name(value)

    def to_record(self) -> NutritionRecord:
        """Convert into a domain record, assigning a local id if needed."""
        payload = self.model_dump(exclude_none=True)
        return NutritionRecord(**payload)


class AddRecordsRequest(BaseModel):
    """Batch of records to log."""

    records: list[NewRecord] = Field(min_length=1)


class TextEstimateRequest(BaseModel):
    """Free-text food description."""

    query: str = Field(min_length=1)


class IdentityResponse(BaseModel):
    """Current identity and sync state."""

    uid: str | None
    is_anonymous: bool
    state: str
    can_browse_calendar: bool


class MacroProgressResponse(BaseModel):
    """Progress of one macro against its goal."""

    label: str
    value: float
    goal: float
    percentage: float
