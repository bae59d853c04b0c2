"""Domain models for logged food records."""

from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def new_record_id() -> str:
    """Return a locally synthesized record identifier."""
    return uuid4().hex


def clean_record_name(value: str) -> str:
    """Strip a record name, rejecting blank names."""
    stripped = value.strip()
    if not stripped:
        raise ValueError("name must not be blank")
    return stripped


class NutritionRecord(BaseModel):
    """One logged food item."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default_factory=new_record_id)
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

    @field_validator("portion", mode="before")
    @classmethod
    def _portion_default(cls, value: object) -> object:
        return "" if value is None else value

    def with_timestamp(self, timestamp: int) -> "NutritionRecord":
        """Return a copy with the timestamp set."""
        return self.model_copy(update={"timestamp": timestamp})

    def with_id(self, record_id: str) -> "NutritionRecord":
        """Return a copy carrying the given identifier."""
        return self.model_copy(update={"id": record_id})

    def without_id(self) -> dict[str, object]:
        """Return the remote write payload for this record."""
        return self.model_dump(exclude={"id"})


def dedup_key(record: NutritionRecord, fallback_timestamp: int | None = None) -> str:
    """Return the ``name::timestamp`` key used to detect duplicates."""
    timestamp = record.timestamp if record.timestamp is not None else fallback_timestamp
    return f"{record.name}::{'' if timestamp is None else timestamp}"


def dedup_keys(records: list[NutritionRecord]) -> set[str]:
    """Return the dedup keys for a record snapshot."""
    return {dedup_key(record) for record in records}
