"""Domain models for macro goals and totals."""

from dataclasses import dataclass

from pydantic import BaseModel, Field


class MacroGoals(BaseModel):
    """Daily macro targets."""

    calories: float = Field(default=2000, ge=0)
    protein: float = Field(default=150, ge=0)
    carbs: float = Field(default=250, ge=0)
    fat: float = Field(default=65, ge=0)


@dataclass(frozen=True)
class MacroTotals:
    """Summed macros for a set of records."""

    calories: float
    protein: float
    carbs: float
    fat: float


@dataclass(frozen=True)
class MacroProgress:
    """Progress of one macro against its goal."""

    label: str
    value: float
    goal: float
    percentage: float
