"""Macro totals and goal progress."""

from dataclasses import dataclass

from nutrisnap.domain.macros import MacroGoals, MacroProgress, MacroTotals
from nutrisnap.domain.records import NutritionRecord
from nutrisnap.services.local_cache import LocalCacheStore


@dataclass
class MacroService:
    """Sums logged macros and compares them against stored goals."""

    local_cache: LocalCacheStore

    def get_goals(self) -> MacroGoals:
        """Return the stored goals or defaults."""
        return self.local_cache.load_goals()

    def set_goals(self, goals: MacroGoals) -> MacroGoals:
        """Persist new goals."""
        self.local_cache.save_goals(goals)
        return goals

    def progress(
        self, records: list[NutritionRecord], goals: MacroGoals | None = None
    ) -> list[MacroProgress]:
        """Return per-macro progress against the goals."""
        resolved = goals or self.get_goals()
        totals = compute_totals(records)
        return [
            _progress("Calories", totals.calories, resolved.calories),
            _progress("Protein (g)", totals.protein, resolved.protein),
            _progress("Carbs (g)", totals.carbs, resolved.carbs),
            _progress("Fat (g)", totals.fat, resolved.fat),
        ]


def compute_totals(records: list[NutritionRecord]) -> MacroTotals:
    """Sum macros across records."""
    return MacroTotals(
        calories=sum(record.calories for record in records),
        protein=sum(record.protein for record in records),
        carbs=sum(record.carbs for record in records),
        fat=sum(record.fat for record in records),
    )


def _progress(label: str, value: float, goal: float) -> MacroProgress:
    percentage = min(value / goal * 100, 100.0) if goal > 0 else 0.0
    return MacroProgress(label=label, value=value, goal=goal, percentage=percentage)
