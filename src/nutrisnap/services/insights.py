"""Personalized daily insights."""

from dataclasses import dataclass

from nutrisnap.domain.macros import MacroGoals
from nutrisnap.domain.records import NutritionRecord
from nutrisnap.services.estimation import EstimationError, NutritionAIClient


@dataclass
class InsightsService:
    """Asks the AI service for a markdown summary of a day's log."""

    client: NutritionAIClient
    model: str
    store: bool

    async def generate(self, records: list[NutritionRecord], goals: MacroGoals) -> str:
        """Return markdown insights for the given records and goals."""
        text = await self.client.generate_text(
            model=self.model, store=self.store, prompt=build_prompt(records, goals)
        )
        if not text.strip():
            raise EstimationError("AI returned empty insights")
        return text.strip()


def build_prompt(records: list[NutritionRecord], goals: MacroGoals) -> str:
    """Build the insights prompt from a day's log."""
    log_summary = ", ".join(
        f"{record.name} ({record.calories:g} kcal)" for record in records
    )
    return (
        "Based on the following daily food log and nutritional goals, provide "
        "some personalized insights and recommendations.\n\n"
        f"Today's Log: {log_summary or 'No items logged.'}\n\n"
        "Goals:\n"
        f"- Calories: {goals.calories:g} kcal\n"
        f"- Protein: {goals.protein:g} g\n"
        f"- Carbohydrates: {goals.carbs:g} g\n"
        f"- Fat: {goals.fat:g} g\n\n"
        "Analyze my intake, suggest one healthy meal for tomorrow, and provide "
        "a brief, encouraging tip. Keep the response formatted in Markdown."
    )
