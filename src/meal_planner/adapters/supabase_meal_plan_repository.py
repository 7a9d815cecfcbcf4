"""Supabase repository for meal plans."""

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from supabase import Client

from meal_planner.domain.meals import DayPlan, MealPlan
from meal_planner.services.meal_plans import MealPlanRepository


@dataclass
class SupabaseMealPlanRepository(MealPlanRepository):
    """Supabase implementation for meal plans."""

    client: Client

    def create_plan(self, plan: MealPlan) -> MealPlan:
        """Insert a plan row and return the stored plan."""
        response = (
            self.client.table("meal_plans")
            .insert(
                {
                    "user_id": str(plan.user_id),
                    "plan_data": {
                        "days": [day.model_dump(mode="json") for day in plan.days]
                    },
                    "start_date": plan.start_date.isoformat(),
                    "end_date": plan.end_date.isoformat(),
                    "status": plan.status,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create meal plan")
        return _parse_plan(response.data[0])

    def get_active_plan(self, user_id: UUID) -> MealPlan | None:
        """Return the most recent active plan for a user."""
        response = (
            self.client.table("meal_plans")
            .select("*")
            .eq("user_id", str(user_id))
            .eq("status", "active")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_plan(response.data[0])


def _parse_plan(row: dict[str, object]) -> MealPlan:
    plan_data = row.get("plan_data") or {}
    created_at = row.get("created_at")
    return MealPlan(
        id=UUID(str(row["id"])),
        user_id=UUID(str(row["user_id"])),
        days=[DayPlan.model_validate(day) for day in plan_data.get("days", [])],
        start_date=date.fromisoformat(str(row["start_date"])),
        end_date=date.fromisoformat(str(row["end_date"])),
        status=str(row.get("status") or "active"),
        created_at=(
            datetime.fromisoformat(created_at)
            if isinstance(created_at, str) and created_at
            else None
        ),
    )
