from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property

from timify.core.config import Settings
from timify.schemas.common import minutes_to_time, parse_time_to_minutes

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@dataclass(frozen=True, order=True)
class Slot:
    day: int
    period: int


@dataclass(frozen=True)
class SlotGrid:
    """Weekly grid of (day, period) cells; one period per day is a reserved lunch break."""

    days: int = 5
    periods_per_day: int = 8
    lunch_period: int | None = 4
    first_period_start: str = "09:00"
    period_minutes: int = 60

    def __post_init__(self) -> None:
        if not 1 <= self.days <= len(DAY_NAMES):
            raise ValueError(f"days must be between 1 and {len(DAY_NAMES)}")
        if self.periods_per_day < 1:
            raise ValueError("periods_per_day must be positive")
        if self.lunch_period is not None and not 0 <= self.lunch_period < self.periods_per_day:
            raise ValueError("lunch_period must fall inside the day")
        if self.period_minutes < 1:
            raise ValueError("period_minutes must be positive")
        end = parse_time_to_minutes(self.first_period_start) + self.periods_per_day * self.period_minutes
        if end > 24 * 60:
            raise ValueError("Grid runs past midnight")

    def is_lunch(self, period: int) -> bool:
        return self.lunch_period is not None and period == self.lunch_period

    def contains(self, slot: Slot) -> bool:
        return (
            0 <= slot.day < self.days
            and 0 <= slot.period < self.periods_per_day
            and not self.is_lunch(slot.period)
        )

    @cached_property
    def teaching_periods(self) -> tuple[int, ...]:
        return tuple(period for period in range(self.periods_per_day) if not self.is_lunch(period))

    def all_slots(self) -> list[Slot]:
        return [Slot(day, period) for day in range(self.days) for period in self.teaching_periods]

    def column_index(self, period: int) -> int:
        """Position of a teaching period in a grid row with the lunch column removed."""
        try:
            return self.teaching_periods.index(period)
        except ValueError:
            raise ValueError(f"Period {period} is not a teaching period") from None

    def period_bounds(self, period: int) -> tuple[int, int]:
        start = parse_time_to_minutes(self.first_period_start) + period * self.period_minutes
        return start, start + self.period_minutes

    def period_label(self, period: int) -> tuple[str, str]:
        start, end = self.period_bounds(period)
        return minutes_to_time(start), minutes_to_time(end)

    def day_name(self, day: int) -> str:
        return DAY_NAMES[day]


DEFAULT_GRID = SlotGrid()


def grid_from_settings(settings: Settings) -> SlotGrid:
    return SlotGrid(
        days=settings.grid_days,
        periods_per_day=settings.grid_periods_per_day,
        lunch_period=settings.grid_lunch_period,
        first_period_start=settings.grid_first_period_start,
        period_minutes=settings.grid_period_minutes,
    )
