"""Civil calendar package."""

from catatuang.clock.fixed_offset import WEEKDAY_LABELS, FixedOffsetClock

__all__ = ["WEEKDAY_LABELS", "FixedOffsetClock"]
