"""
Health-platform domain models and collaborator interfaces.

The monitoring core never talks to a sensing framework directly. It consumes
the narrow shapes defined here, and a platform binding (or a test double)
implements them:

- PermissionProvider: asks the user for read access to a quantity type
- SensorSession: runs a live data-collection session that delivers batched statistics
- QuantityStatistics: one batch entry, carrying the most recent quantity for a type
- Sample query: a long-running query that reports every newly stored sample of a type

Key unit concept:
- Heart rate is a count per unit time; the core always works in count per minute (BPM)
"""

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field


class QuantityType(str, Enum):
    """Quantity types a sensor session may report."""

    HEART_RATE = "heart_rate"
    ACTIVE_ENERGY = "active_energy"
    STEP_COUNT = "step_count"
    OXYGEN_SATURATION = "oxygen_saturation"


class RateUnit(str, Enum):
    """Units a heart-rate quantity can be expressed in."""

    COUNT_PER_MINUTE = "count/min"
    COUNT_PER_SECOND = "count/s"


_TO_PER_MINUTE = {
    RateUnit.COUNT_PER_MINUTE: 1.0,
    RateUnit.COUNT_PER_SECOND: 60.0,
}


class Quantity(BaseModel):
    """A raw measured value with its unit."""

    model_config = ConfigDict(frozen=True)

    value: float
    unit: RateUnit = RateUnit.COUNT_PER_MINUTE

    def to_bpm(self) -> float:
        """Convert to beats per minute."""
        return self.value * _TO_PER_MINUTE[self.unit]


class QuantityStatistics(BaseModel):
    """Statistics for one quantity type within a collected batch."""

    model_config = ConfigDict(frozen=True)

    quantity_type: QuantityType
    most_recent_quantity: Quantity | None = None
    most_recent_date: datetime = Field(default_factory=lambda: datetime.now(UTC))


class QuantitySample(BaseModel):
    """A sample already persisted by the platform (used to seed the display)."""

    model_config = ConfigDict(frozen=True)

    quantity_type: QuantityType
    quantity: Quantity
    start_date: datetime = Field(default_factory=lambda: datetime.now(UTC))


StatisticsHandler = Callable[[Sequence[QuantityStatistics]], None]
SessionErrorHandler = Callable[[BaseException], None]
SampleQueryHandler = Callable[[Sequence[QuantitySample]], None]


class PermissionProvider(Protocol):
    """
    Platform permission prompt.

    ``request_read_access`` returns once the prompt is dismissed. It raises only
    when the prompt mechanism itself fails; the user's actual choice is never
    disclosed.
    """

    def is_health_data_available(self) -> bool: ...

    async def request_read_access(self, quantity_type: QuantityType) -> None: ...


class SensorSession(Protocol):
    """Live data-collection session of the platform sensing framework."""

    async def begin_collection(
        self, on_statistics: StatisticsHandler, on_error: SessionErrorHandler
    ) -> None:
        """Start the session. Raises if the session cannot be opened."""
        ...

    async def end_collection(self) -> None:
        """End the session and flush any pending collection."""
        ...

    async def most_recent_sample(self, quantity_type: QuantityType) -> QuantitySample | None:
        """Return the newest persisted sample of ``quantity_type``, if any."""
        ...

    async def start_sample_query(
        self, quantity_type: QuantityType, on_samples: SampleQueryHandler
    ) -> None:
        """
        Start a long-running query over stored samples of ``quantity_type``.

        ``on_samples`` first receives the samples already stored, then each
        batch added afterwards, oldest first. Raises if the query cannot run.
        """
        ...

    async def stop_sample_query(self) -> None:
        """Stop the query started by ``start_sample_query``. Safe to call when not running."""
        ...
