"""
Heart-rate signal source contract.

Key patterns:
- Protocol-based dependency injection (the monitor never knows which source is active)
- Generic Result type for expected failures of pull-style queries
- Name-based registry so the concrete source is chosen from configuration at runtime
"""

from collections.abc import Callable, Sequence
from typing import Any, Generic, Protocol, TypeVar

import structlog

from hralert.domain.models import HeartRateSample

logger = structlog.get_logger(__name__)

ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException)

_MISSING: Any = object()


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    Unlike an Optional, an Ok result may legitimately carry ``None``
    (for example "the query worked but there is no sample yet").
    """

    def __init__(self, value: Any = _MISSING, error: ErrorT | None = None) -> None:
        if value is not _MISSING and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is _MISSING and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = None if value is _MISSING else value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore[return-value]

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore[return-value]

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class SignalSourceError(RuntimeError):
    """Raised when a source cannot start delivering samples."""


class SampleListener(Protocol):
    """Receives samples pushed by a running signal source."""

    def on_samples(self, batch: Sequence[HeartRateSample]) -> None: ...

    def on_session_error(self, error: BaseException) -> None: ...


class SignalSource(Protocol):
    """
    Producer of timestamped heart-rate samples.

    Design: push-based streaming through a listener while a session runs, a
    background observation of newly stored samples, and a single pull query
    used to seed the display.
    """

    source_name: str

    async def start(self, listener: SampleListener) -> None:
        """Begin delivering samples to ``listener``. Raises SignalSourceError on failure."""
        ...

    async def stop(self) -> None:
        """Stop delivering samples. Safe to call when not started."""
        ...

    async def fetch_latest(self) -> Result[HeartRateSample | None, Exception]:
        """Return the most recent persisted sample, or Ok(None) when there is none."""
        ...

    async def observe(self, listener: SampleListener) -> None:
        """
        Deliver stored samples to ``listener`` as they are recorded, independent
        of any monitoring session. Raises SignalSourceError on failure.
        """
        ...

    async def stop_observing(self) -> None:
        """Stop the background observation. Safe to call when not observing."""
        ...


SourceFactory = Callable[..., SignalSource]

_SOURCE_REGISTRY: dict[str, SourceFactory] = {}


def register_source(name: str) -> Callable[[SourceFactory], SourceFactory]:
    """Decorator registering a concrete source class under a configuration name."""

    def deco(factory: SourceFactory) -> SourceFactory:
        _SOURCE_REGISTRY[name.lower()] = factory
        return factory

    return deco


def create_source(name: str, **kwargs: Any) -> SignalSource:
    key = (name or "").lower()
    if key not in _SOURCE_REGISTRY:
        raise ValueError(f"Unknown signal source '{name}'. Available: {available_sources()}")
    source = _SOURCE_REGISTRY[key](**kwargs)
    logger.info("signal_source_created", source_kind=key, source=source.source_name)
    return source


def available_sources() -> list[str]:
    return sorted(_SOURCE_REGISTRY.keys())
