from __future__ import annotations

import re
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Literal, Protocol

import structlog

# Attribute names matching this never reach a sink with their value.
_REDACTED_KEYS = re.compile(r"api_?key|authorization|body|content|cookie|password|secret|token")
_MAX_STRING_LENGTH = 160

Scalar = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class LogTelemetrySink:
    """Writes each event as one structlog record on the `newsdesk.telemetry` logger."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger("newsdesk.telemetry")

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **attributes)


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink | None = None

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False)

    def emit(self, event_name: str, **attributes: Any) -> None:
        if self.enabled and self.sink is not None:
            self.sink.emit(event_name=event_name, attributes=scrub_attributes(attributes))

    @contextmanager
    def span(self, event_prefix: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """Emit `<prefix>.start`, then `<prefix>.finish` or `<prefix>.error`.

        The yielded dict is merged into the finish event so callers can
        attach result counters.
        """
        started_at = time.perf_counter()
        counters: dict[str, Any] = {}

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started_at) * 1000)

        self.emit(f"{event_prefix}.start", **attributes)
        try:
            yield counters
        except Exception as exc:
            self.emit(
                f"{event_prefix}.error",
                **attributes,
                duration_ms=elapsed_ms(),
                error_type=type(exc).__name__,
            )
            raise
        self.emit(
            f"{event_prefix}.finish",
            **{**attributes, **counters},
            duration_ms=elapsed_ms(),
            outcome="ok",
        )


def build_telemetry_client(*, enabled: bool, sink: Literal["none", "log"]) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=LogTelemetrySink())
    return TelemetryClient.disabled()


def scrub_attributes(attributes: Mapping[str, Any]) -> dict[str, Scalar]:
    """Lower-case keys, redact sensitive ones and flatten values to log-safe scalars."""
    scrubbed: dict[str, Scalar] = {}
    for raw_key, value in attributes.items():
        key = str(raw_key).strip().lower()
        if key:
            scrubbed[key] = "[redacted]" if _REDACTED_KEYS.search(key) else _scalar(value)
    return scrubbed


def _scalar(value: Any) -> Scalar:
    if value is None or isinstance(value, bool | int | float):
        return value
    if not isinstance(value, str):
        return type(value).__name__
    compact = " ".join(value.split())
    if len(compact) > _MAX_STRING_LENGTH:
        return compact[:_MAX_STRING_LENGTH] + "..."
    return compact
