# File: schemagen/context.py
"""
SchemaGen - Generation Context & Structured Logging
=====================================================
``GenerationContext`` is the only shared structure of a run.  It is an
append-only key/value store: each key is written once, by the phase that
declared it, and is read-only afterwards.  The ``PhaseRunner`` is the
only writer (through ``commit``), so no locking is needed.

``StructuredLogger`` is injected through the context so every phase and
plugin logs events with identifiers attached (``phase``, ``plugin``,
``entity`` ...) instead of free text.  It sits on top of the standard
``logging`` module; ``LogCapture`` is a handler that keeps records in
memory for assertions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from schemagen.errors import ContextWriteError

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.context")


# ---------------------------------------------------------------------------
# Structured logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One captured structured event."""

    level: str
    event: str
    fields: Dict[str, Any] = field(default_factory=dict)


class LogCapture(logging.Handler):
    """
    In-memory handler collecting ``LogEntry`` records.

    Records emitted by ``StructuredLogger`` keep their event name and bound
    fields; plain ``logging`` records are stored with empty fields.
    """

    def __init__(self, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self.entries: List[LogEntry] = []

    def emit(self, record: logging.LogRecord) -> None:
        event: str = getattr(record, "event", record.getMessage())
        fields: Dict[str, Any] = dict(getattr(record, "fields", {}) or {})
        self.entries.append(LogEntry(level=record.levelname, event=event, fields=fields))

    def events(self, level: Optional[str] = None) -> List[str]:
        return [
            e.event for e in self.entries if level is None or e.level == level.upper()
        ]

    def find(self, event: str, **fields: Any) -> List[LogEntry]:
        """Entries named *event* whose fields contain every given key/value."""
        return [
            e
            for e in self.entries
            if e.event == event
            and all(e.fields.get(k) == v for k, v in fields.items())
        ]

    def clear(self) -> None:
        self.entries.clear()


class StructuredLogger:
    """
    Event logger with bound identifier fields.

    Usage::

        log = StructuredLogger()
        phase_log = log.bind(phase="analysis")
        phase_log.info("phase.completed", keys=["analysis"])

    Each event goes to the wrapped ``logging.Logger`` with
    ``extra={"event": ..., "fields": {...}}`` and a readable message.
    """

    __slots__ = ("_logger", "_bound")

    def __init__(
        self,
        base: Optional[logging.Logger] = None,
        bound: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._logger: logging.Logger = base or logging.getLogger("schemagen.run")
        self._bound: Dict[str, Any] = dict(bound or {})

    @classmethod
    def capturing(cls, name: str = "schemagen.capture") -> Tuple["StructuredLogger", LogCapture]:
        """Return a logger whose records land in a fresh ``LogCapture``."""
        base: logging.Logger = logging.getLogger(name)
        base.setLevel(logging.DEBUG)
        base.propagate = False
        for handler in list(base.handlers):
            if isinstance(handler, LogCapture):
                base.removeHandler(handler)
        capture = LogCapture()
        base.addHandler(capture)
        return cls(base), capture

    @property
    def fields(self) -> Dict[str, Any]:
        return dict(self._bound)

    def bind(self, **fields: Any) -> "StructuredLogger":
        merged: Dict[str, Any] = dict(self._bound)
        merged.update(fields)
        return StructuredLogger(self._logger, merged)

    def log(self, level: int, event: str, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        merged: Dict[str, Any] = dict(self._bound)
        merged.update(fields)
        rendered: str = " ".join(f"{k}={v}" for k, v in merged.items())
        message: str = f"{event} {rendered}" if rendered else event
        self._logger.log(level, message, extra={"event": event, "fields": merged})

    def debug(self, event: str, **fields: Any) -> None:
        self.log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self.log(logging.ERROR, event, **fields)

    def __repr__(self) -> str:
        return f"<StructuredLogger {self._logger.name} {self._bound}>"


# ---------------------------------------------------------------------------
# Generation context
# ---------------------------------------------------------------------------


class GenerationContext:
    """
    Append-only, write-once store threaded through every phase.

    Reads are open to everyone (phases, hooks, plugins); writes go through
    ``commit`` which the ``PhaseRunner`` calls with the phase's declared
    output keys.  A commit is all-or-nothing: every key is checked before
    any is stored.
    """

    def __init__(
        self,
        schema: Any,
        config: Any,
        logger: Optional[StructuredLogger] = None,
        initial: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.schema = schema
        self.config = config
        self.logger: StructuredLogger = logger or StructuredLogger()
        self._values: Dict[str, Any] = {}
        self._owners: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self._values[key] = value
            self._owners[key] = "<initial>"

    # -- Read ---------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def require(self, key: str) -> Any:
        try:
            return self._values[key]
        except KeyError:
            raise KeyError(
                f"Context key '{key}' has not been written; "
                f"available: {sorted(self._values)}"
            ) from None

    def __getitem__(self, key: str) -> Any:
        return self.require(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> List[str]:
        return list(self._values)

    def written_by(self, key: str) -> Optional[str]:
        return self._owners.get(key)

    def snapshot(self) -> Mapping[str, Any]:
        """Read-only view of the current values."""
        return MappingProxyType(dict(self._values))

    # -- Write (runner only) ------------------------------------------------

    def commit(
        self,
        phase_id: str,
        values: Mapping[str, Any],
        declared: Iterable[str],
    ) -> List[str]:
        """
        Store *values* on behalf of *phase_id*.

        Raises ``ContextWriteError`` (and stores nothing) when a key is not
        in *declared* or has already been written.
        """
        allowed = frozenset(declared)
        undeclared: List[str] = sorted(k for k in values if k not in allowed)
        if undeclared:
            raise ContextWriteError(
                f"Phase '{phase_id}' wrote undeclared key(s) {undeclared}; "
                f"declared outputs are {sorted(allowed)}.",
                context={"phase": phase_id, "keys": undeclared},
            )
        rewritten: List[str] = sorted(k for k in values if k in self._values)
        if rewritten:
            owners: Dict[str, str] = {k: self._owners[k] for k in rewritten}
            raise ContextWriteError(
                f"Phase '{phase_id}' attempted to overwrite key(s) {owners}.",
                context={"phase": phase_id, "keys": rewritten, "owners": owners},
            )
        for key, value in values.items():
            self._values[key] = value
            self._owners[key] = phase_id
        logger.debug("Phase %s committed %s", phase_id, sorted(values))
        return list(values)

    def __repr__(self) -> str:
        return f"<GenerationContext keys={sorted(self._values)}>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "GenerationContext",
    "LogCapture",
    "LogEntry",
    "StructuredLogger",
]

logger.debug("schemagen.context loaded.")
