"""Per-run log buffer."""

import logging
from collections.abc import Mapping
from typing import Any, TypeAlias

log = logging.getLogger(__name__)

StepLogger: TypeAlias = logging.Logger | logging.LoggerAdapter[logging.Logger]


class RunLog(logging.LoggerAdapter[logging.Logger]):
    """Logger adapter that keeps its own copy of every message.

    Messages are rendered and appended to the run's buffer, then forwarded to
    the wrapped logger tagged with the run id. Each run owns one instance.
    """

    def __init__(
        self,
        run_id: str,
        logger: logging.Logger = log,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(logger, {"run_id": run_id, **(extra or {})})
        self.run_id = run_id
        self._lines: list[str] = []

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Record the message in the buffer and pass it on."""
        self._lines.append(str(msg) % args if args else str(msg))
        super().log(level, msg, *args, **kwargs)

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        """Attach the run id to the record."""
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return f"[{self.run_id}] {msg}", kwargs

    @property
    def text(self) -> str:
        """Accumulated log text, one line per message."""
        return "".join(f"{line}\n" for line in self._lines)
