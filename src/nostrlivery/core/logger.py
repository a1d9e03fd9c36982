"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so that relay and handshake
events are logged as an event name followed by ``key=value`` pairs (default)
or as one JSON object per line.

``StructuredFormatter`` reads the ``structured_kv`` extra attached by
[Logger][nostrlivery.core.logger.Logger]; installed on the root handler by
the CLI it also formats the plain ``logging.getLogger()`` calls used in the
``utils`` and ``nips`` layers.

Secret keys must never reach the logs: any value that looks like a bech32
secret key (``nsec1...``) is replaced with ``<redacted>`` before formatting.

Examples:
    ```python
    from nostrlivery.core.logger import Logger

    logger = Logger("association").bind(role="driver")
    logger.info("request_received", request_id="ab12", author="cd34")
    # Output: request_received role=driver request_id=ab12 author=cd34
    ```
"""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, ClassVar


_REDACTED = "<redacted>"


def _redact(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("nsec1"):
        return _REDACTED
    return value


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values are truncated to ``max_value_length`` characters; values containing
    whitespace, equals signs, or quotes are escaped and double-quoted.

    Returns:
        Formatted string, e.g. ``' url=wss://relay kind=20000'``, or an
        empty string if *kwargs* is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = str(_redact(v))
        if max_value_length and len(s) > max_value_length:
            s = s[:max_value_length] + f"...<truncated {len(s) - max_value_length} chars>"
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats every record as ``level logger message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        if record.exc_info:
            base += "\n" + self.formatException(record.exc_info)
        return base


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    All public methods mirror the standard logging API with an added
    ``**kwargs`` parameter. [bind()][nostrlivery.core.logger.Logger.bind]
    returns a child logger that repeats fixed context on every line.
    """

    _DEFAULT_MAX_VALUE_LENGTH: ClassVar[int] = 1000

    def __init__(
        self,
        name: str,
        *,
        json_output: bool = False,
        max_value_length: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **context: Any) -> Logger:
        """Return a logger sharing this one's output that always includes *context*."""
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **context},
        )

    def _truncate(self, value: Any) -> Any:
        value = _redact(value)
        s = str(value)
        if self._max_value_length and len(s) > self._max_value_length:
            return s[: self._max_value_length] + (
                f"...<truncated {len(s) - self._max_value_length} chars>"
            )
        return value

    def _log(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {k: self._truncate(v) for k, v in {**self._context, **kwargs}.items()}
        if self._json_output:
            record = {
                "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
                "level": logging.getLevelName(level).lower(),
                "service": self._logger.name,
                "message": msg,
                **fields,
            }
            self._logger.log(level, json.dumps(record, default=str), exc_info=exc_info)
        else:
            extra = {"structured_kv": fields} if fields else {}
            self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._log(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an ERROR message with the active exception's traceback."""
        self._log(logging.ERROR, msg, kwargs, exc_info=True)
