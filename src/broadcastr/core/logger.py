"""
Structured logging with key=value and JSON output support.

Wraps the standard library ``logging`` module so that every log line carries
an event name plus machine-readable key=value pairs, e.g.
``relay_fetch_done url=wss://nos.lol count=42``. A JSON mode is available for
log aggregators.

The ``StructuredFormatter`` reads the ``structured_kv`` extra field attached
by [Logger][broadcastr.core.logger.Logger] and appends it to the message.
Installed on the root handler by the CLI, it also formats plain
``logging.getLogger()`` calls made from the utils layer.

Examples:
    ```python
    from broadcastr.core.logger import Logger

    logger = Logger("backup")
    logger.info("pass_started", relays=12, batch_size=10)
    # Output: info backup pass_started relays=12 batch_size=10
    ```
"""

import datetime
import json
import logging
from typing import Any, ClassVar


def _truncate(value: str, max_value_length: int | None) -> str:
    if max_value_length and len(value) > max_value_length:
        return value[:max_value_length] + f"...<truncated {len(value) - max_value_length} chars>"
    return value


def format_kv_pairs(
    kwargs: dict[str, Any],
    max_value_length: int | None = 1000,
    prefix: str = " ",
) -> str:
    """Format a dictionary as space-separated key=value pairs.

    Values longer than ``max_value_length`` are truncated. Values containing
    whitespace, equals signs or quotes are escaped and double-quoted so the
    line stays parseable.

    Args:
        kwargs: Key-value pairs to format.
        max_value_length: Maximum characters per value (None disables truncation).
        prefix: String prepended to a non-empty result.

    Returns:
        Formatted string such as ``' url=wss://nos.lol reason="rate limited"'``,
        or an empty string when ``kwargs`` is empty.
    """
    if not kwargs:
        return ""

    parts = []
    for k, v in kwargs.items():
        s = _truncate(str(v), max_value_length)
        if not s or " " in s or "=" in s or '"' in s or "'" in s:
            escaped = s.replace("\\", "\\\\").replace('"', '\\"')
            parts.append(f'{k}="{escaped}"')
        else:
            parts.append(f"{k}={s}")

    return prefix + " ".join(parts)


class StructuredFormatter(logging.Formatter):
    """Formats log records as ``level name message key=value ...``."""

    def format(self, record: logging.LogRecord) -> str:
        base = f"{record.levelname.lower()} {record.name} {record.getMessage()}"
        extra: dict[str, Any] = getattr(record, "structured_kv", {})
        if extra:
            base += format_kv_pairs(extra)
        return base


class Logger:
    """Structured logger that appends keyword arguments as extra fields.

    Mirrors the standard logging API (``debug`` .. ``exception``) with an
    added ``**kwargs`` parameter rendered as key=value pairs, or as JSON
    fields when ``json_output`` is set. [bind()][broadcastr.core.logger.Logger.bind]
    derives a logger that repeats fixed fields on every line, which is how a
    service tags the lines of its fetch and broadcast passes.

    Examples:
        ```python
        logger = Logger("rebroadcast").bind(pass_name="broadcast")
        logger.warning("relay_timeout", url="wss://relay.damus.io", idle_s=10.0)
        # warning rebroadcast relay_timeout pass_name=broadcast url=wss://relay.damus.io idle_s=10.0
        ```
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
        """Initialize a structured logger.

        Args:
            name: Logger name, the service or component name.
            json_output: Emit JSON objects instead of key=value pairs.
            max_value_length: Truncation limit for individual values
                (defaults to 1000 characters). Relay error strings and
                NOTICE texts are the usual offenders.
            context: Fields prepended to every line.
        """
        if max_value_length is None:
            max_value_length = self._DEFAULT_MAX_VALUE_LENGTH
        self._logger = logging.getLogger(name)
        self._json_output = json_output
        self._max_value_length = max_value_length
        self._context: dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def context(self) -> dict[str, Any]:
        return dict(self._context)

    def bind(self, **fields: Any) -> "Logger":
        """Return a logger on the same channel with ``fields`` added to every line.

        Call-site keyword arguments win over bound fields of the same name.
        """
        return Logger(
            self._logger.name,
            json_output=self._json_output,
            max_value_length=self._max_value_length,
            context={**self._context, **fields},
        )

    def _format_json(self, msg: str, level: str, fields: dict[str, Any]) -> str:
        record = {
            "timestamp": datetime.datetime.now(datetime.UTC).isoformat(),
            "level": level,
            "service": self._logger.name,
            "message": msg,
            **fields,
        }
        return json.dumps(record, default=str)

    def _make_extra(self, fields: dict[str, Any]) -> dict[str, Any]:
        if not fields:
            return {}
        return {
            "structured_kv": {
                k: _truncate(v, self._max_value_length) if isinstance(v, str) else v
                for k, v in fields.items()
            }
        }

    def _emit(self, level: int, msg: str, kwargs: dict[str, Any], *, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {**self._context, **kwargs}
        if self._json_output:
            name = "error" if exc_info else logging.getLevelName(level).lower()
            self._logger.log(level, self._format_json(msg, name, fields), exc_info=exc_info)
        else:
            self._logger.log(level, msg, extra=self._make_extra(fields), exc_info=exc_info)

    def debug(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.INFO, msg, kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.ERROR, msg, kwargs)

    def critical(self, msg: str, **kwargs: Any) -> None:
        self._emit(logging.CRITICAL, msg, kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback."""
        self._emit(logging.ERROR, msg, kwargs, exc_info=True)
