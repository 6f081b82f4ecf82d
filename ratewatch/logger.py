"""Structured JSON logging configuration using loguru.

Every module logs through `get_logger(__name__)` and passes institution
names, fetch stages and URLs as keyword context instead of interpolating
them into the message:

    log.warning("Form fields missing", institution="Chase", stage="fill")

Two sinks are installed. The console shows one line per event with the
institution and stage appended when present. The file sink writes one JSON
document per line, with `institution` and `stage` promoted to top-level
keys so a log query can follow a single bank through a fan-out cycle.
"""

import json
import sys
from pathlib import Path
from typing import Any

from loguru import logger

from config.settings import GlobalConfig, get_config
from ratewatch.exceptions import LoggingInitializationError

PROMOTED_KEYS = ("institution", "stage")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[module]}</cyan> | "
    "<level>{message}</level>"
)


def _console_format(record: dict[str, Any]) -> str:
    extra = record["extra"]
    extra.setdefault("module", record["name"])
    suffix = "".join(
        f" <magenta>[{key}={{extra[{key}]}}]</magenta>" for key in PROMOTED_KEYS if key in extra
    )
    return CONSOLE_FORMAT + suffix + "\n{exception}"


def _json_serializer(record: dict[str, Any]) -> str:
    """Render a loguru record as one line of JSON.

    Args:
        record: Loguru record dictionary.

    Returns:
        JSON document terminated by a newline.
    """
    extra = {k: v for k, v in record["extra"].items() if k != "serialized"}
    document: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "module": extra.pop("module", record["name"]),
        "function": record["function"],
        "line": record["line"],
    }
    for key in PROMOTED_KEYS:
        if key in extra:
            document[key] = extra.pop(key)
    if extra:
        document["context"] = extra

    exception = record["exception"]
    if exception is not None:
        document["exception"] = {
            "type": exception.type.__name__ if exception.type else None,
            "value": str(exception.value) if exception.value else None,
        }

    return json.dumps(document, default=str) + "\n"


def _ensure_writable(log_dir: Path) -> None:
    """Create `log_dir` and prove a file can be written there.

    Raises:
        LoggingInitializationError: If the directory is unusable.
    """
    marker = log_dir / ".write_test"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        marker.write_text("ok")
        marker.unlink()
    except OSError as exc:
        reason = "Permission denied" if isinstance(exc, PermissionError) else "OS error"
        raise LoggingInitializationError(log_dir=str(log_dir), reason=f"{reason}: {exc}") from exc


def configure_logging(config: GlobalConfig | None = None) -> None:
    """Install the console and JSON file sinks.

    Call once during bootstrap, before any other module logs. The file is
    rotated and compressed according to `log_rotation` and `log_retention`.

    Args:
        config: Optional GlobalConfig instance. If None, uses singleton.

    Raises:
        LoggingInitializationError: If the log directory is not writable.
    """
    if config is None:
        config = get_config()

    logger.remove()
    _ensure_writable(config.log_dir)

    logger.add(
        sys.stderr,
        format=_console_format,
        level=config.log_level,
        colorize=True,
        backtrace=config.debug,
        diagnose=config.debug,
    )

    logger.add(
        str(config.log_dir / "ratewatch_{time:YYYY-MM-DD}.json"),
        format="{extra[serialized]}",
        level=config.log_level,
        rotation=config.log_rotation,
        retention=config.log_retention,
        compression="gz",
        filter=lambda record: record["extra"].update(serialized=_json_serializer(record)) or True,
    )

    logger.info(
        "Logging infrastructure initialized",
        app_name=config.app_name,
        environment=config.environment,
        log_level=config.log_level,
        log_dir=str(config.log_dir),
    )


def get_logger(name: str) -> "logger":
    """Return the shared logger bound to a module name."""
    return logger.bind(module=name)
