import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from .types import ParsedError, RotationResult


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
        }
        if isinstance(record.msg, dict):
            log_record.update(record.msg)
        else:
            log_record["message"] = record.getMessage()
        return json.dumps(log_record)


def setup_rotation_logger(log_dir: Union[str, Path]) -> logging.Logger:
    """Sets up a dedicated JSON logger for rotation decisions."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = str(log_dir / "rotations.log")

    logger = logging.getLogger("model_rotation.decisions")
    logger.setLevel(logging.INFO)

    # Decisions go to their own file only
    logger.propagate = False

    # Add handler only once per file
    if not any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == str(Path(log_file).resolve())
        for h in logger.handlers
    ):
        handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=2,
            encoding="utf-8",
        )
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)

    return logger


def log_rotation(
    logger: logging.Logger,
    agent: str,
    model: str,
    result: RotationResult,
    parsed_error: Optional[ParsedError] = None,
) -> None:
    """Logs a structured record of a rotation decision."""
    log_data = {
        "agent": agent,
        "model": model,
        "rotated": result.rotated,
        "next_model": result.next_resource,
        "reason": result.reason,
        "all_depleted": result.all_depleted,
    }
    if parsed_error is not None:
        log_data["error_kind"] = parsed_error.kind.value
        log_data["error_origin"] = parsed_error.origin.value
        log_data["error_message"] = parsed_error.message

    level = logging.WARNING if result.all_depleted else logging.INFO
    logger.log(level, log_data)
