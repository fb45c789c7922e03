import logging
import sys
import json
from typing import Any, Dict, Optional
from contextvars import ContextVar

# Context var for the playback session currently being spoken
_session_id: ContextVar[Optional[str]] = ContextVar("session_id", default=None)

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}

class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            "session_id": _session_id.get(),
        }

        for key, value in vars(record).items():
            if key not in _RESERVED and not key.startswith("_"):
                log_record[key] = value

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_record, default=str)

def setup_logging(level: str = "INFO", fmt: str = "json"):
    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        if getattr(handler, "_narrator", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    handler._narrator = True
    root.addHandler(handler)

def set_session_id(sid: Optional[str]):
    _session_id.set(sid)

def get_session_id() -> Optional[str]:
    return _session_id.get()
