"""
JSON log formatting and root logger setup for the ledger.
"""
import json
import logging
import os
from datetime import datetime, timezone

LOG_LEVEL = os.getenv("ISP_LEDGER_LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("ISP_LEDGER_LOG_JSON", "false").lower() == "true"

EXTRA_FIELDS = ("operation", "customer_id", "transaction_id", "status", "error")


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def configure_logging(level: str = LOG_LEVEL, *, json_output: bool = LOG_JSON) -> None:
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger("isp_ledger")
    root.handlers[:] = [handler]
    root.setLevel(level)
