import json
import logging

from isp_ledger.logging_utils import JsonFormatter, configure_logging


def _record(**extra):
    record = logging.LogRecord(
        name="isp_ledger.crud",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Applied %s to %s",
        args=("RECHARGE", "C1"),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_ledger_fields():
    payload = json.loads(JsonFormatter().format(_record(operation="apply_event", customer_id="C1", transaction_id="TXabc12")))

    assert payload["message"] == "Applied RECHARGE to C1"
    assert payload["level"] == "INFO"
    assert payload["operation"] == "apply_event"
    assert payload["customer_id"] == "C1"
    assert payload["transaction_id"] == "TXabc12"
    assert payload["timestamp"].endswith("Z")
    assert "error" not in payload


def test_configure_logging_replaces_package_handlers():
    configure_logging("DEBUG", json_output=True)
    configure_logging("WARNING", json_output=True)

    logger = logging.getLogger("isp_ledger")
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JsonFormatter)
    assert logger.level == logging.WARNING
