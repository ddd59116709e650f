import logging
import os

import opentelemetry.trace
from azure.monitor.opentelemetry import configure_azure_monitor

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _export_to_azure_monitor() -> None:
    # Local runs stay console-only unless Application Insights is configured
    if not os.environ.get("APPLICATIONINSIGHTS_CONNECTION_STRING"):
        return
    try:
        configure_azure_monitor(logger_name="westock")
        logging.getLogger("westock").info("Azure Monitor OpenTelemetry configured")
    except Exception as e:
        logging.getLogger("westock").error(f"Error configuring Azure Monitor: {e}")


def _build_logger() -> logging.Logger:
    root = logging.getLogger("westock")
    root.setLevel(os.environ.get("WESTOCK_LOG_LEVEL", "INFO").upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    return root


logger = _build_logger()
_export_to_azure_monitor()

tracer = opentelemetry.trace.get_tracer("westock")


def get_child_logger(name: str) -> logging.Logger:
    """Logger under ``westock``, e.g. ``westock.sync`` for ``"sync"``."""
    return logger.getChild(name)
