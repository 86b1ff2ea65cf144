"""
Structured JSON Logging with Correlation ID
Configures structlog and the stdlib root logger to emit JSON lines tagged with the request correlation ID
"""

import logging
import sys
import os

import structlog
from pythonjsonlogger import jsonlogger
from asgi_correlation_id.context import correlation_id

SERVICE_NAME = "compliance-feedback-loop"


class CorrelationJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter with automatic correlation ID injection.

    Used for stdlib loggers (uvicorn, sqlalchemy, third-party libraries).
    The correlation ID is retrieved from async context (set by CorrelationIdMiddleware).
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        log_record['correlation_id'] = correlation_id.get() or 'none'
        log_record['service'] = SERVICE_NAME
        log_record['environment'] = os.getenv('ENVIRONMENT', 'development')


def add_correlation_id(logger, method_name, event_dict):
    """structlog processor: attach the current request's correlation ID."""
    event_dict.setdefault("correlation_id", correlation_id.get() or "none")
    return event_dict


def setup_logging(level: int = logging.INFO):
    """
    Configure structured JSON logging to stdout.

    Sets up:
    - structlog with ISO timestamps, log level, correlation ID and JSON rendering
    - root stdlib logger with CorrelationJsonFormatter

    Returns:
        logging.Handler: The configured stdlib handler (for testing)
    """
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            add_correlation_id,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]
    )

    handler = logging.StreamHandler(sys.stdout)

    formatter = CorrelationJsonFormatter(
        '%(timestamp)s %(level)s %(name)s %(message)s',
        rename_fields={
            'timestamp': 'asctime',
            'level': 'levelname'
        }
    )
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    return handler
