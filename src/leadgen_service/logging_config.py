"""structlog setup for the API process.

Machine-readable JSON in production and staging, colored console lines
elsewhere. Scanner addresses are truncated in JSON output; call
``configure_logging()`` once per process (the FastAPI lifespan does).
"""

import ipaddress
import logging
import sys

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

REDACTED = "***REDACTED***"

SENSITIVE_KEYS: frozenset[str] = frozenset(
    {"authorization", "token", "access_token", "password", "secret", "idempotency_key"}
)

# Event keys holding end-user addresses.
ADDRESS_KEYS: frozenset[str] = frozenset({"ip", "client_ip"})

JSON_ENVIRONMENTS: frozenset[str] = frozenset({"production", "staging"})

QUIET_LOGGERS = ("uvicorn.access", "httpx", "sqlalchemy.engine")


def _redact_sensitive_keys(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    for key in event_dict:
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
    return event_dict


def mask_address(value: str) -> str:
    """Keep the network part only: /24 for IPv4, /48 for IPv6.

    Values that do not parse as an address are returned unchanged.
    """
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return value
    prefix = 24 if address.version == 4 else 48
    network = ipaddress.ip_network(f"{address}/{prefix}", strict=False)
    return str(network)


def _mask_addresses(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    for key in ADDRESS_KEYS & event_dict.keys():
        if isinstance(event_dict[key], str):
            event_dict[key] = mask_address(event_dict[key])
    return event_dict


def _service_field(service: str) -> Processor:
    def add_service(
        logger: WrappedLogger, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def configure_logging(
    environment: str = "development",
    log_level: str = "INFO",
    service: str = "leadgen",
) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        environment: ``production`` and ``staging`` render JSON with
            masked scanner addresses; anything else renders console lines.
        log_level: root log level name (DEBUG, INFO, WARNING, ...).
        service: value of the ``service`` field on every event.
    """
    as_json = environment in JSON_ENVIRONMENTS
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _service_field(service),
        _redact_sensitive_keys,
    ]
    renderer: Processor
    if as_json:
        processors.append(_mask_addresses)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
