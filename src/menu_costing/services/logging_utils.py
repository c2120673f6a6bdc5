"""Structured log records for service operations.

Each mutation, rejection and cascade step is written as one record whose
message reads ``<operation>: <outcome>`` and whose ``extra`` carries the
entity ids and values involved:

    logger = get_service_logger(__name__)
    log_operation(logger, "record_entry", "success", ingredient_id=12,
                  base_cost_per_unit="0.00500000")
"""

import logging
from typing import Any

SERVICE_LOGGER_PREFIX = "menu_costing.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Logger for a service module, named under ``menu_costing.services``.

    Only the last dotted component of ``name`` is kept, so
    ``get_service_logger("menu_costing.services.cascade_service")`` and
    ``get_service_logger("cascade_service")`` return the same logger.
    """
    return logging.getLogger(f"{SERVICE_LOGGER_PREFIX}.{name.rsplit('.', 1)[-1]}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Emit one record for a service operation.

    Args:
        logger: Service logger
        operation: Service function name, e.g. "propagate"
        outcome: "success", "rejected", "recomputed", ...
        level: INFO by default; cascade steps use DEBUG and rejections WARNING
        **context: Attached to the record as attributes; must not reuse
            LogRecord names such as ``name`` or ``message``
    """
    logger.log(
        level,
        "%s: %s",
        operation,
        outcome,
        extra={"operation": operation, "outcome": outcome, **context},
    )
