"""
Due Alert Configuration Schema (``settlement_modules.alerts.config``).

Defaults used when a tenant has no stored alert settings, and the bounds
every stored or requested value must respect.  Loaded at runtime via
``settlement_config.get_active_config()``.

Failure modes
-------------
* ``ValueError`` at construction if a default falls outside its bounds.
"""

from dataclasses import dataclass

from settlement_kernel.logging_config import get_logger

logger = get_logger("modules.alerts.config")

LEAD_DAYS_RANGE = (1, 60)
POLLING_SECONDS_RANGE = (15, 300)
LIMIT_RANGE = (1, 200)


@dataclass(frozen=True)
class DueAlertConfig:
    lead_days: int = 7
    polling_seconds: int = 60
    show_overdue: bool = True
    default_limit: int = 50
    max_limit: int = LIMIT_RANGE[1]

    def __post_init__(self):
        if not LEAD_DAYS_RANGE[0] <= self.lead_days <= LEAD_DAYS_RANGE[1]:
            raise ValueError(f"lead_days must be within {LEAD_DAYS_RANGE}")
        if not POLLING_SECONDS_RANGE[0] <= self.polling_seconds <= POLLING_SECONDS_RANGE[1]:
            raise ValueError(f"polling_seconds must be within {POLLING_SECONDS_RANGE}")
        if not LIMIT_RANGE[0] <= self.max_limit <= LIMIT_RANGE[1]:
            raise ValueError(f"max_limit must be within {LIMIT_RANGE}")
        if not 1 <= self.default_limit <= self.max_limit:
            raise ValueError("default_limit must be between 1 and max_limit")
        logger.debug(
            "due_alert_config_initialized",
            extra={
                "lead_days": self.lead_days,
                "polling_seconds": self.polling_seconds,
                "show_overdue": self.show_overdue,
                "default_limit": self.default_limit,
            },
        )
