"""Configuration module for Practice Desk."""

from practice_desk.config.catalog_loader import (
    load_area_costs,
    load_staff_roster,
    load_task_catalog,
    load_turnover_brackets,
)
from practice_desk.config.logging import configure_logging, get_logger
from practice_desk.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "load_area_costs",
    "load_task_catalog",
    "load_turnover_brackets",
    "load_staff_roster",
]
