"""Utility functions."""

from commissiondesk.utils.audit import get_client_ip, log_action
from commissiondesk.utils.money import percent_of, to_money

__all__ = [
    "get_client_ip",
    "log_action",
    "percent_of",
    "to_money",
]
