"""
Utility modules for the diagnostic center backend.

This package contains shared utility functions used across the application,
including datetime (business timezone) and money helpers.
"""

from utils.datetime_utils import business_now, to_rebate_date
from utils.money_utils import quantize_money, to_decimal

__all__ = ['business_now', 'to_rebate_date', 'quantize_money', 'to_decimal']
