"""
Input validation for import jobs.
"""

from __future__ import annotations
import re
from typing import Any

from mailimport.exceptions import InvalidJobError
from mailimport.logging import logger
from mailimport.models import ImportJob

MIN_YEAR = 1970
MAX_YEAR = 2100

_ADDRESS = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$")


def validate_month(month: Any) -> bool:
    """
    Validate a calendar month.

    Args:
        month: Month number

    Returns:
        True if month is an int in 1..12, False otherwise
    """
    if not isinstance(month, int) or isinstance(month, bool):
        logger.warning(f"Month is not an integer: {type(month)}")
        return False
    if not (1 <= month <= 12):
        logger.warning(f"Month out of range: {month}")
        return False
    return True


def validate_year(year: Any) -> bool:
    """
    Validate a four-digit year.

    Args:
        year: Year number

    Returns:
        True if year is an int in MIN_YEAR..MAX_YEAR, False otherwise
    """
    if not isinstance(year, int) or isinstance(year, bool):
        logger.warning(f"Year is not an integer: {type(year)}")
        return False
    if not (MIN_YEAR <= year <= MAX_YEAR):
        logger.warning(f"Year out of range: {year}")
        return False
    return True


def validate_email_address(address: Any) -> bool:
    """
    Validate a bare email address (no display name, no angle brackets).
    """
    if not isinstance(address, str):
        logger.warning(f"Email address is not a string: {type(address)}")
        return False
    if not _ADDRESS.match(address.strip()):
        logger.warning(f"Invalid email address: {address!r}")
        return False
    return True


def build_job(month: Any, year: Any, work_address: Any) -> ImportJob:
    """
    Build an ImportJob from operator input.

    Raises:
        InvalidJobError: If any argument fails validation
    """
    if not validate_month(month):
        raise InvalidJobError(f"Month must be 1-12, got {month!r}")
    if not validate_year(year):
        raise InvalidJobError(f"Year must be {MIN_YEAR}-{MAX_YEAR}, got {year!r}")
    if not validate_email_address(work_address):
        raise InvalidJobError(f"Work address is not a valid email: {work_address!r}")
    return ImportJob(month=month, year=year, work_address=work_address.strip().lower())
