"""Shared validation utilities"""

import re
from typing import Optional


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"
    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_non_negative(value: Optional[float], field_name: str = "Value") -> Optional[float]:
    """Reject negative quantities and money amounts"""
    if value is not None and value < 0:
        raise ValueError(f"{field_name} cannot be negative")
    return value


def validate_tax_rate(rate: Optional[float]) -> Optional[float]:
    """Tax rates are stored as fractions (0.08 == 8%)"""
    if rate is None:
        return rate
    if rate < 0 or rate > 1:
        raise ValueError("Tax rate must be between 0 and 1")
    return rate
