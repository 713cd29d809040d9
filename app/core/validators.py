# app/core/validators.py
"""輸入格式檢查：不合格一律丟 ValidationError（400）"""
import re

from email_validator import EmailNotValidError, validate_email

from app.core.errors import ValidationError

# 字母開頭、字母或數字結尾；中間可有 - _ .，但不可連續兩個特殊字元
USERNAME_PATTERN = re.compile(r"^(?!.*[_.-]{2})[a-zA-Z][a-zA-Z0-9_.-]*[a-zA-Z0-9]$")
OBJECT_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")
_SYMBOLS = re.compile(r"[^a-zA-Z0-9]")


def validate_username(username: str) -> str:
    if not USERNAME_PATTERN.match(username or ""):
        raise ValidationError(
            "Invalid username. It should start with a letter and end with a letter or number, "
            "contain only letters, numbers, hyphens, underscores, or periods, "
            "and not have two consecutive underscores, dots, or hyphens."
        )
    return username


def validate_strong_password(password: str) -> str:
    """至少 8 碼，含大寫、小寫、數字、符號各一"""
    ok = (
        len(password or "") >= 8
        and re.search(r"[a-z]", password)
        and re.search(r"[A-Z]", password)
        and re.search(r"[0-9]", password)
        and _SYMBOLS.search(password)
    )
    if not ok:
        raise ValidationError(
            "Password is not strong enough. It must be at least 8 characters long and contain "
            "an uppercase letter, a lowercase letter, a number and a symbol."
        )
    return password


def validate_object_id(value: str, label: str = "id") -> str:
    if not OBJECT_ID_PATTERN.match(value or ""):
        raise ValidationError(f"Invalid {label}")
    return value


def validate_length(value: str, label: str, min_length: int, max_length: int) -> str:
    length = len((value or "").strip())
    if length < min_length or length > max_length:
        raise ValidationError(f"{label} must be between {min_length} and {max_length} characters")
    return value


def is_email(value: str) -> bool:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True
