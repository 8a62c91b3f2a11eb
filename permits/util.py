import math
import re
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx
import orjson
from email_validator import EmailNotValidError, validate_email
from fastapi import Request

DATE_FORMATS = ("%B %d, %Y", "%b %d, %Y", "%m/%d/%Y", "%Y/%m/%d", "%d %B %Y")
FLOAT_PREFIX = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
INT_PREFIX = re.compile(r"^\s*[+-]?\d+")


# https://fastapi.tiangolo.com/tutorial/path-operation-configuration/#tags-with-enums
class Tags(Enum):
    admin = "admin"
    export = "export"
    meta = "meta"
    treasury = "treasury"


# In future, httpx.Client might allow custom decoders. https://github.com/encode/httpx/issues/717
def loads(response: httpx.Response) -> Any:
    return orjson.loads(response.text)


def now_ms() -> int:
    return int(time.time() * 1000)


def is_number(value: Any) -> bool:
    """
    Return whether the value is a finite int or float. Booleans are not numbers.
    """
    return isinstance(value, int | float) and not isinstance(value, bool) and math.isfinite(value)


def coalesce(*values: Any) -> Any:
    """
    Return the first value that is not None, or None.
    """
    return next((value for value in values if value is not None), None)


def as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_text(value: Any) -> str:
    """
    Return the value as display text: "" for None, lowercase for booleans, integral floats without a decimal part.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def normalize_whitespace(value: str) -> str:
    return " ".join(value.split())


def parse_float_prefix(value: str) -> float:
    """
    Parse the leading number of a string, ignoring any trailing text. Return NaN if there is no leading number.
    """
    if match := FLOAT_PREFIX.match(value):
        return float(match.group())
    return math.nan


def parse_int_prefix(value: str) -> int | None:
    if match := INT_PREFIX.match(value):
        return int(match.group())
    return None


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def parse_datetime(value: str) -> datetime | None:
    """
    Parse an ISO 8601 date or datetime, or a date in a common human format.

    Naive values are in UTC.

    :param value: The string to parse.
    :return: The datetime, or None if the string cannot be parsed.
    """
    value = value.strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(value, fmt)
                break
            except ValueError:
                continue
        else:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_timestamp(value: str) -> int | None:
    """
    :return: The milliseconds since the epoch, or None if the string cannot be parsed.
    """
    if parsed := parse_datetime(value):
        return int(parsed.timestamp() * 1000)
    return None


def is_valid_email(email: str) -> bool:
    """
    Check if the given email is valid.

    :param email: The email address to validate.
    :return: True if the email is valid, False otherwise.
    """
    try:
        return bool(validate_email(email, allow_smtputf8=False, check_deliverability=False))
    except EmailNotValidError:
        return False


def get_public_origin(request: Request) -> str:
    """
    Return the scheme and host with which the client reached this service, honoring reverse-proxy headers.
    """
    host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
    if not host:
        return str(request.base_url).rstrip("/")
    proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    if not proto:
        proto = "http" if host.startswith(("localhost", "127.0.0.1")) else "https"
    return f"{proto}://{host}"


def content_disposition(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}
