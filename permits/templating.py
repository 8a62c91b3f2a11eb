"""
Mapping of business application forms to the placeholders of the DOCX templates.

This is the contract between the fields that the citizen client writes and the tags in the templates. Every
placeholder is always present: missing or malformed values render as "", never as an error.
"""

import math
import re
from typing import Any

from permits import treasury, util
from permits.models import TreasuryAssessmentRecord

CHECKED = "☑"
UNCHECKED = "☐"

UNITS = (
    "Zero", "One", "Two", "Three", "Four", "Five", "Six", "Seven", "Eight", "Nine", "Ten",
    "Eleven", "Twelve", "Thirteen", "Fourteen", "Fifteen", "Sixteen", "Seventeen", "Eighteen", "Nineteen",
)  # fmt: skip
TENS = ("", "", "Twenty", "Thirty", "Forty", "Fifty", "Sixty", "Seventy", "Eighty", "Ninety")
SCALES = (
    (1_000_000_000_000, "Trillion"),
    (1_000_000_000, "Billion"),
    (1_000_000, "Million"),
    (1_000, "Thousand"),
)

# Form fields that are copied as text.
TEXT_FIELDS = (
    "registrationNo",
    "tin",
    "lastName",
    "firstName",
    "middleName",
    "businessName",
    "tradeName",
    "businessPostalCode",
    "businessMobile",
    "businessEmail",
    "ownerAddress",
    "ownerPostalCode",
    "ownerMobile",
    "ownerEmail",
    "emergencyContactName",
    "lessorName",
)


def checkbox(checked: bool) -> str:
    return CHECKED if checked else UNCHECKED


def _to_number(value: Any) -> float:
    if isinstance(value, str):
        return util.parse_float_prefix(value.replace(",", ""))
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, int | float):
        return float(value)
    return math.nan


def format_date(value: str) -> str:
    """
    Format a date like "January 15, 2025". Return the input if it is not a date.
    """
    if not value:
        return ""
    if parsed := util.parse_datetime(value):
        return f"{parsed:%B} {parsed.day}, {parsed.year}"
    return value


def format_integer(value: Any) -> str:
    """
    Round a number, or a numeric string with or without thousands separators, and format it with thousands separators.
    Return the input as text if it is not a number.
    """
    if value is None or value == "":
        return ""
    number = _to_number(value)
    if math.isnan(number):
        return util.as_text(value)
    if math.isinf(number):
        return "∞" if number > 0 else "-∞"
    return f"{util.round_half_up(number):,}"


def format_address(value: Any) -> str:
    """
    Replace "/" separators with commas, normalize the spacing around commas, and drop a trailing comma.
    """
    raw = util.as_text(value).strip()
    if not raw:
        return ""
    raw = re.sub(r"\s*/\s*", ", ", raw)
    raw = re.sub(r"\s*,\s*", ", ", raw)
    raw = re.sub(r",\s*,+", ", ", raw)
    return re.sub(r",\s*$", "", raw)


def integer_to_words(number: int) -> str:
    if number < 20:
        return UNITS[number]
    if number < 100:
        tens, rest = divmod(number, 10)
        return TENS[tens] + (f" {UNITS[rest]}" if rest else "")
    if number < 1000:
        hundreds, rest = divmod(number, 100)
        return f"{UNITS[hundreds]} Hundred" + (f" {integer_to_words(rest)}" if rest else "")
    for value, name in SCALES:
        if number >= value:
            high, rest = divmod(number, value)
            return f"{integer_to_words(high)} {name}" + (f" {integer_to_words(rest)}" if rest else "")
    return ""


def convert_amount_to_words(value: Any) -> str:
    """
    Spell out an amount of money, as on a sworn statement: 1500.5 is "One Thousand Five Hundred and 50/100".

    The cents are omitted if zero. Negative amounts are prefixed with "Minus ".

    :param value: A number, or a numeric string with or without thousands separators.
    :return: The words, "" if the value is empty, or the value as text if it is not a finite number.
    """
    if value is None or value == "":
        return ""
    number = _to_number(value)
    if not math.isfinite(number):
        return util.as_text(value)

    prefix = "Minus " if number < 0 else ""
    absolute = abs(number)
    integer_part = math.floor(absolute)
    cents = util.round_half_up((absolute - integer_part) * 100)

    words = integer_to_words(integer_part) or "Zero"
    if cents == 0:
        return f"{prefix}{words}"
    return f"{prefix}{words} and {cents:02d}/100"


def _activity_amount(activity: dict[str, Any], *keys: str) -> float:
    number = _to_number(util.as_text(util.coalesce(*(activity.get(key) for key in keys), 0)))
    return 0 if math.isnan(number) else number


def _positive_count(value: Any) -> str:
    count = util.parse_int_prefix(util.as_text(value)) or 0
    return str(count) if count > 0 else ""


def map_activities(activities: list[dict[str, Any]]) -> list[dict[str, str]]:
    return [
        {
            "lineOfBusiness": util.as_text(activity.get("lineOfBusiness")),
            "noOfUnits": util.as_text(util.coalesce(activity.get("tricycleUnits"), activity.get("noOfUnits"))),
            "capitalization": format_integer(activity.get("capitalization")),
            "grossSalesReceipts": format_integer(
                util.coalesce(activity.get("grossSales"), activity.get("grossSalesReceipts"), "")
            ),
        }
        for activity in activities
    ]


def map_application_to_template(
    form: dict[str, Any], assessment: TreasuryAssessmentRecord | None = None
) -> dict[str, Any]:
    """
    Map an application form, and its treasury assessment if any, to template placeholders.

    Checkboxes are "☑" or "☐". Each checkbox is compared independently, so malformed data can check more than
    one box in a group, or none.

    :param form: The ``form`` of the application in the database.
    :param assessment: The latest treasury assessment of the application.
    """

    def lower(key: str) -> str:
        return util.as_text(form.get(key)).lower()

    application_type = lower("applicationType")
    business_type = lower("businessType")
    tax_incentive = lower("taxIncentive")
    payment_mode = lower("paymentMode")
    amend_from = lower("amendFrom")
    amend_to = lower("amendTo")

    activities = form.get("activities")
    raw_activities = [util.as_dict(activity) for activity in activities] if isinstance(activities, list) else []
    capital_total = sum(_activity_amount(activity, "capitalization") for activity in raw_activities)
    gross_total = sum(_activity_amount(activity, "grossSales", "grossSalesReceipts") for activity in raw_activities)

    full_name = " ".join(
        text for key in ("firstName", "middleName", "lastName") if (text := util.as_text(form.get(key)))
    ).strip()

    data = {
        "appNewBox": checkbox(application_type == "new"),
        "appRenewalBox": checkbox(application_type == "renewal"),
        "payAnnuallyBox": checkbox(payment_mode == "annually"),
        "paySemiAnnuallyBox": checkbox(payment_mode in ("semi-annually", "semiannually")),
        "payQuarterlyBox": checkbox(payment_mode == "quarterly"),
        "typeSingleBox": checkbox(business_type == "single"),
        "typePartnershipBox": checkbox(business_type == "partnership"),
        "typeCorporationBox": checkbox(business_type == "corporation"),
        "typeCooperativeBox": checkbox(business_type == "cooperative"),
        "amendFromSingleBox": checkbox(amend_from == "single"),
        "amendFromPartnershipBox": checkbox(amend_from == "partnership"),
        "amendFromCorporationBox": checkbox(amend_from == "corporation"),
        "amendToSingleBox": checkbox(amend_to == "single"),
        "amendToPartnershipBox": checkbox(amend_to == "partnership"),
        "amendToCorporationBox": checkbox(amend_to == "corporation"),
        "taxIncentiveYesBox": checkbox(tax_incentive == "yes"),
        "taxIncentiveNoBox": checkbox(tax_incentive in ("no", "")),
        "dateOfApplication": format_date(util.as_text(form.get("dateOfApplication"))),
        "registrationDate": format_date(util.as_text(form.get("registrationDate"))),
        "taxpayerRegistrant": full_name or util.as_text(form.get("businessName")),
        **{key: util.as_text(form.get(key)) for key in TEXT_FIELDS},
        # The owner address is printed as entered.
        "businessAddress": format_address(form.get("businessAddress")),
        "emergencyMobile": util.as_text(
            util.coalesce(form.get("emergencyContactMobile"), form.get("emergencyMobile"))
        ),
        "totalEmployees": _positive_count(util.coalesce(form.get("totalEmployees"), 0)),
        "femaleEmployees": _positive_count(
            util.coalesce(form.get("totalFemaleEmployees"), form.get("femaleEmployees"), 0)
        ),
        "taxIncentiveEntity": util.as_text(
            util.coalesce(form.get("incentiveEntity"), form.get("taxIncentiveEntity"))
        ),
        "capitalInvestment": format_integer(capital_total) if capital_total > 0 else "",
        "capitalInvestmentWords": convert_amount_to_words(capital_total) if capital_total > 0 else "",
        "grossSalesReceipts": format_integer(gross_total) if gross_total > 0 else "",
        "grossSalesReceiptsWords": convert_amount_to_words(gross_total) if gross_total > 0 else "",
        "activities": map_activities(raw_activities),
    }
    data.update(treasury.build_template_fields(assessment))
    return data
