"""
Treasury assessments: the fees that treasury staff attach to a business application before the permit is issued.

Assessments are stored under ``Treasury/fees/{uid}``. Older records are keyed by ``client_uid`` (the applicant) instead
of ``application_uid``, and use camelCase or abbreviated field names.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any

from permits import util
from permits.exceptions import ValidationError
from permits.firebase import RealtimeDatabase
from permits.models import AdditionalFee, FeeLine, TreasuryAssessmentRecord

logger = logging.getLogger(__name__)

TREASURY_FEES_PATH = "Treasury/fees"
DEFAULT_ADDITIONAL_FEE_NAME = "Additional Fee"
OTHERS = "Others"


@dataclass(frozen=True)
class FeeDefinition:
    key: str
    label: str
    #: "local" (local taxes), "regulatory" (regulatory fees) or "fire" (fire safety).
    section: str
    #: Whether the fee is collected by the local government unit, and counts toward ``lgu_total``.
    include_in_lgu: bool = True


FEE_DEFINITIONS = (
    FeeDefinition("gross_sales_tax", "Gross Sales Tax", "local"),
    FeeDefinition("delivery_vehicles_tax", "Tax on Delivery Vans / Trucks (Tricycle)", "local"),
    FeeDefinition(
        "combustible_storage_tax", "Tax on Storage for Combustible / Flammable / Explosive Substance", "local"
    ),
    FeeDefinition("signboard_billboard_tax", "Tax on Signboard / Billboards", "local"),
    FeeDefinition("mayors_permit_fee", "Mayor's Permit Fee", "regulatory"),
    FeeDefinition("mayors_clearance_fee", "Mayor's Clearance Fee", "regulatory"),
    FeeDefinition("sanitary_inspection_fee", "Sanitary Inspection Fee", "regulatory"),
    FeeDefinition("delivery_permit_fee", "Delivery Trucks/Vans Permit Fee", "regulatory"),
    FeeDefinition("garbage_charges", "Garbage Charges", "regulatory"),
    FeeDefinition("building_inspection_fee", "Building Inspection Fee", "regulatory"),
    FeeDefinition("electrical_inspection_fee", "Electrical Inspection Fee", "regulatory"),
    FeeDefinition("mechanical_inspection_fee", "Mechanical Inspection Fee", "regulatory"),
    FeeDefinition("dst_fee", "D.S.T. (Documentary Stamp Tax)", "regulatory"),
    FeeDefinition("signboard_business_plate_fee", "Signboard/Business Plate", "regulatory"),
    FeeDefinition("combustible_storage_sale_fee", "Storage and Sale of Combustible", "regulatory"),
    FeeDefinition("fire_safety_inspection_fee", "Fire Safety Inspection Fee", "fire", include_in_lgu=False),
)
TEMPLATE_FEE_KEYS = tuple(definition.key for definition in FEE_DEFINITIONS)


def normalize_optional_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_optional_number(value: Any) -> int | float | None:
    """
    Return a finite number from a number or a numeric string, or None. A blank string is 0.

    Integral values are returned as ints, so that 100.0 renders as "100".
    """
    if isinstance(value, str):
        text = value.strip()
        if "_" in text:
            return None
        try:
            value = float(text) if text else 0
        except ValueError:
            return None
    if not util.is_number(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def to_template_value(value: Any) -> int | float | str:
    """
    Return the number to show in a document, or "" if the value is missing or zero.
    """
    number = normalize_optional_number(value)
    if not number:
        return ""
    return number


def _line_total(amount: int | float | None, penalty: int | float | None, total: Any) -> int | float:
    stored = normalize_optional_number(total)
    if stored is not None:
        return stored
    return (amount or 0) + (penalty or 0)


def normalize_fee_line(value: Any) -> FeeLine:
    node = util.as_dict(value)
    amount = normalize_optional_number(node.get("amount"))
    penalty = normalize_optional_number(node.get("penalty"))
    return FeeLine(amount=amount, penalty=penalty, total=_line_total(amount, penalty, node.get("total")))


def normalize_fees(value: Any) -> dict[str, FeeLine]:
    return {key: normalize_fee_line(line) for key, line in util.as_dict(value).items()}


def normalize_additional_fees(value: Any, default_name: str = "") -> list[AdditionalFee]:
    """
    Drop rows without a name, an amount or a penalty.

    :param default_name: The name of rows without a name.
    """
    if not isinstance(value, list):
        return []

    fees = []
    for entry in value:
        node = util.as_dict(entry)
        amount = normalize_optional_number(node.get("amount"))
        penalty = normalize_optional_number(node.get("penalty"))
        fee = AdditionalFee(
            name=normalize_optional_string(node.get("name")) or default_name,
            amount=amount,
            penalty=penalty,
            total=_line_total(amount, penalty, node.get("total")),
        )
        if fee.name or fee.amount is not None or fee.penalty is not None:
            fees.append(fee)
    return fees


def _first_string(payload: dict[str, Any], *keys: str) -> str:
    return next((text for key in keys if (text := normalize_optional_string(payload.get(key)))), "")


def _first_number(payload: dict[str, Any], *keys: str) -> int | float | None:
    return util.coalesce(*(normalize_optional_number(payload.get(key)) for key in keys))


def normalize_assessment(key: str, payload: Any) -> TreasuryAssessmentRecord | None:
    """
    Convert a stored assessment into a :class:`~permits.models.TreasuryAssessmentRecord`.

    :param key: The key of the record in the database.
    :param payload: The value of the record in the database.
    :return: The record, or None if it has neither an ``application_uid`` nor a legacy ``client_uid``.
    """
    payload = util.as_dict(payload)
    client_uid = normalize_optional_string(payload.get("client_uid"))
    application_uid = normalize_optional_string(payload.get("application_uid")) or client_uid
    if not application_uid:
        return None

    if isinstance(payload.get("additional_fees"), list):
        additional_fees = normalize_additional_fees(payload["additional_fees"])
    else:
        additional_fees = normalize_additional_fees(payload.get("additionalFees"))

    return TreasuryAssessmentRecord(
        uid=normalize_optional_string(payload.get("uid")) or key,
        application_uid=application_uid,
        client_uid=client_uid,
        cedula_no=_first_string(payload, "cedula_no", "cedula"),
        cedula_issued_at=_first_number(payload, "cedula_issued_at", "cedulaIssuedAt"),
        or_no=_first_string(payload, "or_no", "officialReceipt"),
        or_issued_at=_first_number(payload, "or_issued_at", "orIssuedAt"),
        fees=normalize_fees(payload.get("fees")),
        additional_fees=additional_fees,
        lgu_total=util.coalesce(normalize_optional_number(payload.get("lgu_total")), 0),
        grand_total=util.coalesce(normalize_optional_number(payload.get("grand_total")), 0),
        staff_uid=normalize_optional_string(payload.get("staff_uid")) or None,
        staff_email=normalize_optional_string(payload.get("staff_email")) or None,
        created_at=util.coalesce(normalize_optional_number(payload.get("createdAt")), 0),
        updated_at=normalize_optional_number(payload.get("updatedAt")),
    )


def resolve_client_uids(application_id: str, application: Any) -> list[str]:
    """
    Return the identifiers under which an application's assessment may be stored, most specific first: the applicant
    UID in the form, the applicant UID in the metadata, and the application ID.
    """
    application = util.as_dict(application)
    candidates = (
        normalize_optional_string(util.as_dict(application.get("form")).get("applicantUid")),
        normalize_optional_string(util.as_dict(application.get("meta")).get("applicantUid")),
        application_id.strip(),
    )
    # dict.fromkeys() deduplicates while preserving order.
    return [uid for uid in dict.fromkeys(candidates) if uid]


def _find_rows(database: RealtimeDatabase, uid: str) -> dict[str, Any]:
    rows = dict(database.find(TREASURY_FEES_PATH, "application_uid", uid))
    for key, value in database.find(TREASURY_FEES_PATH, "client_uid", uid).items():
        rows.setdefault(key, value)
    return rows


def fetch_latest_assessment(database: RealtimeDatabase, client_uids: list[str]) -> TreasuryAssessmentRecord | None:
    """
    Return the most recent assessment stored under any of the identifiers, by ``updatedAt``, else ``createdAt``.

    There should be one assessment per application. Duplicates are left by older clients.
    """
    latest: TreasuryAssessmentRecord | None = None
    for uid in dict.fromkeys(uid.strip() for uid in client_uids):
        if not uid:
            continue
        for key, payload in _find_rows(database, uid).items():
            if (assessment := normalize_assessment(key, payload)) is None:
                continue
            # On a tie, the row read later wins.
            if latest is None or assessment.recency >= latest.recency:
                latest = assessment
    return latest


def additional_fee_names(assessment: TreasuryAssessmentRecord | None) -> list[str]:
    if assessment is None:
        return []
    return [name for fee in assessment.additional_fees if (name := fee.name.strip())]


def format_others_label(assessment: TreasuryAssessmentRecord | None) -> str:
    if names := additional_fee_names(assessment):
        return f"{OTHERS} ({', '.join(names)})"
    return OTHERS


def _fee_fields(key: str, amount: Any = "", penalty: Any = "", total: Any = "") -> dict[str, Any]:
    return {
        key: total,
        f"{key}_amount": amount,
        f"{key}_penalty": penalty,
        f"{key}_total": total,
        f"treasury_{key}_amount": amount,
        f"treasury_{key}_penalty": penalty,
        f"treasury_{key}_total": total,
    }


def build_template_fields(assessment: TreasuryAssessmentRecord | None) -> dict[str, Any]:
    """
    Flatten an assessment into template placeholders.

    Every known fee has seven aliased placeholders, so that templates can use whichever naming their author chose.
    Missing and zero values are "". The grand total is recomputed from the fee lines, not read from the record.

    :param assessment: The assessment, or None if the application has not been assessed.
    """
    fee_fields: dict[str, Any] = {}
    for key in TEMPLATE_FEE_KEYS:
        fee_fields.update(_fee_fields(key))

    if assessment is None:
        return {
            "treasuryCedulaNo": "",
            "treasuryCedulaIssuedAt": "",
            "treasuryOrNo": "",
            "treasuryOrIssuedAt": "",
            "treasuryOthers": OTHERS,
            "others": OTHERS,
            "otherFees": "",
            "otherFeeNames": "",
            **_others_fields("", "", ""),
            "grand_total": "",
            "lgu_total": "",
            "treasuryGrandTotal": "",
            "treasuryLguTotal": "",
            **fee_fields,
        }

    names = ", ".join(additional_fee_names(assessment))
    label = format_others_label(assessment)
    others_amount = sum(fee.amount or 0 for fee in assessment.additional_fees)
    others_penalty = sum(fee.penalty or 0 for fee in assessment.additional_fees)
    # The stored totals of additional fees are ignored.
    others_total = sum((fee.amount or 0) + (fee.penalty or 0) for fee in assessment.additional_fees)
    grand_total = sum(line.total or 0 for line in assessment.fees.values()) + others_total

    for key, line in assessment.fees.items():
        fee_fields.update(
            _fee_fields(
                re.sub(r"[^a-zA-Z0-9_]+", "_", key),
                amount=to_template_value(line.amount),
                penalty=to_template_value(line.penalty),
                total=to_template_value(line.total),
            )
        )

    return {
        "treasuryCedulaNo": assessment.cedula_no,
        "treasuryCedulaIssuedAt": util.coalesce(assessment.cedula_issued_at, ""),
        "treasuryOrNo": assessment.or_no,
        "treasuryOrIssuedAt": util.coalesce(assessment.or_issued_at, ""),
        "treasuryOthers": label,
        "others": label,
        "otherFees": names,
        "otherFeeNames": names,
        **_others_fields(
            to_template_value(others_amount), to_template_value(others_penalty), to_template_value(others_total)
        ),
        "grand_total": to_template_value(grand_total),
        "lgu_total": to_template_value(assessment.lgu_total),
        "treasuryGrandTotal": to_template_value(grand_total),
        "treasuryLguTotal": to_template_value(assessment.lgu_total),
        **fee_fields,
    }


def _others_fields(amount: Any, penalty: Any, total: Any) -> dict[str, Any]:
    fields = {}
    for prefix in ("others", "other", "treasury_others"):
        fields[f"{prefix}_amount"] = amount
        fields[f"{prefix}_penalty"] = penalty
        fields[f"{prefix}_total"] = total
    return fields


def compute_totals(fees: dict[str, FeeLine], additional_fees: list[AdditionalFee]) -> tuple[int | float, int | float]:
    """
    :return: The total collected by the local government unit, and the grand total.
    """
    lgu_total: int | float = 0
    grand_total: int | float = 0
    for definition in FEE_DEFINITIONS:
        line = fees.get(definition.key)
        if line is None:
            continue
        line_total = (line.amount or 0) + (line.penalty or 0)
        if definition.include_in_lgu:
            lgu_total += line_total
        grand_total += line_total
    for fee in additional_fees:
        line_total = (fee.amount or 0) + (fee.penalty or 0)
        lgu_total += line_total
        grand_total += line_total
    return lgu_total, grand_total


def _issued_at(number: str, previous_number: str, previous_issued_at: int | float | None, now: int) -> int | float:
    if number == previous_number and previous_issued_at is not None:
        return previous_issued_at
    return now


def save_assessment(
    database: RealtimeDatabase, body: dict[str, Any], *, staff_uid: str, staff_email: str, now: int | None = None
) -> str:
    """
    Create or update the assessment of an application.

    The issue time of the cedula (community tax certificate) and of the official receipt is kept while its number is
    unchanged, and reset to now when the number changes.

    :param body: The submitted assessment, with camelCase keys.
    :param staff_uid: The UID of the treasury account, unless the body sets ``staffUid``.
    :param staff_email: The email of the treasury account, unless the body sets ``staffEmail``.
    :return: The key of the record.
    :raises ValidationError: If the application UID, the cedula number or the official receipt number is missing.
    """
    application_uid = normalize_optional_string(body.get("applicationUid"))
    if not application_uid:
        raise ValidationError("Application UID is required.")

    cedula_no = normalize_optional_string(body.get("cedulaNumber"))
    or_no = normalize_optional_string(body.get("officialReceiptNumber"))
    if not cedula_no or not or_no:
        raise ValidationError("Cedula Number and Official Receipt Number are required.")

    if now is None:
        now = util.now_ms()

    fees = normalize_fees(body.get("fees"))
    additional_fees = normalize_additional_fees(body.get("additionalFees"), default_name=DEFAULT_ADDITIONAL_FEE_NAME)
    computed_lgu_total, computed_grand_total = compute_totals(fees, additional_fees)

    existing_key = None
    existing: dict[str, Any] = {}
    for child in ("application_uid", "client_uid"):
        if rows := database.find(TREASURY_FEES_PATH, child, application_uid):
            existing_key, value = next(iter(rows.items()))
            existing = util.as_dict(value)
            break

    payload = {
        "application_uid": application_uid,
        "client_uid": application_uid,
        "cedula_no": cedula_no,
        "cedula_issued_at": _issued_at(
            cedula_no,
            normalize_optional_string(existing.get("cedula_no")),
            _first_number(existing, "cedula_issued_at", "cedulaIssuedAt"),
            now,
        ),
        "or_no": or_no,
        "or_issued_at": _issued_at(
            or_no,
            normalize_optional_string(existing.get("or_no")),
            _first_number(existing, "or_issued_at", "orIssuedAt"),
            now,
        ),
        "fees": {key: line.model_dump() for key, line in fees.items()},
        "additional_fees": [fee.model_dump() for fee in additional_fees],
        "lgu_total": util.coalesce(normalize_optional_number(body.get("lguTotal")), computed_lgu_total),
        "grand_total": util.coalesce(normalize_optional_number(body.get("grandTotal")), computed_grand_total),
        "updatedAt": now,
        "staff_uid": normalize_optional_string(body.get("staffUid")) or staff_uid,
        "staff_email": normalize_optional_string(body.get("staffEmail")) or staff_email,
    }

    if existing_key:
        database.update(f"{TREASURY_FEES_PATH}/{existing_key}", {"uid": existing_key, **payload})
        logger.info("Updated treasury assessment %s of application %s", existing_key, application_uid)
        return existing_key

    key = database.push(TREASURY_FEES_PATH, {**payload, "createdAt": now})
    database.update(f"{TREASURY_FEES_PATH}/{key}", {"uid": key})
    logger.info("Created treasury assessment %s of application %s", key, application_uid)
    return key
