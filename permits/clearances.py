from typing import Any

from permits import util
from permits.applications import UNNAMED_APPLICANT, derive_overall_status, normalize_requirements
from permits.models import ClearanceApplicationRecord

MAYORS_CLEARANCE_PATH = "mayors_clearance"

NAME_ALIASES = (
    ("firstName", "firstname", "givenName"),
    ("middleName", "middlename", "middle_name"),
    ("lastName", "lastname", "surname"),
)
FALLBACK_NAME_FIELDS = ("applicantName", "fullName", "name")
PURPOSE_FIELDS = ("purpose", "reason", "applicationPurpose", "clearancePurpose")
DATE_FIELDS = ("dateOfApplication", "applicationDate", "date", "submissionDate")


def thread_id(applicant_uid: str, application_id: str) -> str:
    return f"clearance:{applicant_uid}:{application_id}"


def normalize_clearance_application(application_id: str, payload: Any) -> ClearanceApplicationRecord:
    """
    Convert a raw Mayor's clearance application into a :class:`~permits.models.ClearanceApplicationRecord`.

    Older clients wrote the form fields at the top level of the application, instead of under ``form``.
    """
    payload = util.as_dict(payload)
    form = util.as_dict(payload.get("form")) or payload
    meta = util.as_dict(payload.get("meta"))

    name_parts = [util.as_text(util.coalesce(*(form.get(key) for key in keys))).strip() for keys in NAME_ALIASES]
    fallback_name = next((util.as_text(form[key]).strip() for key in FALLBACK_NAME_FIELDS if form.get(key)), "")
    applicant_name = " ".join(part for part in name_parts if part) or fallback_name or UNNAMED_APPLICANT

    application_date = util.coalesce(
        *(form.get(key) for key in DATE_FIELDS), meta.get("applicationDate"), meta.get("submissionDate")
    )
    if not application_date and util.is_number(meta.get("createdAt")):
        application_date = meta["createdAt"]
    if not util.is_number(application_date):
        application_date = util.as_text(application_date)

    if util.is_number(application_date):
        submitted_at = application_date
    else:
        submitted_at = util.parse_timestamp(application_date) if application_date else None
    if submitted_at is None:
        submitted_at = next(
            (value for value in (meta.get("updatedAt"), payload.get("submittedAt")) if util.is_number(value)), None
        )

    status = util.as_text(util.coalesce(meta.get("status"), payload.get("status")))
    fallback_status = util.as_text(util.coalesce(meta.get("overallStatus"), payload.get("overallStatus"), status))
    requirements = normalize_requirements(payload.get("requirements"))
    applicant_uid = util.as_text(util.coalesce(meta.get("applicantUid"), payload.get("applicantUid")))

    return ClearanceApplicationRecord(
        id=application_id,
        applicant_uid=applicant_uid,
        applicant_name=applicant_name,
        application_date=application_date,
        purpose=util.as_text(util.coalesce(*(form.get(key) for key in PURPOSE_FIELDS))),
        overall_status=derive_overall_status(requirements, fallback_status),
        status=status,
        submitted_at=submitted_at,
        thread_id=thread_id(applicant_uid, application_id) if applicant_uid else "",
        form=form,
        requirements=requirements,
    )
