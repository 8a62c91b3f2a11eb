"""
Read-time normalization of business permit applications.

Applications are written by citizen and staff clients as loosely-typed trees under
``business/business_application/{id}``, with ``form``, ``meta``, ``requirements`` and ``chat`` children. Nothing here
writes to the database: the overall status is always derived from the requirement file statuses.
"""

import re
from collections.abc import Iterable
from typing import Any

from permits import util
from permits.models import (
    ApplicationType,
    BusinessApplicationRecord,
    BusinessRequirement,
    ChatMessage,
    OverallStatus,
    RequirementFile,
    RequirementFileStatus,
    RequirementState,
)

BUSINESS_APPLICATION_PATH = "business/business_application"
UNNAMED_APPLICANT = "Unnamed Applicant"
APPROVAL_FIELDS = ("approvedAt", "approvedOn", "approvalDate", "approvedDate", "dateApproved")


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def coerce_timestamp(value: Any) -> int | float | None:
    """
    :param value: A number of milliseconds since the epoch, or a date string.
    :return: The milliseconds since the epoch, or None.
    """
    if util.is_number(value):
        return value
    if isinstance(value, str) and value.strip():
        return util.parse_timestamp(value)
    return None


def _numeric_or_none(value: Any) -> int | float | None:
    return value if util.is_number(value) else None


def _file_size(value: Any) -> int | float | str:
    # Sizes are stored as written by the client, sometimes as text.
    return value if util.is_number(value) or isinstance(value, str) else 0


def _sort_key(value: int | float | None) -> int | float:
    return value if value is not None else 0


def normalize_requirement_files(node: Any) -> list[RequirementFile]:
    files = []
    for file_id, value in util.as_dict(node).items():
        data = util.as_dict(value)
        files.append(
            RequirementFile(
                id=file_id,
                download_url=util.as_text(data.get("downloadUrl")),
                status=util.as_text(data.get("status")),
                admin_note=util.as_text(data.get("adminNote")),
                storage_path=util.as_text(data.get("storagePath")),
                uploaded_at=_numeric_or_none(data.get("uploadedAt")),
                file_name=util.as_text(data.get("fileName")),
                file_size=_file_size(data.get("fileSize")),
                file_hash=util.as_text(data.get("fileHash")),
            )
        )
    # sorted() is stable, so files without an upload time keep their stored order.
    return sorted(files, key=lambda file: _sort_key(file.uploaded_at))


def normalize_chat(node: Any) -> list[ChatMessage]:
    messages = []
    for message_id, value in util.as_dict(node).items():
        data = util.as_dict(value)
        messages.append(
            ChatMessage(
                id=message_id,
                sender_role=util.as_text(data.get("senderRole")),
                sender_uid=util.as_text(data.get("senderUid")),
                text=util.as_text(data.get("text")),
                sent_at=_numeric_or_none(data.get("ts")),
            )
        )
    return sorted(messages, key=lambda message: _sort_key(message.sent_at))


def requirement_state(files: Iterable[RequirementFile]) -> RequirementState:
    """
    Derive the state of a requirement from the statuses of its files.

    Any file awaiting review makes the requirement pending. Otherwise, any rejected file makes it rejected. Otherwise,
    any approved file makes it approved. A requirement without recognizable files is pending.
    """
    statuses = {file.classified_status for file in files}
    if RequirementFileStatus.PENDING in statuses or RequirementFileStatus.UPDATED in statuses:
        return RequirementState.PENDING
    if RequirementFileStatus.REJECTED in statuses:
        return RequirementState.REJECTED
    if RequirementFileStatus.APPROVED in statuses:
        return RequirementState.APPROVED
    return RequirementState.PENDING


def normalize_requirements(node: Any) -> list[BusinessRequirement]:
    """
    Requirements are keyed by name in the database. Their IDs are ``<slug>-<position>``, so an ID changes if a
    requirement is inserted before it.
    """
    requirements = []
    for index, (name, data) in enumerate(util.as_dict(node).items()):
        data = util.as_dict(data)
        files = normalize_requirement_files(data.get("files"))
        requirements.append(
            BusinessRequirement(
                id=f"{slugify(name) or 'requirement'}-{index}",
                name=name,
                files=files,
                chat=normalize_chat(data.get("chat")),
                state=requirement_state(files),
            )
        )
    return requirements


def derive_overall_status(requirements: list[BusinessRequirement], fallback: str) -> str:
    """
    :param requirements: The normalized requirements.
    :param fallback: The stored overall status, returned if there are no requirements.
    :return: "Pending Review", "Approved", "Incomplete" or the fallback.
    """
    states = [requirement.state for requirement in requirements]
    if RequirementState.PENDING in states:
        return OverallStatus.PENDING_REVIEW
    if states and all(state == RequirementState.APPROVED for state in states):
        return OverallStatus.APPROVED
    if RequirementState.REJECTED in states:
        return OverallStatus.INCOMPLETE
    return fallback


def latest_approved_upload(requirements: list[BusinessRequirement]) -> int | float | None:
    return max(
        (
            file.uploaded_at
            for requirement in requirements
            for file in requirement.files
            if file.uploaded_at is not None and file.classified_status == RequirementFileStatus.APPROVED
        ),
        default=None,
    )


def normalize_business_application(application_id: str, payload: Any) -> BusinessApplicationRecord:
    """
    Convert a raw application tree into a :class:`~permits.models.BusinessApplicationRecord`.

    Malformed fields default to empty values. This function never raises.

    :param application_id: The key of the application in the database.
    :param payload: The value of the application in the database.
    """
    payload = util.as_dict(payload)
    form = util.as_dict(payload.get("form"))
    meta = util.as_dict(payload.get("meta"))

    applicant_uid = util.normalize_whitespace(
        util.as_text(util.coalesce(form.get("applicantUid"), meta.get("applicantUid"), payload.get("applicantUid")))
    )

    application_date = util.as_text(util.coalesce(form.get("dateOfApplication"), form.get("registrationDate")))

    meta_updated_at = _numeric_or_none(meta.get("updatedAt"))
    submitted_at = util.coalesce(util.parse_timestamp(application_date), meta_updated_at)

    applicant_name = util.normalize_whitespace(
        " ".join(util.as_text(form.get(key)) for key in ("firstName", "middleName", "lastName") if form.get(key))
    )

    requirements = normalize_requirements(payload.get("requirements"))
    overall_status = derive_overall_status(requirements, util.as_text(meta.get("overallStatus")))

    approved_at = next(
        (timestamp for field in APPROVAL_FIELDS if (timestamp := coerce_timestamp(meta.get(field))) is not None),
        None,
    )
    if approved_at is None and overall_status == OverallStatus.APPROVED:
        approved_at = latest_approved_upload(requirements)
        if approved_at is None:
            approved_at = meta_updated_at

    return BusinessApplicationRecord(
        id=application_id,
        applicant_uid=applicant_uid or None,
        applicant_name=applicant_name or util.as_text(form.get("businessName")) or UNNAMED_APPLICANT,
        business_name=util.as_text(form.get("businessName")),
        application_type=(
            ApplicationType.RENEWAL if form.get("applicationType") == ApplicationType.RENEWAL else ApplicationType.NEW
        ),
        application_date=application_date,
        overall_status=overall_status,
        status=util.as_text(meta.get("status")),
        submitted_at=submitted_at,
        approved_at=approved_at,
        form=form,
        requirements=requirements,
        chat=normalize_chat(payload.get("chat")),
    )


def latest_requirement_upload(record: BusinessApplicationRecord) -> int | float | None:
    return max(
        (
            file.uploaded_at
            for requirement in record.requirements
            for file in requirement.files
            if file.uploaded_at is not None
        ),
        default=None,
    )


def requirement_notification_id(record: BusinessApplicationRecord) -> str | None:
    """
    Return an identifier that changes whenever a requirement file is uploaded, so that clients can tell whether they
    have already notified the reviewer of the latest upload.
    """
    if latest := latest_requirement_upload(record):
        return f"requirements-{record.id}-{util.as_text(latest)}"
    return None


def format_status_label(value: str | None) -> str:
    if not value:
        return "Pending"
    return " ".join(segment[:1].upper() + segment[1:] for segment in re.sub(r"[_-]+", " ", value).split())
