from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # The frontend and the database use camelCase keys.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RequirementFileStatus(StrEnum):
    PENDING = "pending"
    UPDATED = "updated"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def from_legacy(cls, value: Any) -> Self | None:
        """
        Classify a free-text file status, as written by older clients.

        The checks are ordered: empty, "updated" and anything containing "pending" are pending; then anything
        containing "reject" is rejected; then anything containing "approve" is approved. A status like
        "not approved" is therefore classified as approved.

        :return: The status, or None if the text matches none of the checks.
        """
        text = "" if value is None else str(value).lower()
        if not text or "pending" in text:
            return cls.PENDING
        if text == "updated":
            return cls.UPDATED
        if "reject" in text:
            return cls.REJECTED
        if "approve" in text:
            return cls.APPROVED
        return None

    @property
    def awaiting_review(self) -> bool:
        return self in (RequirementFileStatus.PENDING, RequirementFileStatus.UPDATED)


class RequirementState(StrEnum):
    PENDING = "pending"
    REJECTED = "rejected"
    APPROVED = "approved"


class OverallStatus(StrEnum):
    PENDING_REVIEW = "Pending Review"
    APPROVED = "Approved"
    INCOMPLETE = "Incomplete"


class ApplicationType(StrEnum):
    NEW = "New"
    RENEWAL = "Renewal"


class ManagedRole(StrEnum):
    STAFF = "staff"
    TREASURY = "treasury"


class RequirementFile(CamelModel):
    id: str
    download_url: str = ""
    status: str = ""
    admin_note: str = ""
    storage_path: str = ""
    uploaded_at: int | float | None = None
    file_name: str = ""
    file_size: int | float | str = 0
    file_hash: str = ""

    @property
    def classified_status(self) -> RequirementFileStatus | None:
        return RequirementFileStatus.from_legacy(self.status)


class ChatMessage(CamelModel):
    id: str
    sender_role: str = ""
    sender_uid: str = ""
    text: str = ""
    sent_at: int | float | None = None


class BusinessRequirement(CamelModel):
    id: str
    name: str
    files: list[RequirementFile] = Field(default_factory=list)
    chat: list[ChatMessage] = Field(default_factory=list)
    state: RequirementState = RequirementState.PENDING


class BusinessApplicationRecord(CamelModel):
    id: str
    applicant_uid: str | None = None
    applicant_name: str = ""
    business_name: str = ""
    application_type: ApplicationType = ApplicationType.NEW
    application_date: str = ""
    #: The derived overall status, or the stored fallback (possibly empty) if it cannot be derived.
    overall_status: str = ""
    status: str = ""
    submitted_at: int | float | None = None
    approved_at: int | float | None = None
    form: dict[str, Any] = Field(default_factory=dict)
    requirements: list[BusinessRequirement] = Field(default_factory=list)
    chat: list[ChatMessage] = Field(default_factory=list)


class ClearanceApplicationRecord(CamelModel):
    id: str
    applicant_uid: str = ""
    applicant_name: str = ""
    application_date: str | int | float = ""
    purpose: str = ""
    overall_status: str = ""
    status: str = ""
    submitted_at: int | float | None = None
    thread_id: str = ""
    form: dict[str, Any] = Field(default_factory=dict)
    requirements: list[BusinessRequirement] = Field(default_factory=list)


# Treasury records use snake_case keys in the database.


class FeeLine(BaseModel):
    amount: int | float | None = None
    penalty: int | float | None = None
    total: int | float | None = None


class AdditionalFee(FeeLine):
    name: str = ""


class TreasuryAssessmentRecord(BaseModel):
    uid: str
    application_uid: str
    client_uid: str = ""
    cedula_no: str = ""
    cedula_issued_at: int | float | None = None
    or_no: str = ""
    or_issued_at: int | float | None = None
    fees: dict[str, FeeLine] = Field(default_factory=dict)
    additional_fees: list[AdditionalFee] = Field(default_factory=list)
    lgu_total: int | float = 0
    grand_total: int | float = 0
    staff_uid: str | None = None
    staff_email: str | None = None
    created_at: int | float = Field(default=0, alias="createdAt")
    updated_at: int | float | None = Field(default=None, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def recency(self) -> int | float:
        return self.updated_at if self.updated_at is not None else self.created_at


class ManagedUser(CamelModel):
    id: str
    first_name: str = ""
    middle_name: str | None = None
    last_name: str = ""
    email: str = ""
    status: str | None = None
    email_verified: bool = False
    uid: str | None = None
    created_at: int | float | None = None
    updated_at: int | float | None = None

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def sort_key(self) -> str:
        return f"{self.last_name} {self.first_name}".strip().lower()
