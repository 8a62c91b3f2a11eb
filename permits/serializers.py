# Field names are camelCase in responses, like in the database.

from pydantic import BaseModel

from permits.models import ApplicationType, CamelModel, ManagedRole, ManagedUser


class ApplicationSummary(CamelModel):
    id: str
    applicant_name: str
    business_name: str
    application_type: ApplicationType
    #: The overall status, else the stored status.
    status: str
    application_date: str | None = None
    submitted_at: int | float | None = None


class ApplicationListResponse(BaseModel):
    applications: list[ApplicationSummary]


class ClearanceSummary(CamelModel):
    id: str
    applicant_uid: str
    applicant_name: str
    purpose: str
    status: str
    application_date: str | int | float | None = None
    submitted_at: int | float | None = None
    thread_id: str


class ClearanceListResponse(BaseModel):
    applications: list[ClearanceSummary]


class DeletedApplicationsResponse(BaseModel):
    success: bool
    ids: list[str]


class ManagedUserResponse(BaseModel):
    role: ManagedRole
    user: ManagedUser


class ManagedUserListResponse(BaseModel):
    role: ManagedRole
    users: list[ManagedUser]


class ManagedUsersByRoleResponse(BaseModel):
    staff: list[ManagedUser]
    treasury: list[ManagedUser]


class DeletedUserResponse(BaseModel):
    success: bool
    role: ManagedRole
    id: str


class TreasuryAssessmentResponse(BaseModel):
    uid: str
