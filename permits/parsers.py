from pydantic import Field

from permits.models import CamelModel


class ExportRequest(CamelModel):
    application_id: str = Field(min_length=1)
    #: Export only the sworn document.
    sworn_only: bool = False


# Account fields are normalized by permits.accounts, which distinguishes absent fields from empty ones.
class ManagedUserChange(CamelModel):
    role: str | None = None
    id: str | None = None
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None
    status: str | None = None
    email_verified: bool | str | None = None


class ManagedUserDeletion(CamelModel):
    role: str | None = None
    id: str | None = None


class ApplicationDeletion(CamelModel):
    id: str | None = None
    ids: list[str] = Field(default_factory=list)
