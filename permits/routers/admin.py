from fastapi import APIRouter, Depends, Query

from permits import accounts, applications, clearances, dependencies, serializers, util
from permits.auth import AuthenticatedUser
from permits.context import Context
from permits.exceptions import NotFoundError, ValidationError
from permits.models import BusinessApplicationRecord, ManagedRole
from permits.parsers import ApplicationDeletion, ManagedUserChange, ManagedUserDeletion

router = APIRouter()


@router.get(
    "/api/admin/users",
    tags=[util.Tags.admin],
)
async def list_users(
    role: str | None = Query(default=None),
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.ManagedUserListResponse | serializers.ManagedUsersByRoleResponse:
    """
    List the staff and treasury accounts, sorted by last name, then first name.

    :param role: Either "staff" or "treasury", to list the accounts with that role only.
    """
    namespace = context.settings.database_namespace
    if role is not None:
        if (managed_role := accounts.parse_role(role)) is None:
            raise ValidationError("Invalid role. Use staff or treasury.")
        return serializers.ManagedUserListResponse(
            role=managed_role, users=accounts.list_users(context.database, namespace, managed_role)
        )

    return serializers.ManagedUsersByRoleResponse(
        staff=accounts.list_users(context.database, namespace, ManagedRole.STAFF),
        treasury=accounts.list_users(context.database, namespace, ManagedRole.TREASURY),
    )


@router.post(
    "/api/admin/users",
    tags=[util.Tags.admin],
)
async def create_user(
    payload: ManagedUserChange,
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.ManagedUserResponse:
    """
    Create a staff or treasury account, with a Firebase Auth user that can sign in with the password.
    """
    role, user = accounts.create_user(
        context.database,
        context.identity,
        context.settings.database_namespace,
        payload.model_dump(by_alias=True, exclude_unset=True),
        admin_email=admin.email,
    )
    return serializers.ManagedUserResponse(role=role, user=user)


@router.patch(
    "/api/admin/users",
    tags=[util.Tags.admin],
)
async def update_user(
    payload: ManagedUserChange,
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.ManagedUserResponse:
    """
    Update a staff or treasury account, and its Firebase Auth user.
    """
    role, user = accounts.update_user(
        context.database,
        context.identity,
        context.settings.database_namespace,
        payload.model_dump(by_alias=True, exclude_unset=True),
        admin_email=admin.email,
    )
    return serializers.ManagedUserResponse(role=role, user=user)


@router.delete(
    "/api/admin/users",
    tags=[util.Tags.admin],
)
async def delete_user(
    payload: ManagedUserDeletion,
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.DeletedUserResponse:
    role, key = accounts.delete_user(
        context.database,
        context.identity,
        context.settings.database_namespace,
        payload.model_dump(by_alias=True, exclude_unset=True),
    )
    return serializers.DeletedUserResponse(success=True, role=role, id=key)


@router.get(
    "/api/admin/business-applications",
    tags=[util.Tags.admin],
)
async def list_business_applications(
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.ApplicationListResponse:
    """
    List the business applications, most recently submitted first.
    """
    node = util.as_dict(context.database.get(applications.BUSINESS_APPLICATION_PATH))
    summaries = []
    for key, payload in node.items():
        record = applications.normalize_business_application(key, payload)
        summaries.append(
            serializers.ApplicationSummary(
                id=record.id,
                applicant_name=record.applicant_name,
                business_name=record.business_name,
                application_type=record.application_type,
                status=record.overall_status or record.status,
                application_date=record.application_date or None,
                submitted_at=record.submitted_at,
            )
        )
    summaries.sort(key=lambda summary: summary.submitted_at or 0, reverse=True)
    return serializers.ApplicationListResponse(applications=summaries)


@router.get(
    "/api/admin/business-applications/{id}",
    tags=[util.Tags.admin],
)
async def get_business_application(
    id: str,
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> BusinessApplicationRecord:
    payload = context.database.get(f"{applications.BUSINESS_APPLICATION_PATH}/{id}")
    if payload is None:
        raise NotFoundError("Application not found")
    return applications.normalize_business_application(id, payload)


@router.delete(
    "/api/admin/business-applications",
    tags=[util.Tags.admin],
)
async def delete_business_applications(
    payload: ApplicationDeletion,
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.DeletedApplicationsResponse:
    """
    Delete one application (``id``) or several (``ids``).
    """
    candidates = [payload.id or "", *payload.ids]
    ids = [key for key in dict.fromkeys(candidate.strip() for candidate in candidates) if key]
    if not ids:
        raise ValidationError("Application id is required.")

    for key in ids:
        context.database.delete(f"{applications.BUSINESS_APPLICATION_PATH}/{key}")
    return serializers.DeletedApplicationsResponse(success=True, ids=ids)


@router.get(
    "/api/admin/clearance-applications",
    tags=[util.Tags.admin],
)
async def list_clearance_applications(
    context: Context = Depends(dependencies.get_context),
    admin: AuthenticatedUser = Depends(dependencies.get_admin_user),
) -> serializers.ClearanceListResponse:
    """
    List the Mayor's clearance applications, most recently submitted first.
    """
    node = util.as_dict(context.database.get(clearances.MAYORS_CLEARANCE_PATH))
    summaries = []
    for key, payload in node.items():
        record = clearances.normalize_clearance_application(key, payload)
        summaries.append(
            serializers.ClearanceSummary(
                id=record.id,
                applicant_uid=record.applicant_uid,
                applicant_name=record.applicant_name,
                purpose=record.purpose,
                status=record.overall_status or record.status,
                application_date=record.application_date or None,
                submitted_at=record.submitted_at,
                thread_id=record.thread_id,
            )
        )
    summaries.sort(key=lambda summary: summary.submitted_at or 0, reverse=True)
    return serializers.ClearanceListResponse(applications=summaries)
