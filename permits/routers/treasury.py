from typing import Any

from fastapi import APIRouter, Body, Depends

from permits import applications, dependencies, serializers, treasury, util
from permits.auth import AuthenticatedUser
from permits.context import Context
from permits.exceptions import NotFoundError
from permits.models import TreasuryAssessmentRecord

router = APIRouter()


@router.post(
    "/api/treasury/fees",
    tags=[util.Tags.treasury],
)
async def save_fees(
    payload: dict[str, Any] = Body(),
    context: Context = Depends(dependencies.get_context),
    user: AuthenticatedUser = Depends(dependencies.get_treasury_user),
) -> serializers.TreasuryAssessmentResponse:
    """
    Create or update the fee assessment of an application.

    Fee amounts may be numbers or numeric strings. The staff UID and email default to the authenticated account's.

    :param payload: The assessment, with ``applicationUid``, ``cedulaNumber``, ``officialReceiptNumber``, ``fees``,
                    ``additionalFees``, and optionally ``lguTotal`` and ``grandTotal``.
    :return: The key of the assessment.
    """
    uid = treasury.save_assessment(context.database, payload, staff_uid=user.uid, staff_email=user.email)
    return serializers.TreasuryAssessmentResponse(uid=uid)


@router.get(
    "/api/treasury/fees/{application_id}",
    tags=[util.Tags.treasury],
)
async def get_fees(
    application_id: str,
    context: Context = Depends(dependencies.get_context),
    user: AuthenticatedUser = Depends(dependencies.get_treasury_user),
) -> TreasuryAssessmentRecord:
    """
    Return the latest fee assessment of an application.

    If the application exists, assessments stored under its applicant's UID are also considered.
    """
    application = context.database.get(f"{applications.BUSINESS_APPLICATION_PATH}/{application_id}")
    assessment = treasury.fetch_latest_assessment(
        context.database, treasury.resolve_client_uids(application_id, application)
    )
    if assessment is None:
        raise NotFoundError("Treasury assessment not found")
    return assessment
