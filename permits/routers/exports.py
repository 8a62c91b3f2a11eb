import logging

from fastapi import APIRouter, Depends, Request, Response

from permits import dependencies, documents, export, util
from permits.auth import AuthenticatedUser
from permits.context import Context
from permits.exceptions import TemplateUnavailable
from permits.parsers import ExportRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/api/export/docx",
    tags=[util.Tags.export],
)
async def export_docx(
    payload: ExportRequest,
    request: Request,
    context: Context = Depends(dependencies.get_context),
    user: AuthenticatedUser = Depends(dependencies.get_export_user),
) -> Response:
    """
    Fill in the business permit application form, or only the sworn document, as DOCX.

    :param payload: The application to export.
    :return: The DOCX document as an attachment.
    """
    file_name, content = await export.export_docx(
        context, payload.application_id, sworn_only=payload.sworn_only, origin=util.get_public_origin(request)
    )
    return Response(content=content, media_type=documents.DOCX_MEDIA_TYPE, headers=util.content_disposition(file_name))


@router.post(
    "/api/export/docx-to-pdf",
    tags=[util.Tags.export],
)
async def export_pdf(
    payload: ExportRequest,
    request: Request,
    context: Context = Depends(dependencies.get_context),
    user: AuthenticatedUser = Depends(dependencies.get_export_user),
) -> Response:
    """
    Fill in the business permit application form and the sworn document, or only the sworn document, as one PDF.

    The ``X-Preview-Cache`` response header is HIT if the PDF was read from the cache, MISS if it was rendered and
    cached, and BYPASS if the cache is unavailable.

    :param payload: The application to export.
    :return: The PDF document as an attachment.
    """
    file_name, content, cache_status = await export.export_pdf(
        context, payload.application_id, sworn_only=payload.sworn_only, origin=util.get_public_origin(request)
    )
    return Response(
        content=content,
        media_type="application/pdf",
        headers={**util.content_disposition(file_name), "X-Preview-Cache": cache_status},
    )


@router.post(
    "/api/export/application-docs",
    tags=[util.Tags.export],
)
async def export_application_docs(
    payload: ExportRequest,
    request: Request,
    context: Context = Depends(dependencies.get_context),
    user: AuthenticatedUser = Depends(dependencies.get_export_user),
) -> Response:
    """
    Fill in the business permit application form and the sworn document, as a ZIP archive of DOCX documents.

    :param payload: The application to export.
    :return: The ZIP archive as an attachment.
    """
    file_name, content = await export.export_application_docs(
        context, payload.application_id, origin=util.get_public_origin(request)
    )
    return Response(content=content, media_type="application/zip", headers=util.content_disposition(file_name))


@router.get(
    "/api/export/clearance-template",
    tags=[util.Tags.export],
)
async def get_clearance_template(
    context: Context = Depends(dependencies.get_context),
) -> Response:
    """
    Download the blank Mayor's clearance spreadsheet.
    """
    content = context.templates.read_local(documents.CLEARANCE_XLSX)
    if content is None:
        raise TemplateUnavailable("Template file not found on server")
    return Response(
        content=content,
        media_type=documents.XLSX_MEDIA_TYPE,
        headers={
            **util.content_disposition(documents.CLEARANCE_XLSX),
            "Cache-Control": "public, max-age=86400",
        },
    )
