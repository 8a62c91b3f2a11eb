"""
Export of business applications as filled-in forms: DOCX, PDF, or a ZIP of the main form and the sworn document.
"""

import logging
from dataclasses import dataclass
from typing import Any

from permits import applications, documents, treasury, util
from permits.cache import CacheStatus, preview_cache_key
from permits.context import Context
from permits.exceptions import NotFoundError, PermitsError
from permits.templating import map_application_to_template

logger = logging.getLogger(__name__)

SWORN_FILE_NAMES = {
    documents.SWORN_CAPITAL: "Sworn_Statement_of_Capital",
    documents.SWORN_GROSS: "Sworn_Declaration_of_Gross_Receipts",
}


@dataclass
class Export:
    application_id: str
    form: dict[str, Any]
    #: The template placeholders
    data: dict[str, Any]

    @property
    def sworn_template(self) -> str:
        return documents.sworn_template_for(self.form.get("applicationType"))

    def file_name(self, suffix: str, extension: str) -> str:
        """
        Return a file name like ``Acme_Trading_Business_Application.pdf``.
        """
        name = documents.sanitize_business_name(self.form.get("businessName"))
        return f"{name}_{suffix}.{extension}"

    def document_name(self, template: str, extension: str) -> str:
        return self.file_name(SWORN_FILE_NAMES.get(template, "Business_Application"), extension)


def prepare(context: Context, application_id: str) -> Export:
    """
    Read an application and its latest treasury assessment, and map them to template placeholders.

    The export proceeds without fees if the assessment cannot be read.

    :raises NotFoundError: If the application doesn't exist.
    """
    application = context.database.get(f"{applications.BUSINESS_APPLICATION_PATH}/{application_id}")
    if application is None:
        raise NotFoundError("Application not found")

    form = util.as_dict(util.as_dict(application).get("form"))

    assessment = None
    try:
        assessment = treasury.fetch_latest_assessment(
            context.database, treasury.resolve_client_uids(application_id, application)
        )
    except PermitsError:
        logger.warning("Failed to load treasury assessment of application %s", application_id, exc_info=True)

    return Export(application_id=application_id, form=form, data=map_application_to_template(form, assessment))


async def render(context: Context, export: Export, template: str, origin: str | None = None) -> bytes:
    return documents.render_docx(await context.templates.load(template, origin), export.data)


async def export_docx(
    context: Context, application_id: str, *, sworn_only: bool = False, origin: str | None = None
) -> tuple[str, bytes]:
    """
    :return: The file name and the DOCX document: the main form, or only the sworn document.
    """
    export = prepare(context, application_id)
    template = export.sworn_template if sworn_only else documents.MAIN_FORM
    return export.document_name(template, "docx"), await render(context, export, template, origin)


async def export_application_docs(
    context: Context, application_id: str, *, origin: str | None = None
) -> tuple[str, bytes]:
    """
    :return: The file name and a ZIP archive of the main form and the sworn document, as DOCX.
    """
    export = prepare(context, application_id)
    files = {}
    for template in (documents.MAIN_FORM, export.sworn_template):
        files[export.document_name(template, "docx")] = await render(context, export, template, origin)
    return export.file_name("Application_Documents", "zip"), documents.build_zip(files)


async def _append_sworn_pdf(context: Context, export: Export, pdf: bytes, origin: str | None) -> bytes:
    try:
        docx = await render(context, export, export.sworn_template, origin)
        sworn = await context.converter.docx_to_pdf(docx, origin)
        return documents.merge_pdfs([pdf, sworn])
    except PermitsError:
        logger.warning(
            "Failed to add sworn document to application %s, returning main form only",
            export.application_id,
            exc_info=True,
        )
        return pdf


async def export_pdf(
    context: Context, application_id: str, *, sworn_only: bool = False, origin: str | None = None
) -> tuple[str, bytes, CacheStatus]:
    """
    Render and convert the main form followed by the sworn document, or only the sworn document.

    If the sworn document fails, only the main form is returned. Results are cached by the template placeholders, so
    that an unchanged application is not converted again.

    :return: The file name, the PDF document, and whether it was read from the cache.
    :raises ConverterUnavailable: If no converter backend produced the main PDF.
    """
    export = prepare(context, application_id)
    template = export.sworn_template if sworn_only else documents.MAIN_FORM
    file_name = export.document_name(template, "pdf")

    key = preview_cache_key(
        cache_version=context.settings.preview_cache_version,
        application_id=application_id,
        sworn_only=sworn_only,
        template_data=export.data,
    )
    cache_status, cached = await context.cache.get(key)
    if cached is not None:
        return file_name, cached, cache_status

    pdf = await context.converter.docx_to_pdf(await render(context, export, template, origin), origin)
    if not sworn_only:
        pdf = await _append_sworn_pdf(context, export, pdf, origin)

    await context.cache.set(key, pdf)
    return file_name, pdf, cache_status
