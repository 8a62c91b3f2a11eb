"""
Loading and rendering of document templates, and packaging of the rendered documents.
"""

import io
import logging
import os.path
import re
import zipfile
from typing import Any

import httpx
import jinja2
from docxtpl import DocxTemplate
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from permits.exceptions import RenderError, TemplateUnavailable

logger = logging.getLogger(__name__)

MAIN_FORM = "2025_new_business_form_template_with_tags_v2.docx"
SWORN_CAPITAL = "Sworn_Statement_of_Capital.docx"
SWORN_GROSS = "Sworn_Declaration_of_Gross_receipt.docx"
CLEARANCE_XLSX = "2026 Mayor's Clearance.xlsx"

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def sworn_template_for(application_type: Any) -> str:
    """
    New businesses declare their capital. Renewing businesses declare their gross receipts.
    """
    if str(application_type or "").strip().lower() == "new":
        return SWORN_CAPITAL
    return SWORN_GROSS


def sanitize_business_name(value: Any) -> str:
    """
    Return the business name without characters that are unsafe in file names, with underscores for spaces, or
    "Application" if no characters remain.
    """
    name = re.sub(r"[^a-zA-Z0-9\s-]", "", str(value or "")).strip()
    return re.sub(r"\s+", "_", name) or "Application"


class TemplateLoader:
    """
    Load templates from the templates directory, or else from the ``/templates/`` path of the request's public origin
    (for deployments that serve the templates as static files).
    """

    def __init__(self, templates_dir: str, client: httpx.AsyncClient):
        #: The directory containing the templates
        self.templates_dir = templates_dir
        self.client = client

    def path(self, name: str) -> str:
        return os.path.join(self.templates_dir, name)

    def read_local(self, name: str) -> bytes | None:
        path = self.path(name)
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    async def load(self, name: str, origin: str | None = None) -> bytes:
        """
        :param name: The file name of the template.
        :param origin: The public origin of the current request.
        :return: The contents of the template.
        :raises TemplateUnavailable: If the template is neither in the directory nor at the origin.
        """
        if (content := self.read_local(name)) is not None:
            return content

        if not origin:
            raise TemplateUnavailable(f"Template not found: {name}", cause=f"{self.path(name)} does not exist")

        url = f"{origin.rstrip('/')}/templates/{name}"
        try:
            response = await self.client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Unable to fetch template %s: %r", url, e)
            raise TemplateUnavailable(f"Template not found: {name}", cause=e) from e
        return response.content


#: Placeholders without a value, or attributes of them, render as blanks. Values are XML-escaped.
jinja_env = jinja2.Environment(undefined=jinja2.ChainableUndefined, autoescape=True)


def render_docx(template: bytes, data: dict[str, Any]) -> bytes:
    """
    Render a DOCX template with Jinja tags, like ``{{ businessName }}`` or ``{%tr for a in activities %}``.

    Line breaks in values are kept as line breaks in the document.

    :raises RenderError: If the template cannot be rendered, for example if it is not a DOCX file.
    """
    try:
        document = DocxTemplate(io.BytesIO(template))
        document.render(data, jinja_env, autoescape=True)
        output = io.BytesIO()
        document.save(output)
    except Exception as e:
        raise RenderError("Failed to render template", cause=e) from e
    return output.getvalue()


def merge_pdfs(documents: list[bytes]) -> bytes:
    """
    Concatenate the pages of PDF documents, in order.

    :raises RenderError: If a document is not a PDF.
    """
    writer = PdfWriter()
    try:
        for document in documents:
            writer.append(PdfReader(io.BytesIO(document)))
    except (PyPdfError, ValueError) as e:
        raise RenderError("Failed to merge PDF documents", cause=e) from e

    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


def build_zip(files: dict[str, bytes]) -> bytes:
    """
    :param files: The contents of each file, by file name.
    """
    output = io.BytesIO()
    with zipfile.ZipFile(output, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return output.getvalue()
