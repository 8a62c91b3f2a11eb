import asyncio
import io
import os
import zipfile

import httpx
import pytest

from permits import documents
from permits.exceptions import RenderError, TemplateUnavailable
from permits.templating import map_application_to_template
from tests import TEMPLATES_DIR, blank_pdf, docx_template, docx_text, pdf_pages

form = {
    "applicationType": "New",
    "firstName": "Juan",
    "lastName": "Dela Cruz",
    "businessName": "JDC Bakery",
    "activities": [
        {"lineOfBusiness": "Bakery", "capitalization": "25000"},
        {"lineOfBusiness": "Cafe", "capitalization": "5000"},
    ],
}


def read_template(name):
    with open(os.path.join(TEMPLATES_DIR, name), "rb") as f:
        return f.read()


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("New", documents.SWORN_CAPITAL),
        (" new ", documents.SWORN_CAPITAL),
        ("Renewal", documents.SWORN_GROSS),
        (None, documents.SWORN_GROSS),
    ],
)
def test_sworn_template_for(value, expected):
    assert documents.sworn_template_for(value) == expected


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Acme Trading", "Acme_Trading"),
        ("  Juan's  Bakery & Cafe ", "Juans_Bakery_Cafe"),
        ("Sari-Sari Store", "Sari-Sari_Store"),
        ("ñ!@#", "Application"),
        (None, "Application"),
    ],
)
def test_sanitize_business_name(value, expected):
    assert documents.sanitize_business_name(value) == expected


def test_render_main_form():
    content = documents.render_docx(read_template(documents.MAIN_FORM), map_application_to_template(form))

    text = docx_text(content)
    assert "☑ New" in text
    assert "☐ Renewal" in text
    assert "Business Name: JDC Bakery" in text
    assert "Juan Dela Cruz" in text
    assert "Bakery" in text
    assert "25,000" in text
    assert "30,000" in text
    assert "{{" not in text
    assert "{%" not in text


def test_render_sworn_statement():
    data = map_application_to_template(form)

    text = docx_text(documents.render_docx(read_template(documents.SWORN_CAPITAL), data))

    assert "That the capital invested in the said business is Thirty Thousand (PHP 30,000)" in text
    assert "Cafe" in text


def test_render_malformed_tag():
    with pytest.raises(RenderError) as excinfo:
        documents.render_docx(docx_template("{{ businessName "), {"businessName": "Acme"})

    assert excinfo.value.message == "Failed to render template"


@pytest.mark.parametrize("name", [documents.MAIN_FORM, documents.SWORN_CAPITAL, documents.SWORN_GROSS])
def test_render_without_data(name):
    text = docx_text(documents.render_docx(read_template(name), {}))

    assert "{{" not in text
    assert "{%" not in text


def test_render_escapes_values():
    template = docx_template("Business Name: {{ businessName }}", "Address: {{ businessAddress }}")

    text = docx_text(documents.render_docx(template, {"businessName": "Smith & Sons <Trading>"}))

    assert "Business Name: Smith & Sons <Trading>" in text
    assert text.splitlines()[1].strip() == "Address:"


def test_render_line_breaks():
    data = {"businessAddress": "Lot 1 & 2\nPoblacion"}

    content = documents.render_docx(docx_template("{{ businessAddress }}"), data)

    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        xml = archive.read("word/document.xml").decode()
    assert "Lot 1 &amp; 2" in xml
    assert "<w:br/>" in xml
    assert "Poblacion" in xml


def test_render_unsupported_table():
    with pytest.raises(RenderError) as excinfo:
        documents.render_docx(docx_template("{{ businessName }}", gridless_table=True), {"businessName": "Acme"})

    assert isinstance(excinfo.value.cause, AttributeError)


def test_render_invalid_template():
    with pytest.raises(RenderError):
        documents.render_docx(b"not a zip file", {})


def test_merge_pdfs():
    assert pdf_pages(documents.merge_pdfs([blank_pdf(2), blank_pdf(1)])) == 3


def test_merge_invalid_pdf():
    with pytest.raises(RenderError):
        documents.merge_pdfs([blank_pdf(), b"not a pdf"])


def test_build_zip():
    content = documents.build_zip({"a.docx": b"a", "b.docx": b"b"})

    with zipfile.ZipFile(io.BytesIO(content)) as archive:
        assert archive.namelist() == ["a.docx", "b.docx"]
        assert archive.read("b.docx") == b"b"


def test_load_local_template():
    loader = documents.TemplateLoader(TEMPLATES_DIR, httpx.AsyncClient())

    assert asyncio.run(loader.load(documents.MAIN_FORM)) == read_template(documents.MAIN_FORM)
    assert loader.read_local("missing.docx") is None


def test_load_template_from_origin(tmp_path):
    requests = []

    def handler(request):
        requests.append(str(request.url))
        return httpx.Response(200, content=b"remote")

    loader = documents.TemplateLoader(str(tmp_path), httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert asyncio.run(loader.load("form.docx", "https://permits.example.com/")) == b"remote"
    assert requests == ["https://permits.example.com/templates/form.docx"]


def test_load_missing_template(tmp_path):
    loader = documents.TemplateLoader(
        str(tmp_path), httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))
    )

    with pytest.raises(TemplateUnavailable) as excinfo:
        asyncio.run(loader.load("form.docx"))
    assert excinfo.value.message == "Template not found: form.docx"

    with pytest.raises(TemplateUnavailable):
        asyncio.run(loader.load("form.docx", "https://permits.example.com"))
