import asyncio
import inspect
import itertools
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click
import typer.cli
from fastapi.params import Depends, Header
from rich.console import Console
from rich.table import Table

from permits import applications, export, main
from permits.context import Context, build_context
from permits.exceptions import PermitsError
from permits.settings import app_settings
from permits.templating import convert_amount_to_words

if TYPE_CHECKING:
    from fastapi.routing import APIRoute
    from starlette.routing import Route

T = TypeVar("T")

state = {"quiet": False}


class OrderedGroup(typer.cli.TyperCLIGroup):
    # https://github.com/fastapi/typer/blob/adca3254f8c2adc8d9b71b5cdea65c41770bd9b9/typer/cli.py#L55-L57
    # https://github.com/pallets/click/blob/e16088a8569597c55f108ea89af6245898249ec2/src/click/core.py#L1684-L1686
    def list_commands(self, ctx: click.Context) -> list[str]:
        self.maybe_add_run(ctx)
        return list(self.commands)


class ExportFormat(str, Enum):
    docx = "docx"
    pdf = "pdf"
    zip = "zip"


console = Console()
app = typer.Typer(cls=OrderedGroup)
dev = typer.Typer()
app.add_typer(dev, name="dev", help="Commands for maintainers.")


def _run(function: Callable[[Context], Awaitable[T]]) -> T:
    async def run() -> T:
        context = build_context(app_settings)
        try:
            return await function(context)
        finally:
            await context.aclose()

    try:
        return asyncio.run(run())
    except PermitsError as e:
        raise click.ClickException(f"{e.message} ({e.cause})" if e.cause else e.message) from e


@app.command()
def application_status(application_id: str) -> None:
    """
    Print the overall status of a business application, and the state of each requirement.
    """

    async def fetch(context: Context) -> Any:
        return context.database.get(f"{applications.BUSINESS_APPLICATION_PATH}/{application_id}")

    payload = _run(fetch)
    if payload is None:
        raise click.ClickException(f"Application {application_id} not found")

    record = applications.normalize_business_application(application_id, payload)
    console.print(f"{record.business_name or record.applicant_name}: {record.overall_status or 'Pending'}")

    table = Table("Requirement", "State", "Files")
    for requirement in record.requirements:
        table.add_row(requirement.name, requirement.state, str(len(requirement.files)))
    console.print(table)


@app.command("export")
def export_application(
    application_id: str,
    file_format: ExportFormat = typer.Option(ExportFormat.pdf, "--format"),
    sworn_only: bool = typer.Option(False, "--sworn-only"),  # noqa: FBT003 # false positive
    output: Path | None = typer.Option(None, help="File to write, instead of the default file name."),
) -> None:
    """
    Export a business application, like the export API does.

    \b
    -  docx: the main form, or the sworn document with --sworn-only
    -  pdf: the main form followed by the sworn document, or the sworn document with --sworn-only
    -  zip: the main form and the sworn document, as DOCX
    """

    async def render(context: Context) -> tuple[str, bytes]:
        match file_format:
            case ExportFormat.docx:
                return await export.export_docx(context, application_id, sworn_only=sworn_only)
            case ExportFormat.pdf:
                file_name, content, _ = await export.export_pdf(context, application_id, sworn_only=sworn_only)
                return file_name, content
            case ExportFormat.zip:
                return await export.export_application_docs(context, application_id)
            case _:
                raise NotImplementedError

    file_name, content = _run(render)
    path = output or Path(file_name)
    path.write_bytes(content)
    if not state["quiet"]:
        console.print(f"Wrote {path} ({len(content)} bytes)")


@app.command()
def amount_in_words(amount: str) -> None:
    """
    Print an amount of money in words, as on the sworn documents.
    """
    console.print(convert_amount_to_words(amount))


@dev.command()
def routes() -> None:
    """Print a table of routes."""

    def _pretty(model: Any, expected: str) -> str:
        if model is None:
            return ""
        module, name = getattr(model, "__module__", ""), getattr(model, "__name__", str(model))
        if module == expected:
            return str(name)
        return f"{module.replace('permits.', '')}.{name}" if module.startswith("permits.") else str(model)

    table = Table("Methods", "Path", "Parsers", "Serializers")
    for route in main.app.routes:
        if TYPE_CHECKING:
            assert isinstance(route, APIRoute | Route)

        # Skip default OpenAPI routes.
        if route.endpoint.__module__.startswith("fastapi."):
            continue

        if body_field := getattr(route, "body_field", None):  # POST, PATCH, DELETE
            request = _pretty(body_field.type_, "permits.parsers")
        else:  # GET
            spec = inspect.getfullargspec(route.endpoint)
            request = ", ".join(
                arg
                for arg, default in itertools.zip_longest(reversed(spec.args), reversed(spec.defaults or []))
                if not isinstance(default, Depends | Header)
            )

        response = _pretty(getattr(route, "response_model", None), "permits.serializers")
        table.add_row(", ".join(sorted(route.methods or [])), route.path, request, response)
    console.print(table)


# https://typer.tiangolo.com/tutorial/commands/callback/
@app.callback()
def cli(*, quiet: bool = typer.Option(False, "--quiet", "-q")) -> None:  # noqa: FBT003 # false positive
    if quiet:
        state["quiet"] = True


if __name__ == "__main__":
    app()
