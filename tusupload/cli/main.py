"""tusupload CLI - Main commands."""
import asyncio
import mimetypes
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.table import Table

app = typer.Typer(
    name="tusupload",
    help="Resumable TUS upload client",
    add_completion=False
)
console = Console()


def run_async(coro):
    """Run async function."""
    return asyncio.run(coro)


def load_config(base_url: Optional[str]):
    """Config from TUSUPLOAD_* variables, with an optional base URL override."""
    from tusupload import APIConfig

    try:
        config = APIConfig.from_env()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if base_url:
        config.base_url = base_url
    return config


def build_metadata(
    resource: str,
    file_path: Path,
    name: Optional[str],
    semester: int,
    tipe: Optional[str] = None,
    kategori: Optional[str] = None,
):
    """
    Build upload metadata from command options.

    Names default to the file stem; modul type defaults to the extension.
    """
    from tusupload import ModulMetadata, ProjectMetadata, ResourceType

    display_name = name or file_path.stem

    if ResourceType(resource) is ResourceType.MODUL:
        return ModulMetadata(
            nama_file=display_name,
            tipe=tipe or file_path.suffix.lstrip('.').lower(),
            semester=semester,
        )

    return ProjectMetadata(
        nama_project=display_name,
        kategori=kategori or '',
        semester=semester,
        filename=file_path.name,
        filetype=mimetypes.guess_type(file_path.name)[0] or 'application/zip',
    )


def print_error(error) -> None:
    from tusupload.core.api.errors import format_error_message

    console.print(f"[red]{format_error_message(error)}[/red]")
    for field_error in error.field_errors:
        console.print(f"  [yellow]{field_error.field}[/yellow]: {field_error.message}")


@app.command()
def upload(
    file_path: Path = typer.Argument(..., help="Local file to upload", exists=True),
    resource: str = typer.Option("modul", "--resource", "-r", help="Resource type: project or modul"),
    name: str = typer.Option(None, "--name", "-n", help="Project or modul name (default: file name)"),
    semester: int = typer.Option(1, "--semester", "-s", help="Semester (1-8)"),
    tipe: str = typer.Option(None, "--tipe", help="Modul type: docx, xlsx, pdf or pptx"),
    kategori: str = typer.Option(None, "--kategori", "-k", help="Project category"),
    update_id: int = typer.Option(None, "--update", help="Replace the file of an existing resource"),
    metadata_changed: bool = typer.Option(False, "--metadata-changed", help="Send metadata with a project update"),
    poll: bool = typer.Option(False, "--poll", help="Wait for a free upload slot"),
    token: str = typer.Option(None, "--token", envvar="TUSUPLOAD_TOKEN", help="Bearer token"),
    base_url: str = typer.Option(None, "--base-url", help="API base URL"),
):
    """Upload a project archive or modul document."""
    from tusupload import UploadCallbacks, UploadManager, UploadState, TUSError, ProgressFormatter

    config = load_config(base_url)
    metadata = build_metadata(resource, file_path, name, semester, tipe=tipe, kategori=kategori)

    async def do_upload():
        async with UploadManager(config=config, token_provider=lambda: token) as manager:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[speed]}"),
                console=console
            ) as progress:
                task = progress.add_task(f"Uploading {file_path.name}", total=100, speed="")

                def on_progress(p):
                    progress.update(
                        task,
                        completed=p.percentage,
                        speed=ProgressFormatter.format_speed(p.speed)
                    )

                try:
                    upload_id = await manager.start_upload(
                        file_path,
                        f"/{resource}/upload",
                        metadata=metadata,
                        metadata_type=resource,
                        callbacks=UploadCallbacks(on_progress=on_progress),
                        check_slot=True,
                        poll_for_slot=poll,
                        is_update=update_id is not None,
                        resource_id=update_id,
                        has_metadata_changed=metadata_changed,
                    )
                except TUSError as e:
                    print_error(e)
                    raise typer.Exit(1)

                outcome = await manager.wait(upload_id)

            if outcome.state is not UploadState.COMPLETED:
                console.print(f"[red]Upload {upload_id} {outcome.state.value}[/red]")
                if outcome.error:
                    print_error(outcome.error)
                raise typer.Exit(1)

            console.print(f"[green]Uploaded:[/green] {file_path.name}")
            console.print(f"Upload ID: {upload_id}")
            console.print(f"Size: {file_path.stat().st_size:,} bytes")

    run_async(do_upload())


@app.command()
def status(
    upload_url: str = typer.Argument(..., help="Upload URL or path"),
    token: str = typer.Option(None, "--token", envvar="TUSUPLOAD_TOKEN", help="Bearer token"),
    base_url: str = typer.Option(None, "--base-url", help="API base URL"),
):
    """Show the server offset of an upload."""
    from tusupload import TUSClient, TUSError, ProgressFormatter

    config = load_config(base_url)

    async def show_status():
        async with TUSClient(config, token_provider=lambda: token) as client:
            try:
                upload_status = await client.get_status(upload_url)
            except TUSError as e:
                print_error(e)
                raise typer.Exit(1)

        console.print(f"[bold]Offset:[/bold] {ProgressFormatter.format_bytes(upload_status.offset)}")
        console.print(f"[bold]Length:[/bold] {ProgressFormatter.format_bytes(upload_status.length)}")
        console.print(f"[bold]Progress:[/bold] {upload_status.progress}%")

    run_async(show_status())


@app.command()
def cancel(
    upload_url: str = typer.Argument(..., help="Upload URL or path"),
    token: str = typer.Option(None, "--token", envvar="TUSUPLOAD_TOKEN", help="Bearer token"),
    base_url: str = typer.Option(None, "--base-url", help="API base URL"),
):
    """Cancel an upload on the server."""
    from tusupload import TUSClient, TUSError

    config = load_config(base_url)

    async def do_cancel():
        async with TUSClient(config, token_provider=lambda: token) as client:
            try:
                await client.cancel(upload_url)
            except TUSError as e:
                print_error(e)
                raise typer.Exit(1)
        console.print(f"[green]Cancelled:[/green] {upload_url}")

    run_async(do_cancel())


@app.command()
def slot(
    resource: str = typer.Argument("modul", help="Resource type: project or modul"),
    reset: bool = typer.Option(False, "--reset", help="Reset a stuck queue"),
    token: str = typer.Option(None, "--token", envvar="TUSUPLOAD_TOKEN", help="Bearer token"),
    base_url: str = typer.Option(None, "--base-url", help="API base URL"),
):
    """Show the upload slot state of a resource."""
    from tusupload import TUSClient, TUSError
    from tusupload.core.api.endpoints import slot_endpoint

    config = load_config(base_url)
    endpoint = slot_endpoint(f"/{resource}/upload")

    async def show_slot():
        async with TUSClient(config, token_provider=lambda: token) as client:
            try:
                if reset:
                    info, was_reset = await client.check_slot_with_retry(endpoint)
                else:
                    info, was_reset = await client.check_slot(endpoint), False
            except TUSError as e:
                print_error(e)
                raise typer.Exit(1)

        table = Table()
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        table.add_row("Available", "yes" if info.available else "no")
        table.add_row("Queue length", str(info.queue_length))
        table.add_row("Active upload", "yes" if info.active_upload else "no")
        table.add_row("Max concurrent", "-" if info.max_concurrent is None else str(info.max_concurrent))
        table.add_row("Max queue", "-" if info.max_queue is None else str(info.max_queue))
        if info.message:
            table.add_row("Message", info.message)
        console.print(table)

        if was_reset:
            console.print("[yellow]Stuck queue was reset[/yellow]")

    run_async(show_slot())


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
