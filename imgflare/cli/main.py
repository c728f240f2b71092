"""ImgFlare command-line interface."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import asdict
from pathlib import Path
from typing import Any, TypeVar

import click

from ..exceptions import (
    ImgFlareError,
    StorageError,
    ValidationError,
)
from ..models.base import Database
from ..models.image_record import ImageRecord, ImageStatus
from ..models.repository import ImageQuery, RecordStore
from ..remote.cloudflare import CloudflareImagesClient
from ..services import queries
from ..utils.config import (
    ConfigKeys,
    GlobalSettings,
    get_config_value,
    get_settings,
    is_configured,
    mask_secret,
    require_configured,
    save_credentials,
)
from ..utils.logging import setup_logger
from ..utils.validators import is_valid_account_id, is_valid_api_token, is_valid_url
from ..workflows.batch import load_batch_file, run_batch
from ..workflows.delete import DeleteStatus, DeleteWorkflow
from ..workflows.upload import (
    LOCAL_URL_SCHEME,
    ClientFactory,
    RemoteInspector,
    UploadOutcome,
    UploadWorkflow,
    default_client_factory,
)
from .formatters import format_bytes, format_image_details, format_images_table, format_status

logger = setup_logger(__name__, context={"operation": "cli"})

EXIT_FAILURE = 1
EXIT_INTERNAL_ERROR = 70

F = TypeVar("F", bound=Callable[..., Any])


class AppContext:
    """Per-invocation state shared by every command.

    The record store is opened once, on first use, and handed to workflows
    explicitly.
    """

    def __init__(
        self,
        settings: GlobalSettings,
        *,
        store: RecordStore | None = None,
        client_factory: ClientFactory = default_client_factory,
        remote_inspector: RemoteInspector | None = None,
    ):
        self.settings = settings
        self._store = store
        self.client_factory = client_factory
        self.remote_inspector = remote_inspector

    @property
    def store(self) -> RecordStore:
        if self._store is None:
            self._store = RecordStore(Database.from_settings(self.settings))
        return self._store

    def require_configured(self) -> None:
        require_configured(self.store)

    def client(self) -> CloudflareImagesClient:
        self.require_configured()
        return self.client_factory(self.store, self.settings)

    def upload_workflow(self) -> UploadWorkflow:
        return UploadWorkflow(
            self.store,
            self.settings,
            client_factory=self.client_factory,
            remote_inspector=self.remote_inspector,
        )

    def delete_workflow(self) -> DeleteWorkflow:
        return DeleteWorkflow(self.store, self.settings, client_factory=self.client_factory)


def handle_errors(action: str) -> Callable[[F], F]:
    """Report workflow errors uniformly and map them onto exit codes.

    Handled errors exit with ``EXIT_FAILURE``; anything unexpected exits with
    ``EXIT_INTERNAL_ERROR``.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except (click.exceptions.Exit, click.exceptions.Abort, click.ClickException):
                raise
            except ImgFlareError as exc:
                logger.info("Could not %s: %s", action, exc, extra={"status": "error"})
                click.echo(click.style(f"\n❌ Could not {action} because: {exc}", fg="red"), err=True)
                raise click.exceptions.Exit(EXIT_FAILURE) from exc
            except Exception as exc:
                logger.exception("Unexpected error while trying to %s", action)
                click.echo(
                    click.style(f"\n❌ Unexpected error while trying to {action}: {exc}", fg="red"),
                    err=True,
                )
                raise click.exceptions.Exit(EXIT_INTERNAL_ERROR) from exc

        return wrapper  # type: ignore[return-value]

    return decorator


def info(message: str) -> None:
    click.echo(click.style(message, fg="blue"))


def success(message: str) -> None:
    click.echo(click.style(message, fg="green"))


def warn(message: str) -> None:
    click.echo(click.style(message, fg="yellow"), err=True)


def report_not_found(image_id: str) -> None:
    warn(f"Image not found with ID: {image_id}")


def _report_upload(app: AppContext, outcome: UploadOutcome) -> None:
    if not outcome.persisted:
        raise StorageError(
            f"Image {outcome.record.id} was uploaded to Cloudflare but not recorded "
            f"locally: {outcome.persist_error}"
        )
    success("\n✅ Image uploaded successfully!")
    stored = queries.get_status(app.store, outcome.record.id)
    click.echo(format_image_details(stored or asdict(outcome.record)))


pass_app = click.make_pass_decorator(AppContext)


@click.group()
@click.version_option(package_name="imgflare", prog_name="imgflare")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """🔥 ImgFlare - Cloudflare Images migration and management tool."""
    if ctx.obj is None:
        ctx.obj = AppContext(get_settings())


def _validate_token(value: str) -> str:
    if not value:
        raise click.BadParameter("API token is required")
    if not is_valid_api_token(value):
        raise click.BadParameter("Invalid API token format")
    return value


def _validate_account(value: str) -> str:
    if not value:
        raise click.BadParameter("Account ID is required")
    if not is_valid_account_id(value):
        raise click.BadParameter(
            "Invalid Account ID format. It should be a 32-character hexadecimal string."
        )
    return value


def _validate_delivery_url(value: str) -> str:
    if value and not is_valid_url(value):
        raise click.BadParameter("Invalid URL format")
    return value


@cli.command()
@click.option("--api-token", default=None, help="Cloudflare API token (prompted if omitted)")
@click.option("--account-id", default=None, help="Cloudflare account ID (prompted if omitted)")
@click.option("--delivery-url", default=None, help="Images delivery URL prefix (optional)")
@click.option("-f", "--force", is_flag=True, help="Force setup even if already configured")
@pass_app
@handle_errors("save the configuration")
def setup(
    app: AppContext,
    api_token: str | None,
    account_id: str | None,
    delivery_url: str | None,
    force: bool,
) -> None:
    """Configure ImgFlare with your Cloudflare credentials."""
    info("🔥 ImgFlare Setup Wizard")
    click.echo("This will configure ImgFlare with your Cloudflare credentials.\n")

    if is_configured(app.store) and not force:
        warn("ImgFlare is already configured.")
        if not click.confirm("Do you want to reconfigure?", default=False):
            success("Setup canceled. Your existing configuration is still in place.")
            return

    try:
        if api_token is None:
            api_token = click.prompt(
                "Enter your Cloudflare API token",
                hide_input=True,
                value_proc=_validate_token,
            )
        else:
            _validate_token(api_token)

        if account_id is None:
            account_id = click.prompt(
                "Enter your Cloudflare Account ID",
                value_proc=_validate_account,
            )
        else:
            _validate_account(account_id)

        if delivery_url is None:
            delivery_url = click.prompt(
                "Enter your Cloudflare Images delivery URL (optional)",
                default="",
                show_default=False,
                value_proc=_validate_delivery_url,
            )
        else:
            _validate_delivery_url(delivery_url)
    except click.BadParameter as exc:
        raise ValidationError(exc.message) from exc

    save_credentials(
        app.store,
        api_token=str(api_token),
        account_id=str(account_id),
        delivery_url=delivery_url or None,
    )

    success("\n✅ ImgFlare has been successfully configured!")
    click.echo("You can now use ImgFlare to upload and manage images on Cloudflare.")
    click.echo("\nTry running: imgflare upload <image-url>")


@cli.command("config")
@pass_app
@handle_errors("show the configuration")
def show_config(app: AppContext) -> None:
    """Show stored configuration (secrets masked)."""
    for key in (ConfigKeys.API_TOKEN, ConfigKeys.ACCOUNT_ID, ConfigKeys.DELIVERY_URL):
        value = get_config_value(app.store, key)
        shown = mask_secret(value) if key == ConfigKeys.API_TOKEN else (value or "-")
        click.echo(f"{key}: {shown}")


@cli.command()
@click.argument("url")
@click.option("-f", "--force", is_flag=True, help="Upload even without an image extension")
@pass_app
@handle_errors("upload the image")
def upload(app: AppContext, url: str, force: bool) -> None:
    """Upload a single image to Cloudflare Images by URL."""
    workflow = app.upload_workflow()
    UploadWorkflow.validate_url(url, force=force)
    app.require_configured()

    info("🔄 Uploading image...")
    outcome = asyncio.run(workflow.upload_url(url, force=force))
    _report_upload(app, outcome)


@cli.command("upload-local")
@click.argument("file_path", type=click.Path(dir_okay=False))
@click.option("-f", "--force", is_flag=True, help="Upload even without an image extension")
@pass_app
@handle_errors("upload the local image")
def upload_local(app: AppContext, file_path: str, force: bool) -> None:
    """Upload a local image file to Cloudflare Images."""
    workflow = app.upload_workflow()
    UploadWorkflow.validate_file(file_path, force=force)
    app.require_configured()

    info(f"🔄 Uploading image from {file_path}...")
    outcome = asyncio.run(workflow.upload_file(file_path, force=force))
    _report_upload(app, outcome)


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option(
    "-c",
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Number of concurrent uploads",
)
@click.option("-f", "--force", is_flag=True, help="Upload URLs without an image extension")
@pass_app
@handle_errors("process the batch")
def batch(app: AppContext, file: str, concurrency: int | None, force: bool) -> None:
    """Upload every image URL listed in a JSON file."""
    app.require_configured()

    info(f"🔄 Reading batch file: {file}")
    items = load_batch_file(file)
    info(f"Found {len(items)} images to process")

    report = asyncio.run(
        run_batch(
            items,
            app.upload_workflow(),
            concurrency=concurrency or app.settings.batch_concurrency,
            force=force,
        )
    )

    for result in report.results:
        if result.ok:
            click.echo(f"{click.style('✔', fg='green')} {result.url} -> {result.image_id}")
        else:
            click.echo(f"{click.style('✘', fg='red')} {result.url}: {result.error}")

    click.echo(f"\n{len(report.succeeded)} uploaded, {len(report.failed)} failed")
    if report.failed:
        raise ImgFlareError(f"{len(report.failed)} of {len(items)} uploads failed")


@cli.command()
@click.argument("image_id", required=False)
@pass_app
@handle_errors("check status")
def status(app: AppContext, image_id: str | None) -> None:
    """Show one image's record, or every image that is not yet complete."""
    app.require_configured()

    if image_id:
        record = queries.get_status(app.store, image_id)
        if record is None:
            report_not_found(image_id)
            return
        click.echo(format_image_details(record))
        return

    records = queries.pending_records(app.store)
    if not records:
        success("No pending or failed images.")
        return
    info(f"📋 {len(records)} images are not complete:")
    click.echo(format_images_table(records))


@cli.command()
@pass_app
@handle_errors("get statistics")
def stats(app: AppContext) -> None:
    """Show statistics about uploaded images."""
    app.require_configured()

    summary = queries.collect_stats(app.store)
    info("📊 ImgFlare Statistics")
    click.echo(f"  Total images:   {summary.total}")
    click.echo(f"  Stored bytes:   {format_bytes(summary.total_bytes)}")
    click.echo(f"  With variants:  {summary.with_variants}")
    for image_status in ImageStatus:
        count = summary.by_status.get(image_status.value, 0)
        if count:
            click.echo(f"  {format_status(image_status.value)}: {count}")


@cli.command("list")
@click.option(
    "-s",
    "--status",
    "status_filter",
    type=click.Choice(ImageStatus.values()),
    default=None,
    help="Filter by status",
)
@click.option("-l", "--limit", type=click.IntRange(min=1), default=None, help="Limit results")
@click.option(
    "-o",
    "--order",
    type=click.Choice(["asc", "desc"]),
    default="desc",
    show_default=True,
    help="Sort order by upload time",
)
@pass_app
@handle_errors("list images")
def list_command(
    app: AppContext,
    status_filter: str | None,
    limit: int | None,
    order: str,
) -> None:
    """List uploaded images with optional filtering."""
    app.require_configured()

    records = queries.list_images(
        app.store,
        status=status_filter,
        limit=limit or app.settings.default_list_limit,
        order=order,
    )
    if not records:
        warn("No images found with the specified filters.")
        return

    info(f"📋 Listing {len(records)} images:")
    click.echo(format_images_table(records))


@cli.command()
@click.argument("query")
@click.option("-l", "--limit", type=click.IntRange(min=1), default=None, help="Limit results")
@pass_app
@handle_errors("search images")
def search(app: AppContext, query: str, limit: int | None) -> None:
    """Search images by id, URL or content type."""
    app.require_configured()

    info(f"🔍 Searching for: {query}")
    records = queries.search_images(
        app.store, query, limit=limit or app.settings.default_list_limit
    )
    if not records:
        warn("No images matched the search.")
        return
    click.echo(format_images_table(records))


def resolve_open_url(record: ImageRecord, url_type: str) -> str | None:
    """Return the browser URL for ``url_type``; ``local://`` becomes a ``file://`` URI."""

    url = record.original_url if url_type == "original" else record.cloudflare_url
    if url and url.startswith(LOCAL_URL_SCHEME):
        return Path(url[len(LOCAL_URL_SCHEME):]).as_uri()
    return url


@cli.command("open")
@click.argument("url_type", type=click.Choice(["original", "remote", "cloudflare"]))
@click.argument("image_id")
@pass_app
@handle_errors("open the image")
def open_command(app: AppContext, url_type: str, image_id: str) -> None:
    """Open an image's original or Cloudflare URL in the default browser."""
    app.require_configured()

    record = queries.get_status(app.store, image_id)
    if record is None:
        report_not_found(image_id)
        return

    url = resolve_open_url(record, url_type)
    if not url:
        raise ImgFlareError(f"No {url_type} URL available for this image.")

    info(f"🔗 Opening {url_type} image in browser...")
    if click.launch(url) != 0:
        raise ImgFlareError(f"Failed to open URL: {url}")
    success("✅ Browser opened successfully!")


@cli.command("export")
@click.argument("fmt", metavar="FORMAT", type=click.Choice(list(queries.EXPORT_FORMATS)))
@click.option("-f", "--file", "output", type=click.Path(dir_okay=False), help="Output file path")
@click.option(
    "-s",
    "--status",
    "status_filter",
    type=click.Choice(ImageStatus.values()),
    default=None,
    help="Filter by status",
)
@pass_app
@handle_errors("export images")
def export_command(app: AppContext, fmt: str, output: str | None, status_filter: str | None) -> None:
    """Export image records as JSON or CSV."""
    app.require_configured()

    records = app.store.get_images(ImageQuery(status=status_filter))
    text = queries.export_records(records, fmt)

    if output is None:
        click.echo(text, nl=not text.endswith("\n"))
        return

    try:
        Path(output).write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ImgFlareError(f"Could not write {output}: {exc}") from exc
    success(f"📤 Exported {len(records)} images to {output}")


@cli.command()
@click.argument("image_id")
@click.option("-f", "--force", is_flag=True, help="Delete without confirmation")
@click.option("-k", "--keep-record", is_flag=True, help="Keep the local record, marked deleted")
@pass_app
@handle_errors("delete the image")
def delete(app: AppContext, image_id: str, force: bool, keep_record: bool) -> None:
    """Delete an image from Cloudflare Images and reconcile the local record."""
    def _show(record: ImageRecord) -> None:
        info("Image to delete:")
        click.echo(format_image_details(record))

    def _confirm(_record: ImageRecord) -> bool:
        return click.confirm("\nAre you sure you want to delete this image?", default=False)

    outcome = asyncio.run(
        app.delete_workflow().delete(
            image_id,
            force=force,
            keep_record=keep_record,
            confirm=_confirm,
            on_found=_show,
        )
    )

    if outcome.status is DeleteStatus.NOT_FOUND:
        report_not_found(image_id)
        return
    if outcome.status is DeleteStatus.CANCELLED:
        success("Deletion cancelled.")
        return
    if outcome.local_error:
        raise StorageError(
            f"Image deleted from Cloudflare but the local record could not be updated: "
            f"{outcome.local_error}"
        )
    if outcome.status is DeleteStatus.SOFT_DELETED:
        success("\n✅ Image deleted from Cloudflare. Database record kept and marked as deleted.")
    else:
        success("\n✅ Image completely deleted from Cloudflare and local database.")


@cli.command()
@click.argument("image_id")
@click.option("-c", "--copy", "copy_format", is_flag=True, help="Print bare URLs for copying")
@click.option("--refresh", is_flag=True, help="Fetch current variants from Cloudflare first")
@pass_app
@handle_errors("retrieve variants")
def variants(app: AppContext, image_id: str, copy_format: bool, refresh: bool) -> None:
    """Show available variants for an image."""
    app.require_configured()

    if refresh:
        lookup = asyncio.run(queries.refresh_variants(app.store, app.client(), image_id))
    else:
        lookup = queries.get_variants(app.store, image_id)

    if lookup.kind is queries.VariantsKind.NOT_FOUND:
        report_not_found(image_id)
        return
    if lookup.kind is queries.VariantsKind.MALFORMED:
        raise StorageError(f"Error parsing variants data: {lookup.error}")
    if lookup.kind is queries.VariantsKind.NO_VARIANTS:
        warn(f"No variant information stored for image: {image_id}")
        if lookup.record is not None and lookup.record.cloudflare_url:
            click.echo("\nDefault URL:")
            click.echo(lookup.record.cloudflare_url)
        return

    if copy_format:
        click.echo("\n".join(lookup.variants))
        return

    info(f"\n🖼️  Available variants for image: {click.style(image_id, fg='cyan')}")
    if lookup.record is not None:
        click.echo(f"{click.style('Original URL:', fg='bright_black')} {lookup.record.original_url}")
    for index, url in enumerate(lookup.variants, start=1):
        name = queries.variant_name(url)
        click.echo(f"\n{click.style(str(index), fg='cyan')}. {click.style(name, fg='yellow')}")
        click.echo(url)


def main() -> None:
    """Console script entry point."""
    cli(prog_name="imgflare")


if __name__ == "__main__":
    main()
