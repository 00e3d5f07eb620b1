"""s3stream CLI entry point."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import requests
import typer
from tqdm import tqdm

from s3stream import __version__
from s3stream.client import S3Client
from s3stream.config.config_manager import ConfigManager
from s3stream.config.profiles import ProfileAlreadyExist, ProfileManager
from s3stream.exceptions import S3StreamError

app = typer.Typer(add_completion=False, help="s3stream command line interface.")
profile_app = typer.Typer(help="Manage configuration profiles.")
app.add_typer(profile_app, name="profile")

profile_manager = ProfileManager()


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Report library and transport errors as a one-line message and exit 1."""
    try:
        yield
    except (S3StreamError, requests.RequestException) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)


@app.callback()
def callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the s3stream version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", envvar="S3STREAM_PROFILE", help="Profile to use."
    ),
    bucket: Optional[str] = typer.Option(None, "--bucket", help="Bucket name."),
    access_key: Optional[str] = typer.Option(None, "--access-key"),
    secret_key: Optional[str] = typer.Option(None, "--secret-key"),
    host: Optional[str] = typer.Option(None, "--host", help="Store endpoint."),
    prefix: Optional[str] = typer.Option(None, "--prefix", help="Key prefix."),
    verbose: bool = typer.Option(False, "--verbose", help="Log debug output."),
) -> None:
    """Handle global options shared by all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    ctx.obj = {
        "profile": profile,
        "overrides": {
            "bucket": bucket,
            "access_key": access_key,
            "secret_key": secret_key,
            "host": host,
            "prefix": prefix,
        },
    }


def _client(ctx: typer.Context) -> S3Client:
    obj: dict[str, Any] = ctx.obj or {}
    manager = ConfigManager(profile_manager, obj.get("profile"))
    with _handle_errors():
        config = manager.resolve_effective_config(obj.get("overrides"))
        return S3Client(config)


@app.command("put")
def put(
    ctx: typer.Context,
    source: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    key: str = typer.Argument(..., help="Destination key."),
    content_type: Optional[str] = typer.Option(None, "--content-type"),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
) -> None:
    """Upload a local file as a multipart upload."""
    client = _client(ctx)
    size = source.stat().st_size
    with _handle_errors(), client, source.open("rb") as fileobj:
        with tqdm(
            total=size, unit="B", unit_scale=True, desc=key, disable=not progress
        ) as pbar:
            client.object(key).upload(
                fileobj, content_type=content_type, progress_callback=pbar.update
            )
    typer.echo(f"Uploaded {size} bytes to {key}")


@app.command("get")
def get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Key to download."),
    destination: Path = typer.Argument(..., dir_okay=False),
) -> None:
    """Download an object to a local file."""
    client = _client(ctx)
    with _handle_errors(), client, destination.open("wb") as fileobj:
        written = client.object(key).download(fileobj)
    typer.echo(f"Downloaded {written} bytes to {destination}")


@app.command("head")
def head(ctx: typer.Context, key: str) -> None:
    """Print an object's metadata headers."""
    client = _client(ctx)
    with _handle_errors(), client:
        metadata = client.object(key).head()
    for name, value in sorted(metadata.headers.items()):
        typer.echo(f"{name}: {value}")


@app.command("exists")
def exists(ctx: typer.Context, key: str) -> None:
    """Exit with status 0 if the object exists, 1 otherwise."""
    client = _client(ctx)
    with _handle_errors(), client:
        found = client.object(key).exists()
    typer.echo("true" if found else "false")
    if not found:
        raise typer.Exit(1)


@app.command("rm")
def remove(ctx: typer.Context, key: str) -> None:
    """Delete an object."""
    client = _client(ctx)
    with _handle_errors(), client:
        client.object(key).delete()
    typer.echo(f"Deleted {key}")


@app.command("url")
def url(
    ctx: typer.Context,
    key: str,
    expires: int = typer.Option(3600, "--expires", help="Validity in seconds."),
) -> None:
    """Print a pre-signed GET URL for an object."""
    client = _client(ctx)
    with client:
        typer.echo(client.object(key).expiring_url(expires))


@profile_app.command("save")
def profile_save(
    name: str,
    bucket: Optional[str] = typer.Option(None, "--bucket"),
    access_key: Optional[str] = typer.Option(None, "--access-key"),
    secret_key: Optional[str] = typer.Option(None, "--secret-key"),
    host: Optional[str] = typer.Option(None, "--host"),
    prefix: Optional[str] = typer.Option(None, "--prefix"),
    path_style: Optional[bool] = typer.Option(None, "--path-style/--virtual-host"),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", min=1),
) -> None:
    """Create a profile or update the given fields of an existing one."""
    try:
        profile_manager.create_profile(name)
    except ProfileAlreadyExist:
        pass
    with _handle_errors():
        profile_manager.update_profile(
            name,
            {
                "bucket": bucket,
                "access_key": access_key,
                "secret_key": secret_key,
                "host": host,
                "prefix": prefix,
                "path_style": path_style,
                "concurrency": concurrency,
            },
        )
    typer.echo(f"Saved profile {name}")


@profile_app.command("list")
def profile_list() -> None:
    """List saved profiles."""
    for name in profile_manager.list_profiles():
        typer.echo(name)


@profile_app.command("show")
def profile_show(name: str) -> None:
    """Print a profile with its secret masked."""
    with _handle_errors():
        config = profile_manager.get_profile(name)
    for field_name, value in config.model_dump().items():
        if field_name == "secret_key" and value:
            value = "****"
        typer.echo(f"{field_name}: {value}")


def main() -> None:
    """CLI entrypoint for the s3stream command."""
    app()


if __name__ == "__main__":
    main()
