"""CLI application for composer-reconcile."""

import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from reconcile.config import get_settings
from reconcile.errors import ReconcileError
from reconcile.manifest import REPOSITORIES, ManifestReconciler, load_manifest
from reconcile.models import ChangeKind, ManifestDiff
from reconcile.sources import (
    copy_repositories,
    drupal_requirement,
    merge_libraries,
    read_package,
    register_asset_installers,
)

console = Console()

_STYLES = {
    ChangeKind.ADDED: "green",
    ChangeKind.CHANGED: "yellow",
    ChangeKind.REMOVED: "red",
}


def configure_logging(level: str) -> None:
    """Send library log records to the console through rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def split_requirement(value: str) -> tuple[str, str]:
    """Split a ``name:version`` argument as composer's CLI accepts it."""
    name, sep, version = value.partition(":")
    if not sep or not name.strip() or not version.strip():
        raise typer.BadParameter(f"Expected NAME:VERSION, got {value!r}")
    return name.strip(), version.strip()


def print_diff(diff: ManifestDiff, file_path: str) -> None:
    """Print a diff-style listing of manifest changes."""
    console.print(f"--- {file_path}", soft_wrap=True)
    console.print(f"+++ {file_path}", soft_wrap=True)
    for change in diff:
        console.print(str(change), style=_STYLES[change.kind], markup=False, highlight=False, soft_wrap=True)


def format_json_output(diff: ManifestDiff) -> str:
    """Format JSON output."""
    return json.dumps({"changes": diff.to_dict()}, indent=2, ensure_ascii=False)


app = typer.Typer(
    name="composer-reconcile",
    help="composer-reconcile - Merge discovered dependencies into a composer.json manifest",
    add_completion=False,
)


@app.command()
def merge(
    manifest_path: str = typer.Argument(help="Path to the destination composer.json"),
    source: str | None = typer.Option(None, "--source", "-s", help="Source composer.json to copy repositories from"),
    require: list[str] = typer.Option([], "--require", "-r", help="Requirement to merge, as NAME:VERSION"),
    drupal: list[str] = typer.Option([], "--drupal", "-d", help="Drupal project from an info file, as PROJECT:VERSION"),
    library: list[str] = typer.Option(
        [], "--library", "-l", help="Front-end library package.json, resolved against --source repositories"
    ),
    assets: bool = typer.Option(False, "--assets", help="Register bower/npm asset installer paths and types"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show changes without applying"),
    no_backup: bool = typer.Option(False, "--no-backup", help="Do not keep a timestamped copy of the manifest"),
    format_type: str = typer.Option("diff", "--format", help="Output format: diff or json"),
    indent: int | None = typer.Option(None, "--indent", help="JSON indentation for the written manifest"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log every merge step"),
) -> None:
    """Merge requirements, repositories and asset metadata into a manifest."""
    settings = get_settings()
    if indent is not None:
        settings = settings.model_copy(update={"json_indent": indent})
    configure_logging("debug" if verbose else settings.log_level)

    try:
        requirements = [split_requirement(value) for value in require]
        requirements += [drupal_requirement(*split_requirement(value)) for value in drupal]

        packages = [read_package(path) for path in library]

        reconciler = ManifestReconciler.load(manifest_path, settings)
        source_repositories = None
        if source:
            source_document = load_manifest(source)
            copy_repositories(source_document, reconciler)
            source_repositories = source_document.original.get(REPOSITORIES)
        for name, version in requirements:
            reconciler.add_requirement(name, version)
        if packages:
            merge_libraries(reconciler, packages, source_repositories)
        if assets:
            register_asset_installers(reconciler)

        diff = reconciler.get_diff()
        if not diff:
            if format_type == "json":
                console.print(format_json_output(diff), markup=False, highlight=False, soft_wrap=True)
            else:
                console.print("No changes to apply")
            raise typer.Exit(2)  # No changes exit code

        if format_type == "json":
            console.print(format_json_output(diff), markup=False, highlight=False, soft_wrap=True)
        else:
            print_diff(diff, manifest_path)

        if dry_run:
            return

        if not no_backup:
            backup = reconciler.backup_file()
            console.print(f"Backed up {manifest_path} to {backup}", soft_wrap=True)
        reconciler.write()
        console.print(f"Updated {manifest_path}", soft_wrap=True)

    except typer.Exit:
        raise
    except typer.BadParameter as e:
        console.print(f"Error: {e}", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1)
    except ReconcileError as e:
        console.print(f"Error: {e}", style="red", markup=False, soft_wrap=True)
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
