"""CLI interface for depdoctor.

Provides commands for analyzing an installed package tree or a packed
archive, dumping the dependency tree, and classifying a single manifest.
"""

import asyncio
import json
import logging
import sys
import tarfile
from pathlib import Path

import click
from dotenv import load_dotenv

# Load .env before importing other depdoctor modules
# This ensures env vars are set before settings are read
load_dotenv()

from depdoctor import __version__  # noqa: E402
from depdoctor.config import AnalysisSettings  # noqa: E402
from depdoctor.logging import configure_logging  # noqa: E402
from depdoctor.models.manifest import ManifestError  # noqa: E402
from depdoctor.stores import ArchiveManifestStore, LocalManifestStore, ManifestStore  # noqa: E402


def _make_store(root: str | None, tarball: str | None) -> ManifestStore:
    """Pick the manifest source explicitly from the command line."""
    if tarball:
        try:
            return ArchiveManifestStore.from_tarball(Path(tarball).read_bytes())
        except tarfile.TarError as e:
            raise click.BadParameter(f"not a readable archive: {e}", param_hint="--tarball") from e
    if root is None:
        raise click.UsageError("Provide ROOT or --tarball")
    return LocalManifestStore(root)


def _settings(
    registry_url: str | None,
    timeout: float | None,
    concurrency: int | None,
    deadline: float | None,
) -> AnalysisSettings:
    overrides = {
        "registry_url": registry_url,
        "registry_timeout": timeout,
        "registry_concurrency": concurrency,
        "deadline": deadline,
    }
    settings = AnalysisSettings.from_env()
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})


@click.group()
@click.version_option(version=__version__, prog_name="depdoctor")
@click.option("-v", "--verbose", is_flag=True, help="Log debug details to stderr")
def cli(verbose: bool) -> None:
    """depdoctor - structural health reports for installed npm package trees."""
    configure_logging(logging.DEBUG if verbose else logging.WARNING)


@cli.command()
@click.argument(
    "root",
    required=False,
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
)
@click.option(
    "--tarball",
    type=click.Path(exists=True, dir_okay=False),
    help="Analyze a packed archive (.tgz) instead of a directory",
)
@click.option("--offline", is_flag=True, help="Skip registry lookups (local analysis only)")
@click.option("--registry-url", default=None, help="npm-compatible registry base URL")
@click.option("--timeout", type=float, default=None, help="Per-fetch registry timeout (seconds)")
@click.option("--concurrency", type=int, default=None, help="Concurrent registry fetches")
@click.option(
    "--deadline",
    type=float,
    default=None,
    help="Overall seconds allowed for registry lookups",
)
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "text"]),
    default="json",
    help="Output format (default: json)",
)
def analyze(
    root: str | None,
    tarball: str | None,
    offline: bool,
    registry_url: str | None,
    timeout: float | None,
    concurrency: int | None,
    deadline: float | None,
    output_format: str,
) -> None:
    """Analyze an installed package tree.

    ROOT: Directory containing package.json and node_modules.

    Reports dependency counts, CJS/ESM census, install size and duplicated
    packages with remediation suggestions.
    """
    from depdoctor.registry import NpmRegistryClient
    from depdoctor.reporter import analyze_dependencies, format_report

    settings = _settings(registry_url, timeout, concurrency, deadline)
    store = _make_store(root, tarball)

    async def run():
        if offline:
            return await analyze_dependencies(store, None, settings)
        async with NpmRegistryClient(settings.registry_url, settings.registry_timeout) as registry:
            return await analyze_dependencies(store, registry, settings)

    try:
        stats = asyncio.run(run())
    except ManifestError as e:
        click.echo(f"Analysis failed: {e}", err=True)
        sys.exit(1)

    if output_format == "text":
        click.echo(format_report(stats))
    else:
        click.echo(stats.model_dump_json(indent=2, exclude_none=True))


@cli.command()
@click.argument(
    "root",
    required=False,
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
)
@click.option(
    "--tarball",
    type=click.Path(exists=True, dir_okay=False),
    help="Read the tree from a packed archive (.tgz)",
)
def tree(root: str | None, tarball: str | None) -> None:
    """Print every installed occurrence as JSON.

    ROOT: Directory containing package.json and node_modules.
    """
    from depdoctor.analyzers.tree_builder import DependencyTreeBuilder

    settings = AnalysisSettings.from_env()
    store = _make_store(root, tarball)

    try:
        nodes = asyncio.run(DependencyTreeBuilder(settings.walk_concurrency).build(store))
    except ManifestError as e:
        click.echo(f"Tree build failed: {e}", err=True)
        sys.exit(1)

    click.echo(json.dumps([node.model_dump() for node in nodes], indent=2))


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False))
def classify(manifest: str) -> None:
    """Print the module format (cjs, esm, dual, unknown) of one package.json."""
    from depdoctor.analyzers.module_type import classify as classify_manifest
    from depdoctor.models.manifest import parse_manifest

    try:
        parsed = parse_manifest(Path(manifest).read_bytes(), manifest)
    except ManifestError as e:
        click.echo(f"Classification failed: {e}", err=True)
        sys.exit(1)

    click.echo(classify_manifest(parsed))


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
