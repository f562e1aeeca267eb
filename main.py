"""Azure region comparison CLI entrypoint."""
import logging
import subprocess

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from regioncompare.analyzer import RegionAnalysis, RegionAnalyzer
from regioncompare.cache.store import FileCacheStore
from regioncompare.compare.availability import resource_sku
from regioncompare.compare.engine import rank_by_gap
from regioncompare.compare.models import ComparisonStatus
from regioncompare.config.parser import ConfigParser
from regioncompare.errors import RegionCompareError

app = typer.Typer(help="Azure Region Compare - SKU availability and quota comparison between regions")
console = Console()

STATUS_STYLES = {
    ComparisonStatus.FULL_MATCH: "green",
    ComparisonStatus.AVAILABLE_NO_SKUS: "dim",
    ComparisonStatus.SOURCE_RESTRICTED: "red",
    ComparisonStatus.SOURCE_EXTENDED: "yellow",
    ComparisonStatus.TARGET_EXTENDED: "cyan",
    ComparisonStatus.PARTIAL_MATCH: "magenta",
}


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=debug)],
        force=True,
    )


def _print_analysis(analysis: RegionAnalysis) -> None:
    report = analysis.report
    table = Table(title=f"SKU Availability: {report.source_region} → {report.target_region}")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Source SKUs", justify="right")
    table.add_column("Target SKUs", justify="right")
    table.add_column("Only in source", justify="right")
    table.add_column("Only in target", justify="right")
    for record in rank_by_gap(report.compared):
        style = STATUS_STYLES.get(record.status, "white")
        table.add_row(
            record.provider,
            f"[{style}]{record.status.value}[/]",
            str(record.source_sku_count),
            str(record.target_sku_count),
            str(len(record.only_in_source)),
            str(len(record.only_in_target)),
        )
    console.print(table)

    if report.skipped:
        skipped_table = Table(title="Skipped Providers")
        skipped_table.add_column("Provider", style="cyan")
        skipped_table.add_column("Error", style="red")
        skipped_table.add_column("Reason")
        for skipped in report.skipped:
            skipped_table.add_row(skipped.provider, skipped.error_type, skipped.reason)
        console.print(skipped_table)

    if analysis.resources:
        availability_table = Table(title=f"Resource Availability in {report.target_region}")
        availability_table.add_column("Type", style="cyan")
        availability_table.add_column("SKU")
        availability_table.add_column("Available")
        availability_table.add_column("Reason")
        for resource in analysis.resources:
            if resource.available is None:
                verdict = "[yellow]? UNKNOWN[/]"
            elif resource.available:
                verdict = "[green]✓ AVAILABLE[/]"
            else:
                verdict = "[red]❌ UNAVAILABLE[/]"
            reason = resource.availability_reason or ""
            if resource.restrictions:
                reason = f"{reason} ({', '.join(resource.restrictions)})"
            availability_table.add_row(resource.type, resource_sku(resource) or "-", verdict, reason)
        console.print(availability_table)

    if analysis.top_consumers:
        quota_table = Table(title=f"Top Quota Consumers in {report.source_region}")
        quota_table.add_column("Metric", style="cyan")
        quota_table.add_column("Usage", justify="right")
        quota_table.add_column("Limit", justify="right")
        quota_table.add_column("Used", justify="right")
        for metric in analysis.top_consumers:
            quota_table.add_row(metric.display_name, f"{metric.current_usage:g}",
                                f"{metric.limit:g}", f"{metric.percent_used}%")
        console.print(quota_table)

    if analysis.quota_fits:
        fit_table = Table(title="Quota Fit in Target Region")
        fit_table.add_column("Metric", style="cyan")
        fit_table.add_column("Source usage", justify="right")
        fit_table.add_column("Target usage", justify="right")
        fit_table.add_column("Fits")
        for fit in analysis.quota_fits:
            if fit.fits is None:
                verdict = "[yellow]? UNKNOWN[/]"
            elif fit.fits:
                verdict = "[green]✓ FITS[/]"
            else:
                verdict = "[red]❌ EXCEEDS[/]"
            fit_table.add_row(
                fit.metric_name,
                f"{fit.source.current_usage:g}" if fit.source else "-",
                f"{fit.target.current_usage:g}" if fit.target else "-",
                verdict,
            )
        console.print(fit_table)


@app.command("compare")
def compare_regions(
    config: str = typer.Option("regions.yaml", "--config", "-c", help="Path to the run configuration YAML file"),
    output: str = typer.Option("region-comparison.json", "--output", "-o", help="Path for the comparison JSON output"),
    debug: bool = typer.Option(False, "--debug", help="Print verbose debug information including cache hits and retries")
):
    """Compare SKU availability and quota usage between two regions."""
    _configure_logging(debug)
    console.print("[bold blue]Comparing regions...[/]")

    try:
        run_config = ConfigParser.load(config)
        analysis = RegionAnalyzer(run_config).analyze()
        analysis.save(output)
        console.print(f"[green]Comparison saved to {output}[/]")
        _print_analysis(analysis)

        if analysis.report.skipped:
            console.print(f"[yellow]{len(analysis.report.skipped)} provider(s) skipped; results are partial.[/]")
        if analysis.unavailable:
            console.print(f"[yellow]{len(analysis.unavailable)} resource(s) not available in "
                          f"{analysis.report.target_region}.[/]")
        if analysis.blockers:
            console.print(f"[bold red]{len(analysis.blockers)} quota metric(s) exceed target usage.[/]")
            raise typer.Exit(code=2)
    except (RegionCompareError, subprocess.CalledProcessError, yaml.YAMLError, OSError, ValueError) as e:
        console.print(f"[bold red]Error: {e}[/]")
        raise typer.Exit(code=1)


@app.command("cache-clear")
def cache_clear(
    config: str = typer.Option("regions.yaml", "--config", "-c", help="Path to the run configuration YAML file"),
    debug: bool = typer.Option(False, "--debug", help="Print verbose debug information")
):
    """Delete every cached response."""
    _configure_logging(debug)
    try:
        settings = ConfigParser.load(config).settings
        removed = FileCacheStore(settings.cache_dir, settings.cache_ttl_seconds).clear()
        console.print(f"[green]Removed {removed} cache entries from {settings.cache_dir}[/]")
    except (yaml.YAMLError, OSError, ValueError) as e:
        console.print(f"[bold red]Error: {e}[/]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
