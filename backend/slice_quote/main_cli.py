# main_cli.py

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from slice_quote.config import settings
from slice_quote.core.common_types import InfillType, MaterialType, PriceQuote, PrintQuality, SlicerConfig
from slice_quote.core.exceptions import SliceQuoteError
from slice_quote.core.utils import format_time
from slice_quote.processes.print_3d.gcode_parser import parse_gcode
from slice_quote.processes.print_3d.pricing import calculate_price
from slice_quote.processes.print_3d.slicer import check_slicer_installation, resolve_profiles
from slice_quote.services import CleanupSweeper, QuoteService, TemporaryUploadStore

logger = logging.getLogger(__name__)

# --- Typer App Initialization ---
app = typer.Typer(help="Slice 3D models with PrusaSlicer and produce print quotes (NGN).")
console = Console()


def _print_quote(quote: PriceQuote) -> None:
    cost_table = Table(show_header=False, box=None, padding=(0, 1))
    cost_table.add_column()
    cost_table.add_column(justify="right")
    cost_table.add_row("Estimated Weight:", f"{quote.estimated_weight:.2f} g")
    cost_table.add_row("Print Time:", f"{quote.print_time:.2f} h ({format_time(quote.print_time * 3600)})")
    cost_table.add_row("Layers:", str(quote.layer_count))
    cost_table.add_row("Material Cost:", f"₦{quote.material_cost:,.2f}")
    cost_table.add_row("Machine Cost:", f"₦{quote.machine_cost:,.2f}")
    cost_table.add_row("Setup Fee:", f"₦{quote.setup_fee:,.2f}")
    cost_table.add_row("[bold]Item Total:[/]", f"[bold]₦{quote.item_total:,.2f}[/]")
    cost_table.add_row("Quantity:", str(quote.quantity))
    cost_table.add_row("[bold green]Subtotal:[/]", f"[bold green]₦{quote.subtotal:,.2f}[/]")
    console.print(Panel(cost_table, title=f"Quote {quote.quote_id}", expand=False))
    for warning in quote.warnings:
        console.print(f"[yellow]Warning:[/] {warning}")


def _save_json(output_json: Path, quote: PriceQuote) -> None:
    try:
        output_json.parent.mkdir(parents=True, exist_ok=True)
        output_json.write_text(json.dumps(quote.model_dump(mode="json", by_alias=True), indent=2))
        console.print(f"\n[green]Quote saved to: {output_json}[/]")
    except OSError as e:
        console.print(f"\n[bold red]Error saving JSON output to {output_json}: {e}[/]")


# --- CLI Commands ---

@app.command()
def quote(
    file_path: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True, help="Path to the 3D model file"),
    quality: PrintQuality = typer.Option(PrintQuality.STANDARD, "--quality", "-q", help="Print quality preset"),
    material: MaterialType = typer.Option(MaterialType.PLA, "--material", "-m", case_sensitive=False, help="Print material"),
    infill: int = typer.Option(20, "--infill", "-i", min=5, max=100, help="Infill density in percent"),
    infill_type: InfillType = typer.Option(InfillType.GRID, "--infill-type", help="Infill pattern"),
    quantity: int = typer.Option(1, "--quantity", "-n", min=1, help="Number of copies"),
    output_json: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the quote as a JSON file."),
):
    """Uploads a model to the temp store, slices it and prints the quote."""
    console.print(f"Processing: [cyan]{file_path.name}[/]")
    console.print(f"Quality: [cyan]{quality.value}[/]  Material: [cyan]{material.value}[/]  "
                  f"Infill: [cyan]{infill}% {infill_type.value}[/]")

    config = SlicerConfig(quality=quality, material=material, infill_density=infill, infill_type=infill_type)
    store = TemporaryUploadStore(settings.slicer_temp_dir, settings.max_upload_size_bytes, settings.upload_ttl_hours)
    service = QuoteService(settings, store)

    async def _run() -> PriceQuote:
        try:
            record = store.put(file_path.read_bytes(), file_path.name)
            return await service.create_quote(record.file_id, config, quantity=quantity)
        finally:
            await service.queue.close()

    try:
        result = asyncio.run(_run())
    except SliceQuoteError as e:
        console.print(f"\n[bold red]Quote Generation Failed ({e.error_code}): {e}[/]")
        raise typer.Exit(code=1)
    except Exception as e:
        logger.exception("Unexpected error during quote command:")
        console.print(f"\n[bold red]An unexpected error occurred: {e}[/]")
        raise typer.Exit(code=1)

    _print_quote(result)
    if output_json:
        _save_json(output_json, result)


@app.command("parse-gcode")
def parse_gcode_command(
    gcode_path: Path = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True, help="Path to a .gcode file"),
    material: MaterialType = typer.Option(MaterialType.PLA, "--material", "-m", case_sensitive=False, help="Material for density and pricing"),
    quantity: int = typer.Option(1, "--quantity", "-n", min=1, help="Number of copies"),
):
    """Extracts metrics from existing G-code and prices them without slicing."""
    metrics = parse_gcode(gcode_path.read_text(encoding="utf-8", errors="replace"), material.value)

    table = Table(title=f"G-code Metrics: {gcode_path.name}", show_header=True, header_style="bold magenta")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Print Time", f"{metrics.print_time_seconds:.0f} s ({format_time(metrics.print_time_seconds)})")
    table.add_row("Filament Length", f"{metrics.filament_length_mm:.2f} mm")
    table.add_row("Filament Weight", f"{metrics.filament_weight_grams:.2f} g")
    table.add_row("Layer Count", str(metrics.layer_count))
    table.add_row("Complete", "yes" if metrics.is_complete else "[yellow]no[/]")
    console.print(table)

    if metrics.is_empty:
        console.print("[bold red]No usable metrics found in this file.[/]")
        raise typer.Exit(code=1)

    _print_quote(calculate_price(
        metrics,
        material,
        quantity=quantity,
        gcode_file_ref=gcode_path.name,
        machine_hourly_rate=settings.machine_hourly_rate,
        setup_fee=settings.setup_fee,
    ))


@app.command()
def health():
    """Checks the slicer binary and profile files. Exits 1 if anything is missing."""
    installed, resolved = check_slicer_installation(settings.slicer_path)
    table = Table(title="Slicer Health", show_header=True, header_style="bold magenta")
    table.add_column("Check")
    table.add_column("Status")
    table.add_column("Detail")
    table.add_row("Executable", "[green]OK[/]" if installed else "[red]MISSING[/]", resolved or settings.slicer_path)

    profiles_ok = True
    for quality in PrintQuality:
        for material in MaterialType:
            try:
                resolve_profiles(settings.slicer_config_dir, SlicerConfig(quality=quality, material=material))
            except SliceQuoteError as e:
                profiles_ok = False
                table.add_row(f"Profiles {quality.value}/{material.value}", "[red]MISSING[/]", str(e))
    if profiles_ok:
        table.add_row("Profiles", "[green]OK[/]", settings.slicer_config_dir)

    table.add_row("Timeout", "", f"{settings.slicer_timeout_ms} ms")
    table.add_row("Temp Dir", "", settings.slicer_temp_dir)
    console.print(table)

    if not installed:
        raise typer.Exit(code=1)


@app.command()
def sweep(
    ttl_hours: Optional[float] = typer.Option(None, "--ttl-hours", help="Override GCODE_TTL_HOURS for this run"),
):
    """Deletes G-code files older than the retention window."""
    ttl = ttl_hours if ttl_hours is not None else settings.gcode_ttl_hours
    report = CleanupSweeper(settings.slicer_temp_dir, ttl).run_once()
    console.print(f"Removed [cyan]{report.removed}[/] G-code file(s) older than {ttl:g}h "
                  f"from {settings.slicer_temp_dir} ({report.errors} error(s)).")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Runs the HTTP API with uvicorn."""
    import uvicorn

    console.print(f"Starting API on [cyan]http://{host}:{port}[/] (reload={reload})")
    uvicorn.run("slice_quote.api.main:app", host=host, port=port, reload=reload, log_level=settings.log_level.lower())


# --- Main Execution ---
if __name__ == "__main__":
    app()
