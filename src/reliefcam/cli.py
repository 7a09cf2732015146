"""
Command-line interface for ReliefCAM.

Provides commands for carving a mesh into G-code, analyzing reliefs,
exporting saved heightmaps, checking stock fit, and listing configuration.
"""

import time
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from reliefcam import __version__
from reliefcam.carve.carve_job import CarveJob, CarveJobState
from reliefcam.carve.gcode_export import export_gcode
from reliefcam.carve.heightmap import Heightmap
from reliefcam.carve.model_fitter import FitParams, ModelFitter, StockDimensions
from reliefcam.carve.tool_recommender import RecommendationInput, ToolRecommender
from reliefcam.carve.toolpath_types import MillDirection, ScanAxis, StepoverPreset
from reliefcam.core.config import CarveSettings, ConfigManager
from reliefcam.core.exceptions import ReliefCamError
from reliefcam.core.geometry import GeometryLoader, MeshData
from reliefcam.core.logging import bind_job_context, configure_logging
from reliefcam.core.tools import ToolGeometry, ToolType

console = Console()

DEFAULT_FINISH_TOOL = ToolGeometry(tool_type=ToolType.V_BIT, diameter=6.35, included_angle=60.0)


def _config(ctx: click.Context) -> Optional[ConfigManager]:
    config_dir = ctx.obj.get("config_dir")
    if config_dir is None:
        return None
    return ConfigManager(config_dir=config_dir)


def _fit(
    mesh: MeshData,
    stock: Optional[tuple[float, float, float]],
    settings: CarveSettings,
    scale: float,
    depth: float,
    auto_scale: bool,
    offset: tuple[float, float],
) -> tuple[ModelFitter, FitParams]:
    fitter = ModelFitter()
    fitter.set_model_bounds(mesh.bounds_min, mesh.bounds_max)

    if stock:
        fitter.set_stock(StockDimensions(*stock))
    elif settings.stock.thickness > 0.0:
        fitter.set_stock(settings.stock_dimensions())
    else:
        ext_x, ext_y, ext_z = mesh.extents
        fitter.set_stock(StockDimensions(ext_x * scale, ext_y * scale, depth if depth > 0 else ext_z * scale))

    params = FitParams(scale=scale, depth_mm=depth, offset_x=offset[0], offset_y=offset[1])
    if auto_scale:
        params.scale = fitter.auto_scale()
    return fitter, params


def _build_heightmap(job: CarveJob, mesh: MeshData, fitter: ModelFitter, params: FitParams, settings: CarveSettings) -> None:
    with Progress(
        TextColumn("[cyan]Rasterizing"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("heightmap", total=1.0)
        job.start_heightmap(mesh.vertices, mesh.indices, fitter, params, settings.heightmap_config())
        while not job.wait(timeout=0.1):
            progress.update(task, completed=job.progress)
        progress.update(task, completed=1.0)

    if job.state != CarveJobState.READY:
        raise ReliefCamError(
            "Heightmap build did not complete",
            details={"state": job.state.value, "error": job.error_message},
        )


def _stock_option(f):
    return click.option(
        "--stock",
        nargs=3,
        type=float,
        default=None,
        metavar="W H T",
        help="Stock width, height and thickness (mm)",
    )(f)


def _fit_options(f):
    f = click.option("--scale", type=float, default=1.0, show_default=True, help="Uniform XY scale")(f)
    f = click.option("--depth", type=float, default=0.0, help="Carve depth in mm (0 = model depth)")(f)
    f = click.option("--auto-scale", is_flag=True, help="Scale the model to fill the stock")(f)
    f = click.option("--offset", nargs=2, type=float, default=(0.0, 0.0), metavar="X Y", help="Offset on stock (mm)")(f)
    return _stock_option(f)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Configuration directory",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx: click.Context, config_dir: Optional[Path], verbose: bool, json_logs: bool) -> None:
    """ReliefCAM - 2.5D relief carving toolpaths from triangle meshes."""
    configure_logging(level="DEBUG" if verbose else "WARNING", json_output=json_logs)
    ctx.ensure_object(dict)
    ctx.obj["config_dir"] = config_dir


# =============================================================================
# Carve
# =============================================================================


@main.command()
@click.argument("mesh_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), required=True, help="G-code output file")
@click.option("--resolution", type=float, default=None, help="Heightmap resolution (mm)")
@click.option("--tool", "tool_name", default=None, help="Finishing tool name from config")
@click.option("--tool-angle", type=float, default=None, help="V-bit included angle (deg)")
@click.option("--clear-tool", "clear_tool_name", default=None, help="Clearing tool name from config")
@click.option("--clear-diameter", type=float, default=None, help="Clearing end mill diameter (mm)")
@click.option("--machine", "machine_name", default=None, help="Machine profile for travel checks")
@click.option("--stepover", type=click.Choice([p.value for p in StepoverPreset]), default=None)
@click.option("--axis", type=click.Choice([a.value for a in ScanAxis]), default=None)
@click.option("--direction", type=click.Choice([d.value for d in MillDirection]), default=None)
@click.option("--save-heightmap", type=click.Path(path_type=Path), default=None, help="Also save .dwhm")
@_fit_options
@click.pass_context
def carve(
    ctx: click.Context,
    mesh_path: Path,
    output: Path,
    resolution: Optional[float],
    tool_name: Optional[str],
    tool_angle: Optional[float],
    clear_tool_name: Optional[str],
    clear_diameter: Optional[float],
    machine_name: Optional[str],
    stepover: Optional[str],
    axis: Optional[str],
    direction: Optional[str],
    save_heightmap: Optional[Path],
    stock: Optional[tuple[float, float, float]],
    scale: float,
    depth: float,
    auto_scale: bool,
    offset: tuple[float, float],
) -> None:
    """Carve a mesh into a G-code relief program."""
    try:
        config = _config(ctx)
        settings = config.carve if config else CarveSettings()
        if resolution is not None:
            settings.heightmap.resolution_mm = resolution
        if stepover is not None:
            settings.toolpath.stepover = StepoverPreset(stepover)
        if axis is not None:
            settings.toolpath.axis = ScanAxis(axis)
        if direction is not None:
            settings.toolpath.direction = MillDirection(direction)

        tool_name = tool_name or settings.finish_tool
        clear_tool_name = clear_tool_name or settings.clear_tool
        machine_name = machine_name or settings.machine
        if (tool_name or clear_tool_name or machine_name) and config is None:
            raise ReliefCamError("Named tools and machines require --config-dir")

        finish_tool = config.get_tool(tool_name) if tool_name else DEFAULT_FINISH_TOOL
        if tool_angle is not None:
            finish_tool = ToolGeometry(tool_type=ToolType.V_BIT, diameter=finish_tool.diameter, included_angle=tool_angle)
        clear_tool = None
        if clear_tool_name:
            clear_tool = config.get_tool(clear_tool_name)
        elif clear_diameter:
            clear_tool = ToolGeometry(tool_type=ToolType.END_MILL, diameter=clear_diameter)
        travel = config.get_machine(machine_name).travel if machine_name else None

        mesh = GeometryLoader.load(mesh_path)
        bind_job_context(command="carve", model=mesh.name)
        fitter, params = _fit(mesh, stock, settings, scale, depth, auto_scale, offset)
        fit = fitter.fit(params)
        if fit.warning:
            console.print(f"[yellow]![/yellow] {fit.warning}")

        t0 = time.perf_counter()
        job = CarveJob()
        _build_heightmap(job, mesh, fitter, params, settings)
        if save_heightmap is not None and not job.heightmap.save(save_heightmap):
            console.print(f"[yellow]![/yellow] Could not save heightmap to {save_heightmap}")

        tool_angle_deg = finish_tool.included_angle if finish_tool.tool_type == ToolType.V_BIT else settings.tool_angle_deg
        job.analyze_heightmap(tool_angle_deg, settings.min_island_area_mm2)
        tp_config = settings.toolpath_config()
        result = job.generate_toolpath(tp_config, finish_tool, clear_tool, travel)

        if not export_gcode(output, result, tp_config, mesh.name, finish_tool.display_name):
            raise ReliefCamError(f"Failed to write G-code: {output}")

        table = Table(title=f"Carve: {mesh.name}")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        table.add_row("Heightmap", f"{job.heightmap.cols} x {job.heightmap.rows} @ {job.heightmap.resolution:g} mm")
        table.add_row("Finishing tool", finish_tool.display_name)
        table.add_row("Islands", str(len(job.islands.islands)))
        table.add_row("Clearing pass", "yes" if not result.clearing.empty else "no")
        table.add_row("G-code lines", str(result.total_line_count))
        table.add_row("Estimated time", f"{result.total_time_sec / 60.0:.1f} min")
        table.add_row("Compute time", f"{time.perf_counter() - t0:.2f} s")
        console.print(table)

        for warning in result.finishing.warnings + result.clearing.warnings:
            console.print(f"[yellow]![/yellow] {warning}")
        console.print(f"[green]✓[/green] Wrote {output}")
    except ReliefCamError as e:
        console.print(f"[red]✗[/red] Carve failed: {e}")
        raise SystemExit(1)


# =============================================================================
# Analyze
# =============================================================================


@main.command()
@click.argument("mesh_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--resolution", type=float, default=None, help="Heightmap resolution (mm)")
@click.option("--tool-angle", type=float, default=None, help="Tapered tool included angle (deg)")
@click.option("--min-island-area", type=float, default=None, help="Smallest island kept (mm^2)")
@_fit_options
@click.pass_context
def analyze(
    ctx: click.Context,
    mesh_path: Path,
    resolution: Optional[float],
    tool_angle: Optional[float],
    min_island_area: Optional[float],
    stock: Optional[tuple[float, float, float]],
    scale: float,
    depth: float,
    auto_scale: bool,
    offset: tuple[float, float],
) -> None:
    """Report curvature, islands and tool recommendations for a mesh."""
    try:
        config = _config(ctx)
        settings = config.carve if config else CarveSettings()
        if resolution is not None:
            settings.heightmap.resolution_mm = resolution
        angle = tool_angle if tool_angle is not None else settings.tool_angle_deg
        min_area = min_island_area if min_island_area is not None else settings.min_island_area_mm2

        mesh = GeometryLoader.load(mesh_path)
        bind_job_context(command="analyze", model=mesh.name)
        fitter, params = _fit(mesh, stock, settings, scale, depth, auto_scale, offset)
        job = CarveJob()
        _build_heightmap(job, mesh, fitter, params, settings)
        job.analyze_heightmap(angle, min_area)

        curv = job.curvature
        table = Table(title=f"Analysis: {mesh.name}")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        table.add_row("Heightmap", f"{job.heightmap.cols} x {job.heightmap.rows}")
        table.add_row("Z range", f"{job.heightmap.min_z:.3f} .. {job.heightmap.max_z:.3f} mm")
        table.add_row("Concave cells", str(curv.concave_point_count))
        if curv.concave_point_count:
            table.add_row(
                "Min concave radius",
                f"{curv.min_concave_radius:.3f} mm at ({curv.min_radius_col}, {curv.min_radius_row})",
            )
            table.add_row("Avg concave radius", f"{curv.avg_concave_radius:.3f} mm")
        console.print(table)

        if job.islands.islands:
            islands = Table(title=f"Islands ({angle:g} deg tool)")
            for col in ("ID", "Cells", "Area mm²", "Depth mm", "Min clear dia mm", "Centroid"):
                islands.add_column(col)
            for island in job.islands.islands:
                islands.add_row(
                    str(island.id),
                    str(len(island.cells)),
                    f"{island.area_mm2:.2f}",
                    f"{island.depth:.3f}",
                    f"{island.min_clear_diameter:.2f}",
                    f"({island.centroid[0]:.1f}, {island.centroid[1]:.1f})",
                )
            console.print(islands)
        else:
            console.print("[green]✓[/green] No islands: a single tapered pass reaches every cell")

        if config is not None and config.list_tools():
            recommender = ToolRecommender()
            for geom in config.tool_library():
                recommender.add_candidate(geom)
            fit = fitter.fit(params)
            rec = recommender.recommend(
                RecommendationInput(
                    curvature=curv,
                    islands=job.islands,
                    model_depth_mm=fit.model_max[2] - fit.model_min[2],
                    stock_thickness_mm=fitter.stock.thickness,
                )
            )
            for role, candidates in (("Finishing", rec.finishing), ("Clearing", rec.clearing)):
                if not candidates:
                    continue
                rec_table = Table(title=f"Recommended {role} Tools")
                rec_table.add_column("Tool", style="cyan")
                rec_table.add_column("Score")
                rec_table.add_column("Why")
                for c in candidates:
                    rec_table.add_row(c.geometry.display_name, f"{c.score:.2f}", c.reasoning)
                console.print(rec_table)
    except ReliefCamError as e:
        console.print(f"[red]✗[/red] Analysis failed: {e}")
        raise SystemExit(1)


# =============================================================================
# Heightmap Commands
# =============================================================================


@main.group()
def heightmap() -> None:
    """Saved heightmap commands."""
    pass


@heightmap.command("export")
@click.argument("heightmap_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("output", type=click.Path(path_type=Path))
def heightmap_export(heightmap_path: Path, output: Path) -> None:
    """Export a .dwhm heightmap as a 16-bit grayscale PGM image."""
    hm = Heightmap()
    if not hm.load(heightmap_path):
        console.print(f"[red]✗[/red] Not a valid heightmap: {heightmap_path}")
        raise SystemExit(1)
    if not hm.export_png(output):
        console.print(f"[red]✗[/red] Failed to write image for {output}")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] Exported {hm.cols} x {hm.rows} image to {output.with_suffix('.pgm')}")


# =============================================================================
# Fit
# =============================================================================


@main.command()
@click.argument("mesh_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--machine", "machine_name", default=None, help="Machine profile for travel checks")
@_fit_options
@click.pass_context
def fit(
    ctx: click.Context,
    mesh_path: Path,
    machine_name: Optional[str],
    stock: Optional[tuple[float, float, float]],
    scale: float,
    depth: float,
    auto_scale: bool,
    offset: tuple[float, float],
) -> None:
    """Check how a mesh fits on the stock and machine."""
    try:
        config = _config(ctx)
        settings = config.carve if config else CarveSettings()
        mesh = GeometryLoader.load(mesh_path)
        bind_job_context(command="fit", model=mesh.name)
        fitter, params = _fit(mesh, stock, settings, scale, depth, auto_scale, offset)
        machine_name = machine_name or settings.machine
        if machine_name:
            if config is None:
                raise ReliefCamError("Named machines require --config-dir")
            fitter.set_machine_travel(*config.get_machine(machine_name).travel)
        result = fitter.fit(params)

        table = Table(title=f"Fit: {mesh.name}")
        table.add_column("Property", style="cyan")
        table.add_column("Value")
        stock_dims = fitter.stock
        table.add_row("Stock", f"{stock_dims.width:g} x {stock_dims.height:g} x {stock_dims.thickness:g} mm")
        table.add_row("Scale", f"{params.scale:.4f}")
        table.add_row("Min", ", ".join(f"{v:.3f}" for v in result.model_min))
        table.add_row("Max", ", ".join(f"{v:.3f}" for v in result.model_max))
        table.add_row("Fits stock", "[green]yes[/green]" if result.fits_stock else "[red]no[/red]")
        table.add_row("Fits machine", "[green]yes[/green]" if result.fits_machine else "[red]no[/red]")
        console.print(table)
        if result.warning:
            console.print(f"[yellow]![/yellow] {result.warning}")
    except ReliefCamError as e:
        console.print(f"[red]✗[/red] Fit failed: {e}")
        raise SystemExit(1)


# =============================================================================
# Config Commands
# =============================================================================


@main.group("config")
def config_group() -> None:
    """Configuration commands."""
    pass


@config_group.command("list-machines")
@click.pass_context
def list_machines(ctx: click.Context) -> None:
    """List available machine profiles."""
    try:
        config = _config(ctx)
        if config is None:
            raise ReliefCamError("--config-dir is required")
        table = Table(title="Machines")
        table.add_column("Name", style="cyan")
        table.add_column("Travel X/Y/Z (mm)")
        for name in config.list_machines():
            m = config.get_machine(name)
            table.add_row(name, f"{m.travel_x:g} / {m.travel_y:g} / {m.travel_z:g}")
        console.print(table)
    except ReliefCamError as e:
        console.print(f"[red]✗[/red] {e}")
        raise SystemExit(1)


@config_group.command("list-tools")
@click.pass_context
def list_tools(ctx: click.Context) -> None:
    """List available tool definitions."""
    try:
        config = _config(ctx)
        if config is None:
            raise ReliefCamError("--config-dir is required")
        table = Table(title="Tools")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Diameter")
        table.add_column("Tip diameter")
        for name in config.list_tools():
            tool = config.get_tool(name)
            table.add_row(name, tool.display_name, f"{tool.diameter:g}", f"{tool.tip_diameter:g}")
        console.print(table)
    except ReliefCamError as e:
        console.print(f"[red]✗[/red] {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
