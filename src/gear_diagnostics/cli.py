"""gear-diag command line interface."""

from pathlib import Path
from typing import Optional, List

import typer

from .config import EngineConfig
from .connection.adapter import AdapterDetector
from .decoders.dtc import DTCDecoder
from .display.console import console as display_console, configure_logging
from .display.tables import TableDisplay
from .display.live import LiveDisplay
from .engine import DiagnosticsEngine, DiagnosticContext
from .errors import DiagnosticsError, NotFound
from .models.dtc import CodeFilter, DiagnosticCode, is_valid_dtc, normalize_dtc
from .models.vehicle import VehicleContext
from .storage.repository import InMemoryVehicleRepository


# Create Typer apps
app = typer.Typer(
    name="gear-diag",
    help="Vehicle diagnostics - read trouble codes, score vehicle health and triage symptoms",
    no_args_is_help=True,
)

dtc_app = typer.Typer(help="Diagnostic Trouble Code operations")
app.add_typer(dtc_app, name="dtc")

# Global state
_config: Optional[EngineConfig] = None
_vehicle: Optional[VehicleContext] = None
_engine: Optional[DiagnosticsEngine] = None
_table_display = TableDisplay(display_console.rich_console)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Adapter serial port"),
    oracle_url: Optional[str] = typer.Option(None, "--oracle-url", help="Reasoning service endpoint"),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Directory for diagnostic history"),
    vehicle_id: str = typer.Option("default", "--vehicle-id", help="Vehicle identifier"),
    user_id: str = typer.Option("local", "--user-id", help="Owning user"),
    vin: str = typer.Option("", "--vin", help="Vehicle Identification Number"),
    make: str = typer.Option("Unknown", "--make", help="Vehicle make"),
    model: str = typer.Option("Unknown", "--model", help="Vehicle model"),
    year: Optional[int] = typer.Option(None, "--year", help="Model year"),
    trim: Optional[str] = typer.Option(None, "--trim", help="Trim level"),
    mileage: Optional[int] = typer.Option(None, "--mileage", min=0, help="Current odometer reading"),
):
    """Configure logging, the engine and the vehicle for the command."""
    global _config, _vehicle, _engine

    configure_logging(verbose, display_console.rich_console)

    config = EngineConfig.from_env()
    overrides = {}
    if port:
        overrides["adapter_port"] = port
    if oracle_url:
        overrides["oracle_url"] = oracle_url
    if data_dir:
        overrides["data_dir"] = data_dir
    _config = config.model_copy(update=overrides)

    _vehicle = VehicleContext(
        vehicle_id=vehicle_id,
        user_id=user_id,
        vin=vin.strip().upper(),
        make=make,
        model=model,
        year=year,
        trim=trim,
        mileage=mileage,
    )
    _engine = None


def get_engine() -> DiagnosticsEngine:
    """Get or create the engine for this invocation."""
    global _engine
    if _engine is None:
        vehicles = InMemoryVehicleRepository([_vehicle] if _vehicle else [])
        _engine = DiagnosticsEngine.from_config(_config or EngineConfig.from_env(), vehicles=vehicles)
    return _engine


def get_context() -> DiagnosticContext:
    return get_engine().context(_vehicle.vehicle_id, _vehicle.user_id)


def fail(error: Exception) -> None:
    """Report an error and exit."""
    display_console.error(str(error))
    raise typer.Exit(1)


def _connect(engine: DiagnosticsEngine):
    session = engine.require_session()
    display_console.info("Connecting to adapter...")
    state = session.connect()
    if not state.is_connected:
        fail(DiagnosticsError(state.error_message or "Could not connect to adapter"))
    display_console.success(f"Connected via {state.adapter_name} ({state.protocol})")
    return session


def _find_code(context: DiagnosticContext, ref: str) -> DiagnosticCode:
    """Match a full diagnostic id or a unique prefix of one."""
    matches = [c for c in context.list_codes() if c.diagnostic_id.startswith(ref)]
    if not matches:
        raise NotFound(f"No code record matches {ref!r}")
    if len(matches) > 1:
        raise NotFound(f"{ref!r} matches {len(matches)} code records, use a longer id")
    return matches[0]


@app.command()
def scan():
    """Scan for OBD2 adapters."""
    display_console.header("Scanning for OBD2 Adapters")

    adapters = AdapterDetector.detect_all()

    if not adapters:
        display_console.warning("No adapters found")
        display_console.info("Make sure your OBD2 adapter is plugged in")
        return

    _table_display.show(_table_display.adapters_table(adapters))

    best = AdapterDetector.find_best_adapter()
    if best:
        display_console.success(f"Recommended adapter: {best.port}")


@app.command()
def monitor(
    interval: Optional[int] = typer.Option(None, "--interval", "-i", min=1, help="Sample interval in ms"),
    no_gauges: bool = typer.Option(False, "--no-gauges", help="Disable gauge display"),
):
    """Live telemetry dashboard."""
    global _config
    if interval:
        _config = _config.model_copy(update={"sample_interval_ms": interval})

    engine = get_engine()
    try:
        session = _connect(engine)
    except DiagnosticsError as e:
        fail(e)

    display_console.info("Press Ctrl+C to stop\n")
    live_display = LiveDisplay(display_console.rich_console)

    try:
        live_display.start_monitoring(
            session.sampler,
            header=_vehicle.description,
            refresh_rate=max(engine.config.sample_interval_ms / 1000, 0.1),
            show_gauges=not no_gauges,
        )
    except KeyboardInterrupt:
        pass
    finally:
        final = session.disconnect()

    if final.error_message:
        display_console.error(final.error_message)
    display_console.info("Monitoring stopped")


# ============ DTC Commands ============

@dtc_app.command("read")
def dtc_read(
    freeze_frame: bool = typer.Option(True, "--freeze-frame/--no-freeze-frame", help="Capture freeze frame data"),
):
    """Read codes from the vehicle and record them."""
    engine = get_engine()
    try:
        session = _connect(engine)
        try:
            codes = get_context().scan(capture_freeze_frame=freeze_frame)
        finally:
            session.disconnect()
    except DiagnosticsError as e:
        fail(e)

    display_console.header("Diagnostic Trouble Codes", _vehicle.description)
    active = [c for c in codes if c.is_open]
    if not active:
        display_console.success("No active diagnostic trouble codes")
        return

    _table_display.show(_table_display.codes_table(active, "Active DTCs"))


@dtc_app.command("list")
def dtc_list(
    status: CodeFilter = typer.Option(CodeFilter.ALL, "--status", "-s", help="Filter by status"),
):
    """List recorded codes, newest first."""
    try:
        codes = get_context().list_codes(status)
    except DiagnosticsError as e:
        fail(e)

    if not codes:
        display_console.info("No codes recorded")
        return

    _table_display.show(_table_display.codes_table(codes, f"DTC History ({status.value})"))


@dtc_app.command("resolve")
def dtc_resolve(
    diagnostic_id: str = typer.Argument(..., help="Code record id or unique prefix"),
):
    """Mark a code as repaired."""
    try:
        context = get_context()
        code = context.resolve(_find_code(context, diagnostic_id).diagnostic_id)
    except DiagnosticsError as e:
        fail(e)

    display_console.success(f"{code.code} marked {code.status.value}")


@dtc_app.command("false-positive")
def dtc_false_positive(
    diagnostic_id: str = typer.Argument(..., help="Code record id or unique prefix"),
):
    """Mark a code as a false positive."""
    try:
        context = get_context()
        code = context.mark_false_positive(_find_code(context, diagnostic_id).diagnostic_id)
    except DiagnosticsError as e:
        fail(e)

    display_console.success(f"{code.code} marked {code.status.value}")


@dtc_app.command("clear")
def dtc_clear(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
):
    """Clear codes from the vehicle's ECU memory."""
    if not force:
        display_console.warning("This will clear all DTCs and turn off the check engine light.")
        display_console.warning("Recorded code history is kept; resolve codes separately.")
        if not display_console.confirm("Are you sure you want to clear DTCs?"):
            display_console.info("Cancelled")
            return

    engine = get_engine()
    try:
        session = _connect(engine)
        try:
            cleared = get_context().clear_adapter_codes()
        finally:
            session.disconnect()
    except DiagnosticsError as e:
        fail(e)

    if cleared:
        display_console.success("DTCs cleared successfully")
        display_console.info("Note: MIL may take a drive cycle to turn off")
    else:
        display_console.error("Failed to clear DTCs")
        raise typer.Exit(1)


@dtc_app.command("analyze")
def dtc_analyze(
    ref: str = typer.Argument(..., help="DTC code (e.g., P0420) or code record id"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Analysis timeout in seconds"),
):
    """Analyze a code: causes, cost and urgency."""
    try:
        context = get_context()
        code = normalize_dtc(ref)
        if is_valid_dtc(code):
            analysis = context.analyze(code=code, timeout=timeout)
        else:
            record = _find_code(context, ref)
            analysis = context.analyze(diagnostic_id=record.diagnostic_id, timeout=timeout)
    except DiagnosticsError as e:
        fail(e)

    _table_display.show(_table_display.analysis_table(analysis))


@dtc_app.command("search")
def dtc_search(
    query: str = typer.Argument(..., help="Search by code or description"),
):
    """Search the local code database."""
    decoder = DTCDecoder()
    codes: List[str] = decoder.search(query)

    if not codes:
        display_console.warning(f"No codes found matching '{query}'")
        return

    display_console.header(f"Search Results for '{query}'")
    for code in codes[:20]:
        display_console.print(f"  [yellow bold]{code}[/yellow bold]: {decoder.get_description(code)}")

    if len(codes) > 20:
        display_console.info(f"... and {len(codes) - 20} more")


# ============ Health, Symptoms, Recalls ============

@app.command()
def health(
    recalculate: bool = typer.Option(False, "--recalculate", "-r", help="Compute a fresh score"),
    history: bool = typer.Option(False, "--history", help="Show past scores"),
):
    """Show the vehicle health score."""
    try:
        context = get_context()
        if history:
            scores = context.health_history()
            if not scores:
                display_console.info("No health scores recorded")
                return
            display_console.header("Health History", _vehicle.description)
            for score in scores:
                display_console.print(
                    f"  {score.calculated_at:%Y-%m-%d %H:%M}  "
                    f"[health.{score.status.value}]{score.overall_score:3d}[/health.{score.status.value}]  "
                    f"{score.trend.value}"
                )
            return

        score = None if recalculate else context.latest_health()
        if score is None:
            score = context.recalculate_health(mileage=_vehicle.mileage)
    except DiagnosticsError as e:
        fail(e)

    _table_display.show(_table_display.health_table(score))


@app.command()
def symptoms(
    text: str = typer.Argument(..., help="Describe what the vehicle is doing"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Analysis timeout in seconds"),
):
    """Triage a symptom description into a diagnostic flowchart."""
    try:
        check = get_context().check_symptoms(text, timeout=timeout)
    except DiagnosticsError as e:
        fail(e)

    if check.ai_analysis:
        display_console.panel(check.ai_analysis, title="Analysis")
    if check.suggested_codes:
        display_console.info(f"Possible codes: {', '.join(check.suggested_codes)}")
    for cause in check.probable_causes:
        display_console.print(f"  - {cause}")
    if check.flowchart_steps:
        _table_display.show(_table_display.symptom_table(check))
    for recall in check.related_recalls:
        display_console.warning(f"Recall {recall}")


@app.command()
def recalls():
    """Look up NHTSA recalls for the vehicle."""
    engine = get_engine()
    lookup = engine.recall_lookup
    results = lookup.lookup(_vehicle.make, _vehicle.model, _vehicle.year)

    if not results:
        display_console.info(f"No recalls found for {_vehicle.description}")
        return

    _table_display.show(_table_display.recalls_table(results, f"Recalls for {_vehicle.description}"))


# ============ Version Command ============

@app.command()
def version():
    """Show version information."""
    display_console.print_banner()


if __name__ == "__main__":
    app()
