"""Table display utilities for the diagnostics CLI."""

from typing import List, Optional

from rich.table import Table
from rich.console import Console

from ..collectors.recalls import Recall
from ..connection.adapter import AdapterCandidate
from ..decoders.dtc import DTCDecoder
from ..models.dtc import DiagnosticCode, DTCAnalysis
from ..models.health import VehicleHealthScore
from ..models.symptom import SymptomCheck
from ..models.telemetry import TelemetrySnapshot, TELEMETRY_PIDS


def _truncate(text: str, width: int) -> str:
    return text[:width] + "..." if len(text) > width else text


class TableDisplay:
    """Create and display formatted tables."""

    def __init__(self, console: Optional[Console] = None, decoder: Optional[DTCDecoder] = None):
        self._console = console or Console()
        self._decoder = decoder or DTCDecoder()

    def codes_table(self, codes: List[DiagnosticCode], title: str = "Diagnostic Trouble Codes") -> Table:
        """Create a table of code records."""
        table = Table(title=title, show_header=True, header_style="bold cyan")

        table.add_column("ID", style="dim", width=8)
        table.add_column("Code", style="yellow bold", width=8)
        table.add_column("Type", style="dim", width=11)
        table.add_column("Severity", width=10)
        table.add_column("Status", width=14)
        table.add_column("Description", style="white")
        table.add_column("System", style="dim")
        table.add_column("Detected", style="dim")

        for code in codes:
            severity = code.severity.value
            table.add_row(
                code.diagnostic_id[:8],
                code.code,
                code.code_type.label,
                f"[severity.{severity}]{severity}[/severity.{severity}]",
                code.status.value,
                _truncate(code.description, 50),
                self._decoder.system_for(code.code, code.description).value,
                code.detected_at.strftime("%Y-%m-%d"),
            )

        return table

    def analysis_table(self, analysis: DTCAnalysis) -> Table:
        """Create a table summarizing one analysis."""
        table = Table(title=f"Analysis of {analysis.code}", show_header=True, header_style="bold cyan")

        table.add_column("Property", style="cyan")
        table.add_column("Value", style="white")

        urgency = analysis.urgency.value
        table.add_row("Description", analysis.description)
        table.add_row("Urgency", f"[severity.{urgency}]{urgency}[/severity.{urgency}]")
        table.add_row("Estimated cost", f"${analysis.estimated_cost_min:,.0f} - ${analysis.estimated_cost_max:,.0f}")
        table.add_row("Labor / parts", f"${analysis.labor_cost:,.0f} / ${analysis.parts_cost:,.0f}")
        table.add_row("Difficulty", analysis.repair_difficulty.value)
        table.add_row("DIY or shop", analysis.diy_vs_shop.value)
        if analysis.recommendation_rationale:
            table.add_row("Why", analysis.recommendation_rationale)

        for i, cause in enumerate(analysis.probable_causes):
            table.add_row("Probable causes" if i == 0 else "", f"{cause.likelihood * 100:.0f}%  {cause.cause}")
        for i, symptom in enumerate(analysis.symptoms):
            table.add_row("Symptoms" if i == 0 else "", symptom)
        for i, tsb in enumerate(analysis.tech_service_bulletins):
            table.add_row("Service bulletins" if i == 0 else "", tsb)

        return table

    def health_table(self, score: VehicleHealthScore) -> Table:
        """Create a table of per-system health scores."""
        status = score.status.value
        title = (f"Vehicle Health: [health.{status}]{score.overall_score}[/health.{status}] "
                 f"({status}, {score.trend.value})")
        table = Table(title=title, show_header=True, header_style="bold cyan")

        table.add_column("System", style="cyan")
        table.add_column("Score", justify="right", width=6)
        table.add_column("Status", width=9)
        table.add_column("Factors", style="dim")

        for system in score.systems:
            system_status = system.status.value
            table.add_row(
                system.system.value,
                str(system.score),
                f"[health.{system_status}]{system_status}[/health.{system_status}]",
                "\n".join(system.factors) or "-",
            )

        return table

    def symptom_table(self, check: SymptomCheck) -> Table:
        """Create a table of a symptom check's flowchart."""
        urgency = check.urgency.value
        table = Table(
            title=f"Symptom check ([severity.{urgency}]{urgency}[/severity.{urgency}])",
            show_header=True,
            header_style="bold cyan",
        )

        table.add_column("Step", justify="right", width=5)
        table.add_column("Instruction")
        table.add_column("Check", style="cyan")
        table.add_column("If yes", style="green")
        table.add_column("If no", style="yellow")

        for step in check.flowchart_steps:
            table.add_row(str(step.step), step.instruction, step.check or "-", step.if_yes or "-", step.if_no or "-")

        return table

    def snapshot_table(self, snapshot: TelemetrySnapshot, title: str = "Live Data") -> Table:
        """Create a table of telemetry values."""
        table = Table(title=title, show_header=True, header_style="bold cyan")

        table.add_column("Parameter", style="cyan bold", width=22)
        table.add_column("Value", justify="right", width=12)
        table.add_column("Unit", style="dim", width=6)

        for info in TELEMETRY_PIDS:
            value = getattr(snapshot, info.field)
            value_str = f"{value:.2f}" if value is not None else "[red]N/A[/red]"
            table.add_row(info.name, value_str, info.unit.value)

        return table

    def adapters_table(self, adapters: List[AdapterCandidate]) -> Table:
        """Create a table of detected adapters."""
        table = Table(title="Detected OBD2 Adapters", show_header=True, header_style="bold cyan")

        table.add_column("Port", style="cyan bold")
        table.add_column("Type", width=20)
        table.add_column("Description", width=35)
        table.add_column("Manufacturer", width=20)

        for adapter in adapters:
            table.add_row(adapter.port, adapter.adapter_type.value, adapter.description or "-", adapter.manufacturer or "-")

        return table

    def recalls_table(self, recalls: List[Recall], title: str = "NHTSA Recalls") -> Table:
        table = Table(title=title, show_header=True, header_style="bold cyan")

        table.add_column("Campaign", style="yellow bold")
        table.add_column("Component", width=30)
        table.add_column("Summary")

        for recall in recalls:
            table.add_row(recall.campaign_number, recall.component, _truncate(recall.summary, 120))

        return table

    def show(self, table: Table) -> None:
        """Display a table to the console."""
        self._console.print(table)
        self._console.print()
