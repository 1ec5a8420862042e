"""Live telemetry dashboard."""

import time
from typing import Optional
from datetime import datetime
from threading import Event

from rich.console import Console, Group
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..collectors.live import TelemetrySampler
from ..models.telemetry import TelemetrySnapshot, TELEMETRY_PIDS


class LiveDisplay:
    """Real-time dashboard for a running telemetry sampler."""

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console()
        self._stop_event = Event()

    def create_dashboard(
        self,
        snapshot: Optional[TelemetrySnapshot],
        stats: Optional[dict] = None,
        header: str = "Live Monitor",
    ) -> Panel:
        """Create a dashboard panel with current values."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Parameter", style="cyan")
        table.add_column("Value", justify="right", style="green bold")
        table.add_column("Unit", style="dim")

        for info in TELEMETRY_PIDS:
            value = getattr(snapshot, info.field) if snapshot else None
            value_str = f"[green bold]{value:.1f}[/green bold]" if value is not None else "[red]N/A[/red]"
            table.add_row(info.name, value_str, info.unit.value)

        status_parts = [f"[dim]Updated: {datetime.now().strftime('%H:%M:%S')}[/dim]"]
        if stats:
            status_parts.append(f"[dim]Samples: {stats.get('sample_count', 0)}[/dim]")
            status_parts.append(f"[dim]{stats.get('samples_per_second', 0.0):.1f} Hz[/dim]")
            if stats.get("error_count"):
                status_parts.append(f"[red]Errors: {stats['error_count']}[/red]")

        content = Group(table, Text.from_markup(" | ".join(status_parts)))

        return Panel(
            content,
            title=f"[bold cyan]{header}[/bold cyan]",
            subtitle="[dim]Press Ctrl+C to stop[/dim]",
            border_style="cyan",
        )

    def create_gauge_display(self, snapshot: Optional[TelemetrySnapshot]) -> Panel:
        """Create a gauge-style display for key metrics."""
        lines = []

        if snapshot is not None:
            if snapshot.rpm is not None:
                rpm = snapshot.rpm
                color = "green" if rpm < 5000 else "yellow" if rpm < 6500 else "red"
                lines.append(f"RPM:   {self._make_bar(min(rpm / 8000 * 100, 100), 30, color)} {rpm:.0f}")

            if snapshot.vehicle_speed is not None:
                speed = snapshot.vehicle_speed
                lines.append(f"Speed: {self._make_bar(min(speed / 200 * 100, 100), 30)} {speed:.0f} km/h")

            if snapshot.engine_load is not None:
                load = snapshot.engine_load
                color = "green" if load < 70 else "yellow" if load < 90 else "red"
                lines.append(f"Load:  {self._make_bar(load, 30, color)} {load:.0f}%")

            if snapshot.coolant_temp is not None:
                temp = snapshot.coolant_temp
                pct = max(0, min((temp - 40) / 80 * 100, 100))
                color = "cyan" if temp < 80 else "green" if temp < 100 else "yellow" if temp < 110 else "red"
                lines.append(f"Temp:  {self._make_bar(pct, 30, color)} {temp:.0f}C")

            if snapshot.battery_voltage is not None:
                volts = snapshot.battery_voltage
                pct = max(0, min((volts - 10) / 5 * 100, 100))
                color = "red" if volts < 12 else "green" if volts <= 14.8 else "yellow"
                lines.append(f"Batt:  {self._make_bar(pct, 30, color)} {volts:.1f}V")

        content = "\n".join(lines) if lines else "[dim]No gauge data available[/dim]"
        return Panel(content, title="[bold]Gauges[/bold]", border_style="green")

    @staticmethod
    def _make_bar(percentage: float, width: int = 20, color: str = "green") -> str:
        """Create a text-based progress bar."""
        filled = int(width * percentage / 100)
        return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * (width - filled)}[/dim]"

    def render(self, sampler: TelemetrySampler, header: str, show_gauges: bool = True):
        snapshot = sampler.latest
        dashboard = self.create_dashboard(snapshot, sampler.get_statistics(), header)
        if not show_gauges:
            return dashboard

        layout = Layout()
        layout.split_column(
            Layout(dashboard, name="main", ratio=2),
            Layout(self.create_gauge_display(snapshot), name="gauges", ratio=1),
        )
        return layout

    def start_monitoring(self, sampler: TelemetrySampler, header: str = "Live Monitor", refresh_rate: float = 0.5,
                         show_gauges: bool = True) -> None:
        """
        Render the sampler's latest snapshot until stopped or interrupted.

        Args:
            sampler: Running sampler to read from
            header: Title shown on the dashboard
            refresh_rate: Seconds between screen updates
            show_gauges: Show the gauge panel below the table
        """
        self._stop_event.clear()

        with Live(self.render(sampler, header, show_gauges), console=self._console, refresh_per_second=1 / refresh_rate) as live:
            while not self._stop_event.is_set() and sampler.is_running:
                try:
                    live.update(self.render(sampler, header, show_gauges))
                    time.sleep(refresh_rate)
                except KeyboardInterrupt:
                    break

    def stop_monitoring(self) -> None:
        self._stop_event.set()
