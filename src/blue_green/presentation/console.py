"""Rich-based console rendering of deployments.

:class:`ConsoleDashboard` prints deployment records, their transition
history, the routing table and the audit trail as ``rich`` tables.  Output
goes to ``sys.stdout`` by default; pass any text stream to capture it.
"""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from blue_green.domain.entities import DeploymentRecord, TargetPool
from blue_green.domain.enums import DeploymentOutcome, RouteName
from blue_green.domain.values import Route
from blue_green.services.audit_trail import AuditEntry

_OUTCOME_STYLES = {
    DeploymentOutcome.FINALIZED: "green",
    DeploymentOutcome.ROLLED_BACK: "yellow",
    DeploymentOutcome.ABORTED: "red",
}


def _fmt_time(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%H:%M:%S")


class ConsoleDashboard:
    """Console presentation of deployment state.

    Parameters
    ----------
    file:
        Output stream.  Defaults to ``sys.stdout``.
    color:
        Force (``True``) or disable (``False``) colour.  ``None`` lets rich
        detect the terminal.
    width:
        Fixed render width.  ``None`` uses the terminal width.
    """

    def __init__(
        self,
        file: Any = None,
        color: bool | None = None,
        width: int | None = None,
    ) -> None:
        self._file = file or sys.stdout
        kwargs: dict[str, Any] = {"file": self._file, "highlight": False}
        if color is False:
            kwargs["no_color"] = True
        elif color is True:
            kwargs["force_terminal"] = True
        if width is not None:
            kwargs["width"] = width
        self._console = Console(**kwargs)

    @property
    def console(self) -> Console:
        return self._console

    # -- public API --------------------------------------------------------

    def print_record(self, record: DeploymentRecord) -> None:
        """Print one deployment record and its transition history."""
        if record.outcome is None:
            outcome = "[cyan]in progress[/cyan]"
        else:
            style = _OUTCOME_STYLES[record.outcome]
            outcome = f"[{style}]{record.outcome.value}[/{style}]"

        self._console.print()
        self._console.print(f"[bold]Deployment {record.deployment_id}[/bold] ({record.service})")
        self._console.print(f"  outcome:   {outcome}")
        self._console.print(f"  state:     {record.state.value}")
        self._console.print(f"  previous:  {record.previous_pool_id}")
        self._console.print(f"  candidate: {record.candidate_pool_id or '-'}")
        self._console.print(f"  bake:      {record.bake_duration:.0f}s")
        if record.failure:
            kind = record.failure_kind.value if record.failure_kind else "failure"
            self._console.print(f"  [yellow]{kind}:[/yellow] {escape(record.failure)}")
        if record.unresolved_error:
            self._console.print(f"  [bold red]unresolved:[/bold red] {escape(record.unresolved_error)}")

        table = Table(title="Transitions", show_header=True, header_style="bold cyan")
        table.add_column("#", justify="right")
        table.add_column("Time")
        table.add_column("From")
        table.add_column("To", style="bold")
        table.add_column("Reason")
        for i, t in enumerate(record.transitions, start=1):
            table.add_row(
                str(i),
                _fmt_time(t.timestamp),
                t.previous_state.value,
                t.new_state.value,
                escape(t.reason),
            )
        self._console.print(table)
        self._console.print()

    def print_history(self, records: Iterable[DeploymentRecord]) -> None:
        """Print a one-line-per-deployment summary table."""
        records = list(records)
        if not records:
            self._console.print("(no deployments)")
            return
        table = Table(title="Deployments", show_header=True, header_style="bold cyan")
        table.add_column("Deployment")
        table.add_column("Started")
        table.add_column("Previous")
        table.add_column("Candidate")
        table.add_column("Outcome")
        for r in records:
            if r.outcome is None:
                outcome = "in progress"
            else:
                style = _OUTCOME_STYLES[r.outcome]
                outcome = f"[{style}]{r.outcome.value}[/{style}]"
            table.add_row(
                r.deployment_id,
                _fmt_time(r.started_at),
                r.previous_pool_id,
                r.candidate_pool_id or "-",
                outcome,
            )
        self._console.print(table)

    def print_routes(
        self,
        routes: Mapping[RouteName, Route],
        pools: Iterable[TargetPool] = (),
    ) -> None:
        """Print the routing table, with pool colour and state when known."""
        by_id = {p.pool_id: p for p in pools}
        table = Table(title="Routes", show_header=True, header_style="bold cyan")
        table.add_column("Route")
        table.add_column("Port", justify="right")
        table.add_column("Pool")
        table.add_column("Pool state")
        table.add_column("Generation", justify="right")
        for name, route in routes.items():
            pool = by_id.get(route.pool_id)
            label = route.pool_id
            if pool is not None:
                label = f"[{pool.color.value}]{route.pool_id}[/{pool.color.value}]"
            table.add_row(
                name.value,
                str(route.listener_port),
                label,
                pool.state.value if pool is not None else "-",
                str(route.generation),
            )
        self._console.print(table)

    def print_audit(self, entries: Iterable[AuditEntry]) -> None:
        """Print audit-trail entries in order."""
        entries = list(entries)
        if not entries:
            self._console.print("(no audit entries)")
            return
        table = Table(title="Audit trail", show_header=True, header_style="bold cyan")
        table.add_column("Time")
        table.add_column("Deployment")
        table.add_column("Kind")
        table.add_column("Transition")
        table.add_column("Detail")
        for e in entries:
            if e.previous_state:
                transition = f"{e.previous_state} -> {e.new_state}"
            else:
                transition = e.new_state
            table.add_row(_fmt_time(e.timestamp), e.deployment_id, e.kind, transition, escape(e.detail))
        self._console.print(table)
