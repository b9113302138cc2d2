"""portop - Main Textual application."""

from collections.abc import Iterator

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from portop.config import PortopConfig
from portop.engine import PortEngine
from portop.errors import ConfigurationError
from portop.logging import get_logger, setup_logging
from portop.models import NOT_LOADED, AggregatedGroup, Hierarchy, LoadState, PidEntry

logger = get_logger(__name__)

COLUMNS = [
    ("PROCESS", "process", 16),
    ("PID", "pid", 8),
    ("PORTS", "ports", 18),
    ("USER", "user", 10),
    ("CPU%", "cpu", 6),
    ("MEM%", "mem", 6),
    ("Command", "command", None),
]


def iter_rows(groups: Hierarchy) -> Iterator[tuple[str, tuple[str, ...]]]:
    """Flatten groups into (row key, cells) pairs, one row per pid."""
    for group in groups:
        for entry in group.pids:
            yield str(entry.pid), format_row(group, entry)


def format_row(group: AggregatedGroup, entry: PidEntry) -> tuple[str, ...]:
    return (
        group.process_name[:16],
        str(entry.pid),
        entry.ports_label or "-",
        entry.user[:10],
        entry.cpu_percent,
        entry.mem_percent,
        group.command[:60],
    )


class StatusBar(Static):
    """One-line summary of refresh state and the latest errors."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface;
    }
    """

    def render_status(
        self,
        groups: Hierarchy | LoadState,
        periodic: bool,
        interval: float,
        refresh_error: str | None,
        kill_error: str | None,
    ) -> str:
        if groups is NOT_LOADED:
            summary = "Loading ports..."
        else:
            pid_count = sum(len(group.pids) for group in groups)
            summary = f"{len(groups)} processes, {pid_count} pids"
        auto = f"auto-refresh {interval:g}s" if periodic else "auto-refresh off"
        parts = [summary, auto]
        if refresh_error:
            parts.append(f"[red]refresh failed: {escape(refresh_error)}[/red]")
        if kill_error:
            parts.append(f"[yellow]{escape(kill_error)}[/yellow]")
        text = " | ".join(parts)
        self.update(text)
        return text


class PortTable(Container):
    """Container for the port data table."""

    DEFAULT_CSS = """
    PortTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize PortTable."""
        super().__init__(*args, **kwargs)
        self._row_keys: list[str] = []

    def compose(self) -> ComposeResult:
        """Compose the port table."""
        yield DataTable(id="port-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#port-table", DataTable)
        table.cursor_type = "row"
        for label, key, width in COLUMNS:
            table.add_column(label, key=key, width=width)

    @property
    def row_keys(self) -> list[str]:
        return list(self._row_keys)

    def update_groups(self, groups: Hierarchy) -> None:
        """
        Show a new hierarchy.

        When the set and order of pids is unchanged, cells are updated in
        place so the cursor does not jump between refreshes.
        """
        table = self.query_one("#port-table", DataTable)
        rows = list(iter_rows(groups))
        keys = [key for key, _ in rows]

        if keys == self._row_keys:
            for key, cells in rows:
                for (_, column, _), value in zip(COLUMNS, cells):
                    table.update_cell(key, column, value)
            return

        cursor_key = self.selected_pid()
        table.clear()
        for key, cells in rows:
            table.add_row(*cells, key=key)
        self._row_keys = keys
        if cursor_key is not None and str(cursor_key) in keys:
            table.move_cursor(row=keys.index(str(cursor_key)))

    def selected_pid(self) -> int | None:
        """Pid of the row under the cursor, if any."""
        table = self.query_one("#port-table", DataTable)
        if not self._row_keys or table.row_count == 0:
            return None
        row = table.cursor_row
        if row < 0 or row >= len(self._row_keys):
            return None
        return int(self._row_keys[row])


class PortopApp(App):
    """Main portop application."""

    TITLE = "portop"
    SUB_TITLE = "Listening Ports by Process"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh", "Refresh"),
        ("a", "toggle_auto", "Auto-refresh"),
        ("k", "kill", "Kill"),
    ]

    def __init__(self, config: PortopConfig | None = None, engine: PortEngine | None = None) -> None:
        """Initialize the PortopApp."""
        super().__init__()
        self._config = config or PortopConfig()
        self._engine = engine or PortEngine(self._config)
        self._shown_version = 0

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield PortTable()
        yield StatusBar(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        """Start the engine when the app is mounted."""
        self._engine.start()
        # Poll the snapshot store; it never blocks.
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop background refreshes when the app goes away."""
        self._engine.close()

    def _check_for_updates(self) -> None:
        """Render a newly published snapshot and the current status."""
        snapshot = self._engine.get_snapshot()
        version = self._engine.store.version
        if snapshot is not NOT_LOADED and version != self._shown_version:
            self.query_one(PortTable).update_groups(snapshot)
            self._shown_version = version
        self._update_status(snapshot)

    def _update_status(self, snapshot: Hierarchy | LoadState) -> None:
        refresh_error = self._engine.refresh_error
        kill_error = self._engine.kill_error
        self.query_one("#status-bar", StatusBar).render_status(
            snapshot,
            periodic=self._engine.periodic_enabled,
            interval=self._config.refresh_interval,
            refresh_error=refresh_error.message if refresh_error else None,
            kill_error=kill_error.message if kill_error else None,
        )

    def action_refresh(self) -> None:
        """Trigger a manual refresh."""
        self._engine.refresh_now()

    def action_toggle_auto(self) -> None:
        """Enable or disable periodic refresh."""
        enabled = not self._engine.periodic_enabled
        self._engine.set_periodic_refresh(enabled)
        self.notify(f"Auto-refresh: {'ON' if enabled else 'OFF'}")
        self._update_status(self._engine.get_snapshot())

    def action_kill(self) -> None:
        """Kill the process in the selected row."""
        pid = self.query_one(PortTable).selected_pid()
        if pid is None:
            return
        if pid <= 0:
            self.notify("Process id unknown, cannot kill", severity="error")
            return
        result = self._engine.kill_process(pid)
        if result.ok:
            self.notify(result.message)
        else:
            self.notify(result.message, severity="error")
        self._update_status(self._engine.get_snapshot())

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._engine.close()
        self.exit()


def main() -> None:
    """Entry point for portop application."""
    try:
        config = PortopConfig.from_env()
    except ConfigurationError as exc:
        raise SystemExit(f"portop: invalid configuration: {exc}") from exc
    setup_logging(config.log_level, config.log_file)
    logger.info("portop_starting", inspector=config.inspector, interval=config.refresh_interval)
    app = PortopApp(config)
    app.run()


if __name__ == "__main__":
    main()
