"""Console and log-file output for the CLI commands.

The pipeline modules log through the standard ``logging`` module. A
WorkflowLogger prints progress to a Rich console and, once ``capture`` is
called, also collects those module records into the command's log file, so
the output of background workflows in ``serve`` is not lost.
"""

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme


THEME = Theme({
    "info": "cyan",
    "success": "green",
    "warning": "yellow",
    "error": "red bold",
    "step": "blue",
    "api": "magenta",
    "dim": "dim",
})

# Packages whose module loggers are collected by default
PIPELINE_LOGGERS = ("pipeline", "media", "analyzer", "api", "utils")


class _LogFileHandler(logging.Handler):
    """Forwards standard logging records into a WorkflowLogger's file."""

    def __init__(self, workflow_logger: "WorkflowLogger", level: int):
        super().__init__(level)
        self.workflow_logger = workflow_logger

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = f"{record.name}: {record.getMessage()}"
            if record.exc_info:
                message += "\n" + logging.Formatter().formatException(record.exc_info)
            self.workflow_logger._write_to_file(record.levelname, message)
        except Exception:
            self.handleError(record)


class WorkflowLogger:
    """Rich console output mirrored to a per-command log file.

    Thread-safe: one instance is shared by every workflow the process runs.
    """

    def __init__(
        self,
        command: str,
        logs_dir: Path | str = "./logs",
        console: Console | None = None,
    ):
        """
        Args:
            command: Command name ('serve', 'process'), used in the log filename.
            logs_dir: Directory for log files.
            console: Optional Rich console instance.
        """
        self.command = command
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = self.logs_dir / f"{command}_{timestamp}.log"
        self._file_handle = open(self.log_file, "w", encoding="utf-8")
        self._lock = threading.Lock()
        self._handlers: list[tuple[logging.Logger, logging.Handler]] = []

        self.console = console or Console(theme=THEME)

    def _write_to_file(self, level: str, message: str) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with self._lock:
            if self._file_handle.closed:
                return
            self._file_handle.write(f"[{timestamp}] {level}: {message}\n")
            self._file_handle.flush()

    def capture(self, *names: str, level: int = logging.INFO) -> None:
        """Collect records from the named standard loggers into the log file.

        Defaults to the pipeline packages. Handlers are removed on close().
        """
        for name in names or PIPELINE_LOGGERS:
            target = logging.getLogger(name)
            handler = _LogFileHandler(self, level)
            target.addHandler(handler)
            if target.getEffectiveLevel() > level:
                target.setLevel(level)
            self._handlers.append((target, handler))

    def info(self, message: str, **kwargs: Any) -> None:
        self.console.print(f"[info]ℹ[/info] {message}", **kwargs)
        self._write_to_file("INFO", message)

    def success(self, message: str, **kwargs: Any) -> None:
        self.console.print(f"[success]✓[/success] {message}", **kwargs)
        self._write_to_file("SUCCESS", message)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.console.print(f"[warning]⚠[/warning] {message}", **kwargs)
        self._write_to_file("WARNING", message)

    def error(self, message: str, **kwargs: Any) -> None:
        self.console.print(f"[error]✗[/error] {message}", **kwargs)
        self._write_to_file("ERROR", message)

    def step(self, message: str, **kwargs: Any) -> None:
        """Log a pipeline step starting."""
        self.console.print(f"[step]→[/step] {message}", **kwargs)
        self._write_to_file("STEP", message)

    def api(self, stage: str | None, model: str, input_tokens: int, output_tokens: int) -> None:
        """Log token usage of one model call.

        Only the file gets vision calls; there is one per frame and the
        console shows a progress bar for them instead.
        """
        message = f"{stage or 'call'} ({model}): {input_tokens:,} in, {output_tokens:,} out"
        if stage != "vision":
            self.console.print(f"[api]⚡[/api] [dim]{message}[/dim]")
        self._write_to_file("API", message)

    def header(self, title: str, **kwargs: Any) -> None:
        self.console.print()
        self.console.rule(f"[bold]{title}[/bold]", **kwargs)
        self.console.print()
        self._write_to_file("HEADER", title)

    def summary(
        self,
        title: str,
        data: dict[str, str],
        style: str = "green",
    ) -> None:
        """Print a key/value summary panel."""
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in data.items():
            table.add_row(key, value)

        self.console.print(Panel(table, title=f"[bold]{title}[/bold]", border_style=style))

        self._write_to_file("SUMMARY", title)
        for key, value in data.items():
            self._write_to_file("SUMMARY", f"  {key}: {value}")

    def table(
        self,
        title: str,
        columns: list[str],
        rows: list[list[str]],
        **kwargs: Any,
    ) -> None:
        table = Table(title=title, **kwargs)
        for col in columns:
            table.add_column(col)
        for row in rows:
            table.add_row(*row)
        self.console.print(table)

        self._write_to_file("TABLE", title)
        for row in rows:
            self._write_to_file("TABLE", "  " + " | ".join(row))

    def print(self, *args: Any, **kwargs: Any) -> None:
        self.console.print(*args, **kwargs)
        if args:
            self._write_to_file("PRINT", " ".join(str(a) for a in args))

    def close(self) -> None:
        """Detach captured loggers and close the log file."""
        for target, handler in self._handlers:
            target.removeHandler(handler)
        self._handlers.clear()
        with self._lock:
            if not self._file_handle.closed:
                self._file_handle.close()
