"""
Utility functions for the folder ACL inventory.

Logging Level Standards:
------------------------
- ERROR: Failures that stop the whole run
         "Root path does not exist: {path}"
- WARNING: Partial failures that lose part of the tree
           "Cannot list folder {path}: {e}"
- INFO: Progress messages, totals
        "Inventory complete: 1,204 folders, 88,210 files"
- DEBUG: Per-item failures that don't affect the rest of the walk
         "Cannot read ACL for {path}: {e}"
"""
import csv
import logging
import os
import sys
from datetime import datetime, timezone
from typing import IO, TYPE_CHECKING, Any, List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .constants import DATE_FORMAT, DEFAULT_OUTPUT_PREFIX, STDOUT_OUTPUT

if TYPE_CHECKING:
    from rich.progress import TaskID

    from .models import InventorySummary

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================

class InventoryError(Exception):
    """Base class for errors raised by the inventory."""


class ConfigError(InventoryError):
    """Raised by pre-flight validation; the run stops before any output."""


class AclReadError(InventoryError):
    """Raised when the access-control list of a path cannot be read.

    Always recoverable: the node is still written, without permissions.
    """
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read ACL for {path}: {reason}")


# =============================================================================
# Progress Tracking
# =============================================================================

class ProgressTracker:
    """
    Progress display for a walk.

    Uses a rich spinner when stdout is a TTY, otherwise prints a start
    banner and a plain summary so piped output stays readable.

    Usage:
        with ProgressTracker("/srv/share") as tracker:
            walker = TreeWalker(..., on_folder=tracker.folder_done)
            walker.walk(root)
            tracker.set_summary(walker.summary)
    """

    def __init__(self, root: str, show_progress: bool = True):
        self.root = root
        self.show_progress = show_progress and sys.stdout.isatty()
        self.folders_done = 0
        self.current_folder = ""
        self.summary: Optional["InventorySummary"] = None

        self._console: Optional[Console] = None
        self._progress: Optional[Progress] = None
        self._main_task: Optional["TaskID"] = None

    def __enter__(self):
        if self.show_progress:
            self._console = Console(stderr=True)
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )
            self._main_task = self._progress.add_task(f"Scanning {self.root}", total=None)
            self._progress.start()
        else:
            print(f"\n{'='*60}", file=sys.stderr)
            print(f"Folder inventory of {self.root}", file=sys.stderr)
            print(f"{'='*60}", file=sys.stderr)

        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._progress is not None:
            self._progress.stop()
        if self.summary is not None:
            if self._console is not None:
                self._print_summary_rich()
            else:
                self._print_summary_plain()
        return False

    def folder_done(self, path: str):
        """Record one finished folder."""
        self.folders_done += 1
        self.current_folder = path
        if self._progress is not None:
            assert self._main_task is not None
            self._progress.update(
                self._main_task,
                description=f"{self.folders_done:,} folders | {_shorten(path)}"
            )

    def set_summary(self, summary: "InventorySummary"):
        self.summary = summary

    def _print_summary_rich(self):
        """Print a formatted summary using rich."""
        assert self.summary is not None
        assert self._console is not None

        table = Table(title="Folder Inventory Summary", show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Root", self.root)
        table.add_row("Folders", f"{self.summary.folders:,}")
        table.add_row("Files", f"{self.summary.files:,}")
        table.add_row("Total Size", format_bytes(self.summary.total_bytes))
        table.add_row("Rows Written", f"{self.summary.rows:,}")
        if self.summary.acl_failures:
            table.add_row("Unreadable ACLs", f"{self.summary.acl_failures:,}")
        if self.summary.unreadable_folders:
            table.add_row("Unlistable Folders", f"{self.summary.unreadable_folders:,}")

        self._console.print(Panel(table))

    def _print_summary_plain(self):
        """Print a plain text summary."""
        assert self.summary is not None

        print(f"\n{'='*60}", file=sys.stderr)
        print("Folder Inventory Complete", file=sys.stderr)
        print(f"{'='*60}", file=sys.stderr)
        print(f"  Folders:      {self.summary.folders:,}", file=sys.stderr)
        print(f"  Files:        {self.summary.files:,}", file=sys.stderr)
        print(f"  Total Size:   {format_bytes(self.summary.total_bytes)}", file=sys.stderr)
        print(f"  Rows Written: {self.summary.rows:,}", file=sys.stderr)
        if self.summary.acl_failures:
            print(f"  Unreadable ACLs:    {self.summary.acl_failures:,}", file=sys.stderr)
        if self.summary.unreadable_folders:
            print(f"  Unlistable Folders: {self.summary.unreadable_folders:,}", file=sys.stderr)
        print(file=sys.stderr)


def _shorten(path: str, width: int = 60) -> str:
    if len(path) <= width:
        return path
    return "..." + path[-(width - 3):]


# =============================================================================
# Formatting
# =============================================================================

def get_file_timestamp() -> str:
    """Get local timestamp for use in output filenames."""
    return datetime.now().strftime('%Y%m%d_%H%M%S')


def default_output_path() -> str:
    """Default CSV name, e.g. folder_inventory_20240115_093000.csv"""
    return f"{DEFAULT_OUTPUT_PREFIX}_{get_file_timestamp()}.csv"


def format_date(value: Any) -> str:
    """
    Format a POSIX timestamp as yyyy-MM-dd in local time.

    None becomes an empty field. Anything that cannot be converted is
    written as-is rather than failing the row.
    """
    if value is None:
        return ""
    try:
        return datetime.fromtimestamp(value).strftime(DATE_FORMAT)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        logger.debug(f"Could not format date {value!r}: {e}")
        return str(value)


def format_bytes(bytes_value: float) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "KB", "MB", "GB", "TB", "PB"]:
        if bytes_value < 1024.0:
            return f"{bytes_value:.2f} {unit}"
        bytes_value /= 1024.0
    return f"{bytes_value:.2f} EB"


# =============================================================================
# Logging
# =============================================================================

def setup_logging(level: str = "INFO", output_dir: Optional[str] = None) -> logging.Logger:
    """
    Setup logging configuration with console and optional file output.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        output_dir: If provided, also write logs to a file in this directory

    Returns:
        Logger instance
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    # Console handler (stderr, stdout may carry the CSV)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(output_dir, f"folder_inventory_log_{timestamp}.log")

        file_handler = logging.FileHandler(log_file, mode='w')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to: {log_file}")

    return logging.getLogger(__name__)


# =============================================================================
# CSV Output
# =============================================================================

class CsvSink:
    """
    Line-oriented CSV writer for inventory rows.

    The header is written once on entry, every field is quoted, and the
    underlying file is flushed and closed exactly once on exit, including
    when the walk raised. A path of "-" writes to stdout, which is
    flushed but left open.

    Usage:
        with CsvSink("inventory.csv", build_header(options)) as sink:
            sink.write_row(["/data", "Folder", "30"])
    """

    def __init__(self, path: str, header: Sequence[str]):
        self.path = path
        self.header = list(header)
        self.rows_written = 0
        self._file: Optional[IO[str]] = None
        self._writer = None
        self._owns_file = path != STDOUT_OUTPUT

    def __enter__(self):
        if self._owns_file:
            self._file = open(self.path, 'w', newline='', encoding='utf-8')
        else:
            self._file = sys.stdout
            # csv writes its own \r\n terminators
            self._file.reconfigure(newline='')
        self._writer = csv.writer(self._file, quoting=csv.QUOTE_ALL)
        self._writer.writerow(self.header)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def write_row(self, row: List[str]) -> None:
        """Write one pre-built row."""
        if self._writer is None:
            raise InventoryError(f"CSV sink {self.path} is not open")
        self._writer.writerow(row)
        self.rows_written += 1

    def close(self) -> None:
        if self._file is None:
            return
        try:
            self._file.flush()
            if self._owns_file:
                self._file.close()
                logger.info(f"Wrote {self.rows_written:,} rows to {self.path}")
        finally:
            self._file = None
            self._writer = None
