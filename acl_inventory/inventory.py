"""
Recursive folder and ACL inventory.

TreeWalker walks a folder depth-first, rolls file sizes and the latest
access/modify dates up into every ancestor, and hands each finished node
to NodeVisitor, which turns it into CSV rows: one per node, or one per
permission entry when permissions are included.

A folder's own row is only written once its whole subtree has been
visited, so its size and max dates are final when they reach the CSV.
"""
import logging
import os
import stat
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from .config import InventoryOptions
from .constants import (
    COLUMN_IS_INHERITED,
    COLUMN_NAME,
    COLUMN_SIZE,
    COLUMN_TYPE,
    DATE_COLUMNS,
    PERMISSION_COLUMNS,
)
from .directory import AccountClassifier
from .models import AccessControlEntry, FileSystemNode, InventorySummary
from .utils import AclReadError, CsvSink, format_date

logger = logging.getLogger(__name__)


def build_header(options: InventoryOptions) -> List[str]:
    """CSV header for the active options, in fixed column order."""
    header = [COLUMN_NAME, COLUMN_TYPE]
    if not options.no_size:
        header.append(COLUMN_SIZE)
    if not options.no_dates:
        header.extend(DATE_COLUMNS)
    if not options.no_permissions:
        header.extend(PERMISSION_COLUMNS)
        if not options.only_explicit_permissions:
            header.append(COLUMN_IS_INHERITED)
    return header


def _permission_width(options: InventoryOptions) -> int:
    if options.no_permissions:
        return 0
    width = len(PERMISSION_COLUMNS)
    if not options.only_explicit_permissions:
        width += 1
    return width


def expand_acl_rows(
    entries: Iterable[AccessControlEntry],
    prefix: List[str],
    options: InventoryOptions,
    classifier: AccountClassifier,
) -> Iterator[List[str]]:
    """
    Yield one row per ACL entry that survives the explicit-only filter.

    May yield nothing: a node whose entries are all inherited gets no
    row at all under --only-explicit-permissions.
    """
    for entry in entries:
        if options.only_explicit_permissions and entry.is_inherited:
            continue

        row = prefix + [
            entry.principal,
            classifier.classify(entry.principal),
            entry.rights,
            entry.access_type,
        ]
        if not options.only_explicit_permissions:
            row.append(str(entry.is_inherited))
        yield row


class NodeVisitor:
    """Turn a finished node into CSV rows and write them."""

    def __init__(
        self,
        options: InventoryOptions,
        acl_reader=None,
        classifier: Optional[AccountClassifier] = None,
    ):
        if not options.no_permissions and (acl_reader is None or classifier is None):
            raise ValueError("acl_reader and classifier are required unless permissions are disabled")
        self.options = options
        self.acl_reader = acl_reader
        self.classifier = classifier
        self.acl_failures = 0

    def prefix(self, node: FileSystemNode) -> List[str]:
        """Name, Type, and the optional Size and date fields."""
        fields = [node.path, node.kind]
        if not self.options.no_size:
            fields.append(str(node.size))
        if not self.options.no_dates:
            fields.extend([
                format_date(node.accessed_at),
                format_date(node.modified_at),
                format_date(node.max_accessed_at),
                format_date(node.max_modified_at),
            ])
        return fields

    def rows(self, node: FileSystemNode) -> Iterator[List[str]]:
        prefix = self.prefix(node)

        if self.options.no_permissions:
            yield prefix
            return

        assert self.acl_reader is not None
        assert self.classifier is not None
        try:
            entries = self.acl_reader.read(node.path)
        except AclReadError as e:
            logger.debug(str(e))
            self.acl_failures += 1
            yield prefix + [""] * _permission_width(self.options)
            return

        yield from expand_acl_rows(entries, prefix, self.options, self.classifier)

    def visit(self, node: FileSystemNode, sink: CsvSink) -> int:
        """Write the node's rows to the sink, returning how many were written."""
        count = 0
        for row in self.rows(node):
            sink.write_row(row)
            count += 1
        return count


def is_junction(st: os.stat_result) -> bool:
    """True for a Windows directory junction, which is walked like a link."""
    return getattr(st, "st_reparse_tag", 0) == stat.IO_REPARSE_TAG_MOUNT_POINT


class TreeWalker:
    """
    Depth-first, post-order walk with size and date roll-up.

    Children are visited in name order so an unchanged tree always gives
    the same CSV. Symlinks and junctions are never followed. Row suppression
    (--only-files / --only-folders) does not affect the roll-up.
    """

    def __init__(
        self,
        options: InventoryOptions,
        visitor: NodeVisitor,
        sink: CsvSink,
        on_folder: Optional[Callable[[str], None]] = None,
    ):
        self.options = options
        self.visitor = visitor
        self.sink = sink
        self.on_folder = on_folder
        self.summary = InventorySummary()

    def walk(self, path: str) -> FileSystemNode:
        """Inventory the tree under path and return the aggregated root."""
        root = self._walk(os.path.abspath(path), os.stat(path))
        self.summary.total_bytes = root.size
        self.summary.acl_failures = self.visitor.acl_failures
        logger.info(
            f"Inventory complete: {self.summary.folders:,} folders, "
            f"{self.summary.files:,} files, {self.summary.rows:,} rows"
        )
        return root

    def _walk(self, path: str, st: os.stat_result) -> FileSystemNode:
        # Explicit stack of (folder, subfolders still to visit) keeps deep
        # trees off the interpreter's recursion limit.
        root = self._open_folder(path, st)
        stack = [root]
        while stack:
            folder, pending = stack[-1]
            if pending:
                sub_path, sub_stat = pending.pop()
                stack.append(self._open_folder(sub_path, sub_stat))
                continue

            stack.pop()
            self._close_folder(folder)
            if stack:
                stack[-1][0].add_child(folder)

        return root[0]

    def _open_folder(self, path: str, st: os.stat_result) -> Tuple[FileSystemNode, List[Tuple[str, os.stat_result]]]:
        """Emit the folder's files and return it with its subfolders, last name first."""
        folder = FileSystemNode.folder(path, st.st_atime, st.st_mtime)
        self.summary.folders += 1

        files, subfolders = self._list_children(path)

        for file_path, file_stat in files:
            node = FileSystemNode.file(file_path, file_stat.st_size, file_stat.st_atime, file_stat.st_mtime)
            folder.add_child(node)
            self.summary.files += 1
            if not self.options.only_folders:
                self._emit(node)

        subfolders.reverse()
        return folder, subfolders

    def _close_folder(self, folder: FileSystemNode) -> None:
        if not self.options.only_files:
            self._emit(folder)

        if self.on_folder is not None:
            self.on_folder(folder.path)

    def _list_children(self, path: str) -> Tuple[List[Tuple[str, os.stat_result]], List[Tuple[str, os.stat_result]]]:
        files = []
        subfolders = []
        try:
            with os.scandir(path) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Cannot list folder {path}: {e}")
            self.summary.unreadable_folders += 1
            return files, subfolders

        for entry in entries:
            try:
                entry_stat = entry.stat(follow_symlinks=False)
                is_dir = entry.is_dir(follow_symlinks=False) and not is_junction(entry_stat)
            except OSError as e:
                logger.debug(f"Skipping {entry.path}: {e}")
                continue
            if is_dir:
                subfolders.append((entry.path, entry_stat))
            else:
                files.append((entry.path, entry_stat))

        return files, subfolders

    def _emit(self, node: FileSystemNode) -> None:
        self.summary.rows += self.visitor.visit(node, self.sink)
