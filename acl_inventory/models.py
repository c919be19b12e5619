"""
Data models for the folder ACL inventory.
"""
from dataclasses import dataclass
from typing import Optional

from .constants import ACCESS_ALLOW, KIND_FILE, KIND_FOLDER


@dataclass
class FileSystemNode:
    """
    One file or folder discovered during a walk.

    Folders carry the running size total and the most recent access and
    modify times found anywhere below them. Files leave the max fields
    at None.
    """
    path: str
    kind: str  # KIND_FILE or KIND_FOLDER
    size: int = 0
    accessed_at: Optional[float] = None
    modified_at: Optional[float] = None

    # Folder only
    max_accessed_at: Optional[float] = None
    max_modified_at: Optional[float] = None

    @classmethod
    def file(cls, path: str, size: int, accessed_at: Optional[float],
             modified_at: Optional[float]) -> "FileSystemNode":
        return cls(path=path, kind=KIND_FILE, size=size,
                   accessed_at=accessed_at, modified_at=modified_at)

    @classmethod
    def folder(cls, path: str, accessed_at: Optional[float],
               modified_at: Optional[float]) -> "FileSystemNode":
        return cls(path=path, kind=KIND_FOLDER, size=0,
                   accessed_at=accessed_at, modified_at=modified_at,
                   max_accessed_at=accessed_at, max_modified_at=modified_at)

    @property
    def is_folder(self) -> bool:
        return self.kind == KIND_FOLDER

    def add_child(self, child: "FileSystemNode") -> None:
        """Roll a finished child's size and dates up into this folder."""
        self.size += child.size
        if child.is_folder:
            accessed, modified = child.max_accessed_at, child.max_modified_at
        else:
            accessed, modified = child.accessed_at, child.modified_at
        self.max_accessed_at = _latest(self.max_accessed_at, accessed)
        self.max_modified_at = _latest(self.max_modified_at, modified)


def _latest(current: Optional[float], candidate: Optional[float]) -> Optional[float]:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


@dataclass
class AccessControlEntry:
    """A single grant or deny on a file or folder."""
    principal: str
    rights: str
    access_type: str = ACCESS_ALLOW
    is_inherited: bool = False


@dataclass
class InventorySummary:
    """Counters collected over one walk."""
    folders: int = 0
    files: int = 0
    rows: int = 0
    acl_failures: int = 0
    unreadable_folders: int = 0
    total_bytes: int = 0
