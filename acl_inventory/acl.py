"""
Access-control list readers.

Each reader exposes read(path) -> List[AccessControlEntry] and raises
AclReadError when the ACL of that one path cannot be read. The walk
treats that as a per-node condition and keeps going.

Windows ACLs come from PowerShell Get-Acl, POSIX ACLs from getfacl, and
when getfacl is not installed the owner/group/other triplets of st_mode
stand in for the ACL.
"""
import json
import logging
import os
import re
import shutil
import stat
import subprocess
from typing import List, Optional

from .constants import (
    ACCESS_ALLOW,
    ACCESS_DENY,
    ACL_COMMAND_TIMEOUT,
    POSIX_OTHER_PRINCIPAL,
)
from .models import AccessControlEntry
from .utils import AclReadError

logger = logging.getLogger(__name__)


# =============================================================================
# Windows (PowerShell Get-Acl)
# =============================================================================

# Path is passed through the environment so it never needs quoting
GET_ACL_SCRIPT = (
    "$ErrorActionPreference = 'Stop'; "
    "$acl = Get-Acl -LiteralPath $env:INVENTORY_ACL_PATH; "
    "$entries = @($acl.Access | ForEach-Object { [PSCustomObject]@{ "
    "IdentityReference = $_.IdentityReference.Value; "
    "FileSystemRights = $_.FileSystemRights.ToString(); "
    "AccessControlType = $_.AccessControlType.ToString(); "
    "IsInherited = $_.IsInherited } }); "
    "ConvertTo-Json -InputObject $entries -Compress"
)


class WindowsAclReader:
    """Read NTFS ACLs through PowerShell's Get-Acl."""

    def __init__(self, executable: Optional[str] = None, timeout: int = ACL_COMMAND_TIMEOUT):
        self.executable = executable or shutil.which("powershell") or shutil.which("pwsh") or "powershell"
        self.timeout = timeout

    def read(self, path: str) -> List[AccessControlEntry]:
        env = dict(os.environ)
        env["INVENTORY_ACL_PATH"] = path
        try:
            result = subprocess.run(
                [self.executable, "-NoProfile", "-NonInteractive", "-Command", GET_ACL_SCRIPT],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=env,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise AclReadError(path, str(e)) from e

        if result.returncode != 0:
            raise AclReadError(path, result.stderr.strip() or f"exit status {result.returncode}")

        return parse_get_acl_json(path, result.stdout)


def parse_get_acl_json(path: str, output: str) -> List[AccessControlEntry]:
    """
    Parse the JSON emitted by GET_ACL_SCRIPT.

    ConvertTo-Json collapses a one-element array to a bare object on some
    PowerShell versions, so both shapes are accepted.
    """
    output = output.strip()
    if not output:
        return []
    try:
        data = json.loads(output)
    except ValueError as e:
        raise AclReadError(path, f"unparseable Get-Acl output: {e}") from e

    if isinstance(data, dict):
        data = [data]

    entries = []
    for item in data:
        access_type = str(item.get("AccessControlType") or ACCESS_ALLOW)
        entries.append(AccessControlEntry(
            principal=str(item.get("IdentityReference") or ""),
            rights=str(item.get("FileSystemRights") or ""),
            access_type=ACCESS_DENY if access_type.lower() == "deny" else ACCESS_ALLOW,
            is_inherited=bool(item.get("IsInherited")),
        ))
    return entries


# =============================================================================
# POSIX (getfacl, falling back to mode bits)
# =============================================================================

_OCTAL_ESCAPE = re.compile(r'\\([0-7]{3})')


def _unescape(name: str) -> str:
    """getfacl writes whitespace and backslashes in names as \\ooo."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), name)


def parse_getfacl(output: str) -> List[AccessControlEntry]:
    """
    Parse getfacl output into entries.

    Owner and owning group come from the header comments. mask and
    default: entries are not grants on the node itself and are skipped.
    """
    owner = ""
    group = ""
    entries = []

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith("#"):
            key, _, value = line[1:].partition(":")
            if key.strip() == "owner":
                owner = _unescape(value.strip())
            elif key.strip() == "group":
                group = _unescape(value.strip())
            continue

        # Drop the "#effective:r--" annotation
        line = line.split("#", 1)[0].strip()
        parts = line.split(":")
        if len(parts) != 3:
            logger.debug(f"Skipping unrecognised getfacl line: {raw_line!r}")
            continue

        tag, qualifier, perms = parts
        qualifier = _unescape(qualifier)

        if tag == "user":
            principal = qualifier or owner
        elif tag == "group":
            principal = qualifier or group
        elif tag == "other":
            principal = POSIX_OTHER_PRINCIPAL
        else:
            # mask, default
            continue

        entries.append(AccessControlEntry(principal=principal, rights=perms))

    return entries


def _mode_triplet(mode: int, read: int, write: int, execute: int) -> str:
    return "".join([
        "r" if mode & read else "-",
        "w" if mode & write else "-",
        "x" if mode & execute else "-",
    ])


def entries_from_stat(st: os.stat_result) -> List[AccessControlEntry]:
    """Owner, group and other entries derived from st_mode."""
    import grp
    import pwd

    try:
        owner = pwd.getpwuid(st.st_uid).pw_name
    except KeyError:
        owner = str(st.st_uid)
    try:
        group = grp.getgrgid(st.st_gid).gr_name
    except KeyError:
        group = str(st.st_gid)

    mode = st.st_mode
    return [
        AccessControlEntry(owner, _mode_triplet(mode, stat.S_IRUSR, stat.S_IWUSR, stat.S_IXUSR)),
        AccessControlEntry(group, _mode_triplet(mode, stat.S_IRGRP, stat.S_IWGRP, stat.S_IXGRP)),
        AccessControlEntry(POSIX_OTHER_PRINCIPAL, _mode_triplet(mode, stat.S_IROTH, stat.S_IWOTH, stat.S_IXOTH)),
    ]


class PosixAclReader:
    """Read POSIX ACLs with getfacl, or mode bits when getfacl is missing."""

    def __init__(self, getfacl: Optional[str] = None, timeout: int = ACL_COMMAND_TIMEOUT):
        self.getfacl = getfacl if getfacl is not None else shutil.which("getfacl")
        self.timeout = timeout
        if not self.getfacl:
            logger.info("getfacl not found, permissions will be derived from mode bits")

    def read(self, path: str) -> List[AccessControlEntry]:
        if not self.getfacl:
            try:
                return entries_from_stat(os.stat(path, follow_symlinks=False))
            except OSError as e:
                raise AclReadError(path, str(e)) from e

        try:
            result = subprocess.run(
                [self.getfacl, "--absolute-names", "--physical", "--no-effective", "--", path],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise AclReadError(path, str(e)) from e

        if result.returncode != 0:
            raise AclReadError(path, result.stderr.strip() or f"exit status {result.returncode}")

        return parse_getfacl(result.stdout)


def default_acl_reader():
    """ACL reader for the host platform."""
    if os.name == "nt":
        return WindowsAclReader()
    return PosixAclReader()
