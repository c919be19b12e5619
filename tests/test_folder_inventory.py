"""
Tests for the folder_inventory.py command line entry point.

Covers:
- End-to-end CSV output with permissions disabled
- Pre-flight failures (conflicting flags, bad root) writing nothing
- run_inventory wiring of ACL reader, classifier and directory
- Option precedence between CLI flags and environment
- --generate-config
"""
import csv
import os
import sys
from unittest.mock import Mock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from folder_inventory import main, run_inventory
from acl_inventory.config import InventoryOptions
from acl_inventory.directory import NullDirectory
from acl_inventory.models import AccessControlEntry
from acl_inventory.utils import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in list(os.environ):
        if var.startswith("INVENTORY_") or var.startswith("MS365_"):
            monkeypatch.delenv(var, raising=False)
    with patch("acl_inventory.config.find_default_config", return_value=None):
        yield monkeypatch


@pytest.fixture
def share(tmp_path):
    root = tmp_path / "share"
    (root / "projects").mkdir(parents=True)
    (root / "readme.txt").write_bytes(b"r" * 10)
    (root / "projects" / "plan.docx").write_bytes(b"p" * 20)
    return root


def read_rows(path):
    with open(path, newline='', encoding='utf-8') as f:
        return list(csv.reader(f))


# =============================================================================
# main() Tests
# =============================================================================

class TestMain:
    """Tests for the CLI entry point."""

    def test_no_permissions_run(self, share, tmp_path):
        output = tmp_path / "inventory.csv"

        exit_code = main(["--path", str(share), "-o", str(output),
                          "--no-permissions", "--no-dates", "--no-progress"])

        assert exit_code == 0
        rows = read_rows(output)
        assert rows[0] == ["Name", "Type", "Size"]
        assert rows[1:] == [
            [str(share / "readme.txt"), "File", "10"],
            [str(share / "projects" / "plan.docx"), "File", "20"],
            [str(share / "projects"), "Folder", "20"],
            [str(share), "Folder", "30"],
        ]

    def test_conflicting_flags_write_nothing(self, share, tmp_path):
        output = tmp_path / "inventory.csv"

        exit_code = main(["--path", str(share), "-o", str(output),
                          "--only-files", "--only-folders", "--no-progress"])

        assert exit_code == 1
        assert not output.exists()

    def test_missing_root_writes_nothing(self, tmp_path):
        output = tmp_path / "inventory.csv"

        exit_code = main(["--path", str(tmp_path / "missing"), "-o", str(output), "--no-progress"])

        assert exit_code == 1
        assert not output.exists()

    def test_missing_config_file(self, share, tmp_path):
        exit_code = main(["--path", str(share), "--config", str(tmp_path / "nope.yaml")])
        assert exit_code == 1

    def test_env_options_apply(self, share, tmp_path, clean_env):
        output = tmp_path / "inventory.csv"
        clean_env.setenv("INVENTORY_PATH", str(share))
        clean_env.setenv("INVENTORY_NO_PERMISSIONS", "true")
        clean_env.setenv("INVENTORY_NO_SIZE", "true")

        assert main(["-o", str(output), "--no-dates", "--no-progress"]) == 0
        assert read_rows(output)[0] == ["Name", "Type"]

    def test_stdout_output(self, share, capsys):
        exit_code = main(["--path", str(share), "-o", "-", "--no-permissions", "--no-dates"])

        assert exit_code == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == '"Name","Type","Size"'
        assert len(lines) == 5

    def test_generate_config(self, capsys):
        assert main(["--generate-config"]) == 0
        assert "only_explicit_permissions" in capsys.readouterr().out


# =============================================================================
# run_inventory() Tests
# =============================================================================

class TestRunInventory:
    """Tests for run_inventory."""

    def test_permissions_with_supplied_directory(self, share, tmp_path):
        output = tmp_path / "inventory.csv"
        reader = Mock()
        reader.read.return_value = [
            AccessControlEntry("BUILTIN\\Administrators", "FullControl", "Allow", True),
            AccessControlEntry("CONTOSO\\Finance", "Modify", "Allow", False),
        ]
        options = InventoryOptions(path=str(share), no_dates=True, only_explicit_permissions=True)

        with patch("folder_inventory.default_acl_reader", return_value=reader):
            summary = run_inventory(options, str(output), show_progress=False, directory=NullDirectory())

        rows = read_rows(output)
        assert rows[0] == ["Name", "Type", "Size", "Account", "AccountType", "Permission", "PermissionType"]
        # One explicit entry per node
        assert len(rows) == 1 + 4
        assert {row[3] for row in rows[1:]} == {"CONTOSO\\Finance"}
        assert {row[4] for row in rows[1:]} == {"Unknown"}
        assert summary.rows == 4
        assert summary.total_bytes == 30

    def test_directory_closed_after_run(self, share, tmp_path):
        directory = Mock()
        directory.lookup.return_value = None
        reader = Mock()
        reader.read.return_value = []

        with patch("folder_inventory.default_acl_reader", return_value=reader):
            run_inventory(InventoryOptions(path=str(share)), str(tmp_path / "o.csv"),
                          show_progress=False, directory=directory)

        directory.close.assert_called_once()

    def test_no_permissions_skips_directory(self, share, tmp_path):
        with patch("folder_inventory.build_directory") as mock_build:
            run_inventory(InventoryOptions(path=str(share), no_permissions=True),
                          str(tmp_path / "o.csv"), show_progress=False)

        mock_build.assert_not_called()

    def test_graph_without_secret_fails_before_output(self, share, tmp_path):
        output = tmp_path / "o.csv"
        options = InventoryOptions(path=str(share), directory="graph", tenant_id="t", client_id="c")

        with pytest.raises(ConfigError):
            run_inventory(options, str(output), show_progress=False)

        assert not output.exists()
