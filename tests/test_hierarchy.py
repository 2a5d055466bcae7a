"""Tests for the pnpm list hierarchy client."""

import json
import subprocess
from unittest.mock import Mock, patch

import pytest
from lockbuddy.errors import HierarchyUnavailableError
from lockbuddy.hierarchy import PnpmListClient

PNPM_LIST_OUTPUT = [
    {
        "name": "web",
        "path": "/workspace/apps/web",
        "dependencies": {
            "@my/logger": {"from": "@my/logger", "version": "link:../../packages/logger"},
            "string-width-cjs": {
                "from": "string-width",
                "version": "4.2.3",
                "dependencies": {"ansi-regex": {"from": "ansi-regex", "version": "5.0.1"}},
            },
        },
    },
    {
        "name": "logger",
        "path": "/workspace/packages/logger",
        "dependencies": {"chalk": {"from": "chalk", "version": "5.3.0"}},
    },
]


class TestPnpmListClient:
    """Tests for PnpmListClient."""

    @patch('lockbuddy.hierarchy.subprocess.run')
    def test_get_hierarchy(self, mock_run):
        """Test running pnpm list and converting its output."""
        mock_run.return_value = Mock(returncode=0, stdout=json.dumps(PNPM_LIST_OUTPUT), stderr="")

        trees = PnpmListClient("/workspace", depth=5).get_hierarchy()

        args = mock_run.call_args[0][0]
        assert args == ["pnpm", "list", "--recursive", "--json", "--depth", "5"]
        assert set(trees) == {"apps/web", "packages/logger"}

        link, aliased = trees["apps/web"]
        assert link.version == "link:packages/logger"
        assert link.children[0].package_id == "chalk@5.3.0"
        assert aliased.name == "string-width"
        assert aliased.alias == "string-width-cjs"
        assert aliased.children[0].package_id == "ansi-regex@5.0.1"

    @patch('lockbuddy.hierarchy.subprocess.run')
    def test_nonzero_exit(self, mock_run):
        """Test that a failing pnpm raises HierarchyUnavailableError."""
        mock_run.return_value = Mock(returncode=1, stdout="", stderr="ERR_PNPM_NO_IMPORTER")

        with pytest.raises(HierarchyUnavailableError):
            PnpmListClient("/workspace").get_hierarchy()

    @patch('lockbuddy.hierarchy.subprocess.run')
    def test_timeout(self, mock_run):
        """Test that a timeout raises HierarchyUnavailableError."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="pnpm", timeout=120)

        with pytest.raises(HierarchyUnavailableError):
            PnpmListClient("/workspace").get_hierarchy()

    @patch('lockbuddy.hierarchy.subprocess.run')
    def test_invalid_json(self, mock_run):
        """Test that unparsable output raises HierarchyUnavailableError."""
        mock_run.return_value = Mock(returncode=0, stdout="not json", stderr="")

        with pytest.raises(HierarchyUnavailableError):
            PnpmListClient("/workspace").get_hierarchy()

    def test_link_cycle(self):
        """Test that projects linking each other terminate."""
        projects = [
            {"path": "/workspace/packages/a", "dependencies": {"b": {"version": "link:../b"}}},
            {"path": "/workspace/packages/b", "dependencies": {"a": {"version": "link:../a"}}},
        ]

        trees = PnpmListClient("/workspace").convert(projects)
        link_b = trees["packages/a"][0]

        assert link_b.children[0].version == "link:packages/a"
        assert link_b.children[0].children == []
