"""Tests for dependency tree building."""

from unittest.mock import Mock

import pytest
from lockbuddy.errors import HierarchyUnavailableError, ProjectNotFoundError
from lockbuddy.models import DependencyTreeNode, Lockfile
from lockbuddy.tracker import DependencyTracker
from lockbuddy.tree_builder import DependencyTreeBuilder


def dep(version, specifier=None):
    return {"specifier": specifier or version, "version": version}


LINKED_WORKSPACE = {
    "lockfileVersion": "9.0",
    "importers": {
        "apps/web": {
            "dependencies": {"@my/logger": dep("link:../../packages/logger", "workspace:*")},
        },
        "packages/logger": {
            "dependencies": {"@my/fetch-utils": dep("link:../fetch-utils", "workspace:*")},
        },
        "packages/fetch-utils": {
            "dependencies": {"react": dep("19.1.1", "^19.1.0")},
        },
    },
    "snapshots": {
        "react@19.1.1": {},
    },
}


def find_child(nodes, name):
    return next(node for node in nodes if node.name == name)


class TestDependencyTreeBuilder:
    """Tests for DependencyTreeBuilder."""

    def test_expands_snapshots(self):
        """Test that snapshot edges become children."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {
                ".": {
                    "dependencies": {"express": dep("4.18.2", "^4.18.0")},
                    "devDependencies": {"typescript": dep("5.3.3")},
                },
            },
            "snapshots": {
                "express@4.18.2": {"dependencies": {"body-parser": "1.20.0"}},
                "body-parser@1.20.0": {"dependencies": {"bytes": "3.1.2"}},
                "bytes@3.1.2": {},
                "typescript@5.3.3": {},
            },
        })

        trees = DependencyTreeBuilder(lockfile).build_trees()
        roots = trees["."]

        assert [node.package_id for node in roots] == ["express@4.18.2", "typescript@5.3.3"]
        express = roots[0]
        assert express.dependency_type == "dependencies"
        assert express.specifier == "^4.18.0"
        assert express.children[0].package_id == "body-parser@1.20.0"
        assert express.children[0].children[0].package_id == "bytes@3.1.2"
        assert roots[1].is_dev

    def test_optional_snapshot_edges(self):
        """Test that optional snapshot edges are merged with a distinct kind."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {".": {"dependencies": {"chokidar": dep("3.5.3")}}},
            "snapshots": {
                "chokidar@3.5.3": {
                    "dependencies": {"braces": "3.0.2"},
                    "optionalDependencies": {"fsevents": "2.3.3"},
                },
                "braces@3.0.2": {},
                "fsevents@2.3.3": {},
            },
        })

        chokidar = DependencyTreeBuilder(lockfile).build_trees()["."][0]

        assert [child.name for child in chokidar.children] == ["braces", "fsevents"]
        assert chokidar.children[1].is_optional

    def test_link_nodes_are_kept(self):
        """Test multi-level workspace links."""
        lockfile = Lockfile.from_dict(LINKED_WORKSPACE)

        trees = DependencyTreeBuilder(lockfile).build_trees()
        logger_link = trees["apps/web"][0]

        assert logger_link.is_link
        assert logger_link.package_id == "@my/logger"
        assert logger_link.version == "link:packages/logger"
        fetch_link = logger_link.children[0]
        assert fetch_link.version == "link:packages/fetch-utils"
        assert fetch_link.children[0].package_id == "react@19.1.1"

    def test_cyclic_snapshots_terminate(self):
        """Test that a dependency cycle ends with a childless revisit."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {".": {"dependencies": {"pkg-a": dep("1.0.0")}}},
            "snapshots": {
                "pkg-a@1.0.0": {"dependencies": {"pkg-b": "1.0.0"}},
                "pkg-b@1.0.0": {"dependencies": {"pkg-c": "1.0.0"}},
                "pkg-c@1.0.0": {"dependencies": {"pkg-a": "1.0.0"}},
            },
        })

        pkg_a = DependencyTreeBuilder(lockfile).build_trees()["."][0]
        pkg_c = pkg_a.children[0].children[0]
        revisit = pkg_c.children[0]

        assert pkg_c.package_id == "pkg-c@1.0.0"
        assert revisit.package_id == "pkg-a@1.0.0"
        assert revisit.children == []

    def test_link_cycle_terminates(self):
        """Test that projects linking each other do not recurse forever."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {
                "packages/a": {"dependencies": {"b": dep("link:../b")}},
                "packages/b": {"dependencies": {"a": dep("link:../a")}},
            },
        })

        trees = DependencyTreeBuilder(lockfile).build_trees()
        link_b = trees["packages/a"][0]
        link_back = link_b.children[0]

        assert link_b.version == "link:packages/b"
        assert link_back.version == "link:packages/a"
        assert link_back.children == []

    def test_max_depth(self):
        """Test that nodes at max_depth have no children."""
        snapshots = {f"level-{i}@1.0.0": {"dependencies": {f"level-{i + 1}": "1.0.0"}} for i in range(15)}
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {".": {"dependencies": {"level-0": dep("1.0.0")}}},
            "snapshots": snapshots,
        })

        node = DependencyTreeBuilder(lockfile, max_depth=3).build_trees()["."][0]
        depth = 0
        while node.children:
            node = node.children[0]
            depth += 1

        assert depth == 3
        assert node.package_id == "level-3@1.0.0"

    def test_unresolvable_link_is_dropped_with_warning(self):
        """Test that a link to a missing project is skipped."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {".": {"dependencies": {"@my/ghost": dep("link:packages/ghost")}}},
        })

        builder = DependencyTreeBuilder(lockfile)
        trees = builder.build_trees()

        assert trees["."] == []
        assert [w.kind for w in builder.warnings] == ["unresolvable-link"]

    def test_missing_snapshot_is_a_leaf(self):
        """Test that a missing snapshot yields a leaf, not an error."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {".": {"dependencies": {"left-pad": dep("1.3.0")}}},
            "snapshots": {},
        })

        builder = DependencyTreeBuilder(lockfile)
        node = builder.build_trees()["."][0]

        assert node.package_id == "left-pad@1.3.0"
        assert node.is_missing
        assert node.children == []
        assert builder.warnings[0].kind == "missing-snapshot"

    def test_injected_package_reaches_its_links(self):
        """Test that an injected file: package keeps its workspace links."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {
                "apps/app": {
                    "dependencies": {
                        "@my/shared": dep("file:packages/shared(react@18.2.0)", "workspace:*"),
                        "react": dep("18.2.0"),
                    }
                },
                "packages/shared": {
                    "dependencies": {"@my/logger": dep("link:../logger", "workspace:*")},
                    "devDependencies": {"react": dep("18.2.0")},
                },
                "packages/logger": {"dependencies": {"chalk": dep("5.3.0")}},
            },
            "snapshots": {
                "@my/shared@file:packages/shared(react@18.2.0)": {},
                "react@18.2.0": {},
                "chalk@5.3.0": {},
            },
        })

        shared = DependencyTreeBuilder(lockfile).build_trees()["apps/app"][0]
        logger_link = shared.children[0]

        assert shared.package_id == "@my/shared@file:packages/shared(react@18.2.0)"
        assert logger_link.version == "link:packages/logger"
        assert logger_link.children[0].package_id == "chalk@5.3.0"

    def test_alias_resolves_to_real_package(self):
        """Test an npm alias edge."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {
                ".": {"dependencies": {"string-width-cjs": dep("string-width@4.2.3", "npm:string-width@^4.2.0")}}
            },
            "snapshots": {"string-width@4.2.3": {}},
        })

        node = DependencyTreeBuilder(lockfile).build_trees()["."][0]

        assert node.name == "string-width"
        assert node.version == "4.2.3"
        assert node.alias == "string-width-cjs"
        assert not node.is_missing

    def test_legacy_lockfile_without_snapshots(self):
        """Test that v6 lockfiles take edges from packages."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "6.0",
            "importers": {".": {"dependencies": {"react": dep("18.2.0")}}},
            "packages": {
                "/react@18.2.0": {"dependencies": {"loose-envify": "1.4.0"}},
                "/loose-envify@1.4.0": {},
            },
        })

        react = DependencyTreeBuilder(lockfile).build_trees()["."][0]

        assert react.children[0].package_id == "loose-envify@1.4.0"

    def test_unknown_project(self):
        """Test that building an unknown project raises."""
        lockfile = Lockfile.from_dict(LINKED_WORKSPACE)

        with pytest.raises(ProjectNotFoundError):
            DependencyTreeBuilder(lockfile).build_importer_tree("apps/missing")


class TestVerifiedHierarchy:
    """Tests for the verified-hierarchy provider hook."""

    def test_provider_output_is_preferred(self):
        """Test that non-empty provider trees are used."""
        lockfile = Lockfile.from_dict(LINKED_WORKSPACE)
        provided = {"apps/web": [DependencyTreeNode(name="react", version="19.1.1")]}
        provider = Mock()
        provider.get_hierarchy.return_value = provided

        trees = DependencyTreeBuilder(lockfile, hierarchy_provider=provider).build_trees()

        assert trees is provided
        provider.get_hierarchy.assert_called_once()

    def test_empty_provider_output_falls_back(self):
        """Test the fallback when the provider returns nothing."""
        lockfile = Lockfile.from_dict(LINKED_WORKSPACE)
        provider = Mock()
        provider.get_hierarchy.return_value = {"apps/web": []}

        trees = DependencyTreeBuilder(lockfile, hierarchy_provider=provider).build_trees()

        assert trees["apps/web"][0].package_id == "@my/logger"

    def test_failing_provider_falls_back(self):
        """Test the fallback when the provider is unavailable."""
        lockfile = Lockfile.from_dict(LINKED_WORKSPACE)
        provider = Mock()
        provider.get_hierarchy.side_effect = HierarchyUnavailableError("pnpm not installed")

        trees = DependencyTreeBuilder(lockfile, hierarchy_provider=provider).build_trees()

        assert set(trees) == {"apps/web", "packages/logger", "packages/fetch-utils"}


class TestRevisitsAndInjectedEdges:
    """Tests for depth-aware revisits and link edges inside snapshots."""

    def test_shallower_revisit_is_expanded_again(self):
        """Test that a package first expanded near max_depth is expanded again closer to the root."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {".": {"dependencies": {"x": dep("1.0.0")}}},
            "snapshots": {
                "x@1.0.0": {"dependencies": {"y": "1.0.0", "z": "1.0.0"}},
                "y@1.0.0": {"dependencies": {"z": "1.0.0"}},
                "z@1.0.0": {"dependencies": {"w": "1.0.0"}},
                "w@1.0.0": {"dependencies": {"v": "1.0.0"}},
                "v@1.0.0": {"dependencies": {"u": "1.0.0"}},
                "u@1.0.0": {},
            },
        })

        tracker = DependencyTracker(lockfile, max_depth=4)

        assert tracker.get_importers_for_package("u@1.0.0") == ["."]
        path = tracker.get_dependency_path(".", "u@1.0.0")
        assert [step.package for step in path] == ["x@1.0.0", "z@1.0.0", "w@1.0.0", "v@1.0.0", "u@1.0.0"]

    def test_injected_snapshot_links_resolve_from_their_project(self):
        """Test that link: edges of an injected package are relative to that package's project."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {
                "apps/app": {"dependencies": {"@my/shared": dep("file:packages/shared", "workspace:*")}},
                "apps/logger": {"dependencies": {"lodash": dep("4.17.21")}},
                "packages/shared": {"dependencies": {"@my/logger": dep("link:../logger", "workspace:*")}},
                "packages/logger": {"dependencies": {"chalk": dep("5.3.0")}},
            },
            "snapshots": {
                "@my/shared@file:packages/shared": {"dependencies": {"@my/logger": "link:../logger"}},
                "chalk@5.3.0": {},
                "lodash@4.17.21": {},
            },
        })

        builder = DependencyTreeBuilder(lockfile)
        shared = builder.build_trees()["apps/app"][0]

        assert [child.version for child in shared.children] == ["link:packages/logger"]
        assert shared.children[0].children[0].package_id == "chalk@5.3.0"
        assert "unresolvable-link" not in [w.kind for w in builder.warnings]

    def test_registry_snapshot_links_resolve_from_root(self):
        """Test that a link: edge under a regular package is root-relative."""
        lockfile = Lockfile.from_dict({
            "lockfileVersion": "9.0",
            "importers": {
                "apps/web": {"dependencies": {"tool": dep("1.0.0")}},
                "packages/cfg": {},
            },
            "snapshots": {"tool@1.0.0": {"dependencies": {"@my/cfg": "link:packages/cfg"}}},
        })

        tool = DependencyTreeBuilder(lockfile).build_trees()["apps/web"][0]

        assert tool.children[0].version == "link:packages/cfg"
