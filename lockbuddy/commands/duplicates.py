"""Duplicates command: report packages resolved to several instances."""

import logging
import sys
from pathlib import Path

from ..duplicates import DuplicatesAnalyzer
from ..hierarchy import PnpmListClient
from ..lockfile import load_lockfile
from ..matcher import is_wildcard
from ..models import DuplicatesOptions

logger = logging.getLogger(__name__)


def handle_duplicates(args) -> int:
    """Handle the 'duplicates' subcommand."""
    lockfile = load_lockfile(args.file)

    missing_projects = [p for p in (args.project or []) if p not in lockfile.importers]
    if missing_projects:
        print(f"Error: Project(s) not found in lockfile: {', '.join(missing_projects)}", file=sys.stderr)
        return 1

    hierarchy_provider = None
    workspace_dir = str(Path(lockfile.path).parent) if lockfile.path else '.'
    if not args.lockfile_only and PnpmListClient.is_available(workspace_dir):
        logger.info("Using pnpm list for the verified dependency hierarchy")
        hierarchy_provider = PnpmListClient(workspace_dir, depth=args.max_depth)

    analyzer = DuplicatesAnalyzer(lockfile, hierarchy_provider=hierarchy_provider)

    packages = args.packages or None
    if packages:
        explicit = [name for name in packages if not is_wildcard(name)]
        existence = analyzer.packages_exist(explicit)
        if existence['missing']:
            print(f"Error: Package(s) not found in lockfile: {', '.join(existence['missing'])}", file=sys.stderr)
            return 1

    options = DuplicatesOptions(
        show_all=args.all,
        package_filter=packages,
        project_filter=args.project or None,
        omit_types=args.omit or None,
        check_hoist=args.hoist,
        modules_dir=args.modules_dir,
        max_depth=args.max_depth,
    )

    if args.per_project:
        groups = analyzer.find_per_project_duplicates(options)
        if args.deps:
            analyzer.enrich_with_all_paths(groups, options.max_depth)
        output = analyzer.format_per_project_results(groups, args.output_format, args.deps, args.deps_depth)
    else:
        groups = analyzer.find_duplicates(options)
        if args.deps:
            analyzer.enrich_with_dependency_paths(groups, options.max_depth)
        output = analyzer.format_results(groups, args.output_format, args.deps, args.deps_depth)

    print(output, end='')

    if args.exit_code and groups and not args.all:
        return 1
    return 0
