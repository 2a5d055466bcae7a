"""List command: find where packages appear in the lockfile."""

import logging
import sys

from ..lockfile import load_lockfile
from ..models import ListOptions
from ..package_id import PackageIdParser
from ..search import ListAnalyzer

logger = logging.getLogger(__name__)


def handle_list(args) -> int:
    """Handle the 'list' subcommand."""
    lockfile = load_lockfile(args.file)

    missing_projects = [p for p in (args.project or []) if p not in lockfile.importers]
    if missing_projects:
        print(f"Error: Project(s) not found in lockfile: {', '.join(missing_projects)}", file=sys.stderr)
        return 1

    analyzer = ListAnalyzer(lockfile)
    options = ListOptions(exact_match=args.exact, project_filter=args.project or None)

    if args.package:
        name = PackageIdParser.get_name(args.package)
        if not analyzer.package_exists(name):
            print(f"Error: Package not found in lockfile: {name}", file=sys.stderr)
            return 1
        results = analyzer.search(args.package, options)
    else:
        results = analyzer.list_all(options)

    logger.info(f"{len(results)} results")
    print(analyzer.format_results(results, args.output_format), end='')
    return 0
