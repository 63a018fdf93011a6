"""Argument parsing functionality for dist-surveyor."""

import argparse
from constants import Constants


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="dist-surveyor",
        description=(
            "dist-surveyor - Determine which CPAN distribution releases "
            "provided the modules installed in a library tree"
        ),
        add_help=True,
    )

    parser.add_argument("DIRS",
                        help="Library directories to survey (e.g. local/lib/perl5)",
                        nargs="*",
                        default=[])
    parser.add_argument("-l", "--load-list",
                        dest="LIST_FROM_FILE",
                        help="Load 'Module::Name version' lines from a file instead of scanning",
                        action="append", type=str,
                        default=[])

    parser.add_argument("--match",
                        dest="MATCH",
                        help="Only survey modules whose name matches this regular expression",
                        action="store",
                        type=str)
    parser.add_argument("--ignore",
                        dest="IGNORE",
                        help="Skip modules whose name matches this regular expression",
                        action="store",
                        type=str)
    parser.add_argument("--uncore",
                        dest="UNCORE",
                        help="Skip modules shipped at the same version with this perl release, given numified (5.036) or dotted (5.36.0); a bare decimal such as 5.36 means 5.360.0",
                        action="store",
                        type=str)
    parser.add_argument("--remnants",
                        dest="REMNANTS",
                        help="Keep old releases that only explain modules left behind by an upgrade",
                        action="store_true",
                        default=None)

    parser.add_argument("--no-cache",
                        dest="USE_CACHE",
                        help="Do not read or write the persistent registry cache",
                        action="store_false",
                        default=None)
    parser.add_argument("--cache-file",
                        dest="CACHE_FILE",
                        help="Path of the persistent registry cache (SQLite)",
                        action="store",
                        type=str)
    parser.add_argument("--workers",
                        dest="WORKERS",
                        help="Number of parallel registry lookups (default: %d)" % Constants.DEFAULT_WORKERS,
                        action="store",
                        type=int)
    parser.add_argument("--registry-url",
                        dest="REGISTRY_URL",
                        help="MetaCPAN API root",
                        action="store",
                        type=str)

    parser.add_argument("--format",
                        dest="TEMPLATE",
                        help="Text output template using record field names, e.g. '{release} {author}' "
                             "(default: %s)" % Constants.DEFAULT_TEMPLATE,
                        action="store",
                        type=str)
    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to output file (text, JSON or CSV); defaults to stdout",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--output-format",
                        dest="OUTPUT_FORMAT",
                        help="Output format. If not specified, inferred from --output extension; defaults to text.",
                        action="store",
                        type=str.lower,
                        choices=Constants.SUPPORTED_FORMATS)
    parser.add_argument("--makecpan",
                        dest="MAKECPAN",
                        help="Write the resolved releases into a local mirror at this directory",
                        action="store",
                        type=str)

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level (default: $SURVEYOR_LOG_LEVEL, else INFO)",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default=None)
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
