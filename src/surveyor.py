"""dist-surveyor - Determine which CPAN distribution releases make up a library tree

    Scans installed Perl modules (or reads a module list), asks MetaCPAN which
    releases shipped each module at its installed version, and reports the
    smallest set of releases that explains the installation.

    Returns:
        int: Exit code
"""
import logging
import sys

from constants import ExitCodes
from common.errors import ConfigurationError
from common.logging_utils import add_file_handler, configure_logging, extra_context, is_debug_enabled
from args import parse_args
from cli_config import build_survey_config
from mirror import MirrorBuilder
from output import infer_format, write_output
from resolution.service import SurveyService
from scan import load_module_list, scan_directories


def collect_modules(args):
    """Gather installed modules from scanned directories and list files.

    Args:
        args: Parsed CLI arguments.

    Returns:
        list: Installed modules, scanned directories first.
    """
    modules = []
    if args.DIRS:
        modules.extend(scan_directories(args.DIRS))
    for list_file in args.LIST_FROM_FILE or []:
        modules.extend(load_module_list(list_file))
    return modules


def main(argv=None):
    """Main function of the program."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL)
    if args.LOG_FILE:
        try:
            add_file_handler(args.LOG_FILE)
        except OSError as e:
            logging.error("Log file couldn't be opened: %s", e)
            sys.exit(ExitCodes.FILE_ERROR.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    try:
        config = build_survey_config(args)
    except ConfigurationError as e:
        logging.error("Configuration error: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    modules = collect_modules(args)
    if not modules:
        logging.warning("No installed modules found; nothing to survey.")
        sys.exit(ExitCodes.SUCCESS.value)

    service = SurveyService(config)
    try:
        result = service.survey(modules)
    finally:
        service.close()

    try:
        write_output(result, args.OUTPUT, infer_format(args.OUTPUT, args.OUTPUT_FORMAT), args.TEMPLATE)
    except ConfigurationError as e:
        logging.error("Output template error: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    mirror_failures = 0
    if args.MAKECPAN:
        report = MirrorBuilder(args.MAKECPAN).build(result.resolved)
        logging.info(
            "Mirror at %s: %d downloaded, %d already present, %d failed, %d packages indexed.",
            args.MAKECPAN,
            len(report.downloaded),
            len(report.skipped),
            len(report.failed),
            report.indexed_packages,
        )
        mirror_failures = len(report.failed)

    if result.error_count or mirror_failures:
        logging.warning(
            "Survey finished with %d registry errors and %d mirror failures.",
            result.error_count,
            mirror_failures,
        )
        sys.exit(ExitCodes.EXIT_WARNINGS.value)
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
