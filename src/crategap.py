"""crategap - keeps an offline crate mirror listing in sync with a project's dependency closure

    Returns:
        int: Exit code
"""
import logging
import os
import sys

from constants import ExitCodes, Constants
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args
from cli_config import ConfigError, apply_cli_overrides, apply_config, build_config
from buildmeta.source import CargoInvocation, MetadataError, select_source
from mirror.inventory import InventoryFileError, read_inventory
from mirror.merger import accepted_artifacts, write_merged_inventory
from analysis.reconcile import reconcile_source
from analysis.report import export_csv, export_json, render_report

logger = logging.getLogger(__name__)


def _setup_logging(args) -> None:
    """Configure logging from --loglevel/--logfile."""
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging(getattr(args, "LOG_FILE", None))


def _output_format(args) -> str:
    if getattr(args, "OUTPUT_FORMAT", None):
        return args.OUTPUT_FORMAT.lower()
    if args.OUTPUT.lower().endswith(".csv"):
        return "csv"
    return "json"


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)

    try:
        apply_config(build_config(args.CONFIG, args.CONFIG_SET))
    except ConfigError as e:
        logger.error("%s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    apply_cli_overrides(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    extension = Constants.ARTIFACT_EXTENSION
    approved = list(Constants.APPROVED_CRATES)

    logger.info("Scanning project dependencies...")
    invocation = CargoInvocation.from_constants(args.MANIFEST_PATH)
    try:
        source = select_source(
            invocation,
            Constants.METADATA_MODE,
            metadata_file=args.METADATA_FILE,
            tree_file=args.TREE_FILE,
        )
        logger.info("Reading existing registry file: %s", args.REGISTRY_FILE)
        inventory = read_inventory(args.REGISTRY_FILE, extension)
        report = reconcile_source(
            source,
            inventory,
            zero_major_minor_is_breaking=bool(Constants.ZERO_MAJOR_MINOR_IS_BREAKING),
        )
    except MetadataError as e:
        logger.error("Failed to obtain build metadata. Is this a valid Rust project? %s", e)
        sys.exit(ExitCodes.METADATA_ERROR.value)
    except InventoryFileError as e:
        logger.error("%s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    if not args.QUIET:
        print(render_report(report, approved, args.APPROVE_ALL, extension), end="")

    if getattr(args, "OUTPUT", None):
        if _output_format(args) == "csv":
            export_csv(report, args.OUTPUT, extension)
        else:
            export_json(report, args.OUTPUT, extension)

    if args.WRITE:
        accepted = accepted_artifacts(report.gaps, approved, args.APPROVE_ALL, extension)
        held_back = len(report.gaps) - len(accepted)
        logger.info("Merging and sorting registry file...")
        try:
            added = write_merged_inventory(args.REGISTRY_FILE, accepted, extension)
        except InventoryFileError as e:
            logger.error("%s", e)
            sys.exit(ExitCodes.FILE_ERROR.value)
        logger.info("Successfully updated and sorted %s (%d added)", args.REGISTRY_FILE, len(added))
        if held_back:
            logger.warning(
                "%d crate(s) require approval and were not added (use --approve NAME or --approve-all)",
                held_back,
            )
    elif report.gaps and not args.QUIET:
        print("\n(Run with --write to add these and sort the file)")

    unapproved = report.unapproved(approved, args.APPROVE_ALL)
    if unapproved and args.ERROR_ON_APPROVAL:
        logger.error("%d crate(s) require approval, exiting with non-zero status code.", len(unapproved))
        sys.exit(ExitCodes.EXIT_APPROVAL_REQUIRED.value)

    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
