"""Argument parsing functionality for crategap."""

import argparse
from constants import Constants


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="crategap",
        description=(
            "crategap - Finds crates missing from an offline registry mirror"
        ),
        add_help=True,
    )

    parser.add_argument("-m", "--manifest-path",
                        dest="MANIFEST_PATH",
                        help="Path to the Cargo.toml of the project to check (default: ./Cargo.toml)",
                        action="store", type=str,
                        default=f"./{Constants.CARGO_TOML_FILE}")
    parser.add_argument("-r", "--registry-file",
                        dest="REGISTRY_FILE",
                        help="Path to the text file listing the offline registry crates",
                        action="store", type=str,
                        required=True)
    parser.add_argument("-w", "--write",
                        dest="WRITE",
                        help="Add accepted crates to the registry file and sort it",
                        action="store_true")
    parser.add_argument("--approve",
                        dest="APPROVE",
                        help="Approve a crate name that requires approval (can be used multiple times)",
                        action="append", type=str,
                        default=[])
    parser.add_argument("--approve-all",
                        dest="APPROVE_ALL",
                        help="Accept every missing crate, including those that require approval",
                        action="store_true")

    source_group = parser.add_mutually_exclusive_group()
    source_group.add_argument("--metadata-file",
                              dest="METADATA_FILE",
                              help="Use saved 'cargo metadata --format-version 1' JSON instead of running cargo",
                              action="store", type=str)
    source_group.add_argument("--tree-file",
                              dest="TREE_FILE",
                              help="Use saved 'cargo tree' output instead of running cargo",
                              action="store", type=str)
    parser.add_argument("--mode",
                        dest="METADATA_MODE",
                        help="Metadata source: auto, metadata or tree (default: auto)",
                        action="store", type=str.lower,
                        choices=Constants.METADATA_MODES)
    parser.add_argument("--cargo",
                        dest="CARGO_BIN",
                        help="cargo executable to run",
                        action="store", type=str)
    parser.add_argument("--filter-platform",
                        dest="FILTER_PLATFORM",
                        help="Only include dependencies for this target triple",
                        action="store", type=str)
    parser.add_argument("--no-dev",
                        dest="NO_DEV",
                        help="Do not follow dev-dependencies",
                        action="store_true")
    parser.add_argument("--offline",
                        dest="OFFLINE",
                        help="Pass --offline to cargo",
                        action="store_true")
    parser.add_argument("--locked",
                        dest="LOCKED",
                        help="Pass --locked to cargo",
                        action="store_true")

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to output file (JSON or CSV)",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--format",
                        dest="OUTPUT_FORMAT",
                        help="Output format (json or csv). If not specified, inferred from --output extension; defaults to json.",
                        action="store",
                        type=str.lower,
                        choices=['json', 'csv'])
    parser.add_argument("--error-on-approval",
                        dest="ERROR_ON_APPROVAL",
                        help="Exit with a non-zero status code if unapproved crates require approval.",
                        action="store_true")
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not print the report.",
                        action="store_true")

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to configuration file (YAML, YML, or JSON)",
                        action="store",
                        type=str)
    parser.add_argument("--set",
                        dest="CONFIG_SET",
                        help="Set configuration override (KEY=VALUE format, can be used multiple times)",
                        action="append",
                        type=str,
                        default=[])

    return parser.parse_args(argv)
