"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    METADATA_ERROR = 2
    EXIT_APPROVAL_REQUIRED = 3


class MetadataModes(Enum):
    """Build metadata acquisition modes.

    Args:
        Enum (string): Metadata modes supported by the program.
    """

    AUTO = "auto"
    METADATA = "metadata"
    TREE = "tree"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    Values may be overridden at runtime by cli_config (config file, --set, CLI flags).
    """

    CARGO_TOML_FILE = "Cargo.toml"
    ARTIFACT_EXTENSION = "crate"
    METADATA_MODES = [
        MetadataModes.AUTO.value,
        MetadataModes.METADATA.value,
        MetadataModes.TREE.value,
    ]
    MANIFEST_DEPENDENCY_SECTIONS = ("dependencies", "dev-dependencies", "build-dependencies")
    TREE_BENIGN_ANNOTATIONS = ("*", "proc-macro")

    # cargo invocation
    CARGO_BIN = "cargo"
    METADATA_MODE = MetadataModes.AUTO.value
    METADATA_FORMAT_VERSION = "1"
    METADATA_TIMEOUT_SEC = 300
    FILTER_PLATFORM = None
    INCLUDE_DEV_DEPENDENCIES = True
    CARGO_OFFLINE = False
    CARGO_LOCKED = False

    # approval policy
    APPROVED_CRATES: list = []
    ZERO_MAJOR_MINOR_IS_BREAKING = False

    # logging / config
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "CRATEGAP_LOG_LEVEL"
    ENV_CONFIG = "CRATEGAP_CONFIG"
    DEFAULT_CONFIG_FILES = ["crategap.yml", "crategap.yaml", "crategap.json"]
    REPORT_RULE = "=" * 40
