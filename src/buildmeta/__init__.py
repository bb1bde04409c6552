"""Build metadata acquisition package.

Wraps the external cargo commands (or saved copies of their output) behind a
single MetadataSource capability with a structured and a textual variant.
"""

from .source import (
    CargoInvocation,
    MetadataError,
    MetadataSource,
    StructuredGraphSource,
    TextualTreeSource,
    run_cargo,
    select_source,
)

__all__ = [
    "CargoInvocation",
    "MetadataError",
    "MetadataSource",
    "StructuredGraphSource",
    "TextualTreeSource",
    "run_cargo",
    "select_source",
]
