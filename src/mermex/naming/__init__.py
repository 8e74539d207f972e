"""Output naming: versioned (content-addressed) and overwrite policies."""

from mermex.naming.engine import NamingEngine, NamingRecord
from mermex.naming.policies import (
    OverwriteNaming,
    VersionedNaming,
    overwrite_file_name,
)
from mermex.naming.sanitize import (
    base_name_from_path,
    sanitize_base_name,
    short_hash,
)

__all__ = [
    "NamingEngine",
    "NamingRecord",
    "OverwriteNaming",
    "VersionedNaming",
    "base_name_from_path",
    "overwrite_file_name",
    "sanitize_base_name",
    "short_hash",
]
