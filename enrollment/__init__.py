"""
Core package init for the bulk enrollment pipeline.

Roster parsing, photo resolution, face extraction, duplicate detection and
registry persistence for registering many people from a single CSV file.
"""

__all__ = [
    "config",
    "errors",
    "ingest",
    "io_utils",
    "photos",
    "pipeline",
    "recognition",
    "registry",
    "reporting",
    "types",
]
