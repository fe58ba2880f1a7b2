"""Bulk import and export of the library."""

from .json_transfer import (
    ExportedChannel,
    ExportedVideo,
    JsonImportResult,
    JsonTransfer,
    LibraryExport,
)
from .opml_importer import OpmlImporter, OpmlOutline, parse_opml

__all__ = [
    "ExportedChannel",
    "ExportedVideo",
    "JsonImportResult",
    "JsonTransfer",
    "LibraryExport",
    "OpmlImporter",
    "OpmlOutline",
    "parse_opml",
]
