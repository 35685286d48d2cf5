# src/object_aggregator/transforms.py

"""
Aggregation transforms: the per-mode half of the pipeline.

Both variants consume (key, bytes) pairs in candidate order and produce a
single Artifact:

- TabularMerge concatenates the rows of the first worksheet of every
  workbook under one shared header row.
- ArchivePack stores every object as a deflated zip entry named after the
  object's basename.

Each instance belongs to exactly one pipeline run.
"""

import io
import logging
import zipfile
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from openpyxl import Workbook, load_workbook

from .exceptions import CodecError, DuplicateEntryNameError, NoDataFoundError
from .schemas import AggregationMode, AggregationRequest, Artifact
from .security import archive_entry_name

logger = logging.getLogger(__name__)

Row = list[Any]

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
ZIP_CONTENT_TYPE = "application/zip"
MERGED_SHEET_TITLE = "Combined Data"

# Entries get a constant timestamp so identical inputs seal to identical bytes.
_FIXED_ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
_ZIP_ENTRY_MODE = 0o644 << 16


class AggregationTransform(ABC):
    """Common interface of the two aggregation variants."""

    mode: ClassVar[AggregationMode]
    content_type: ClassVar[str]

    def __init__(self, output_key: str):
        self.output_key = output_key
        self.added_count = 0

    @classmethod
    @abstractmethod
    def output_key_for(cls, request: AggregationRequest) -> str:
        """Deterministic destination key; identical requests overwrite one artifact."""

    @abstractmethod
    def add(self, key: str, data: bytes) -> None:
        """Feed one object's full content, in candidate order."""

    @abstractmethod
    def finalize(self) -> Artifact:
        """Seal the accumulated state into the output artifact."""


# --- Tabular codec helpers ---


def _is_blank(row: tuple | list) -> bool:
    return all(cell is None or cell == "" for cell in row)


def decode_rows(data: bytes) -> list[Row]:
    """
    Decodes the first worksheet of an .xlsx workbook into rows of cell values.

    Leading and trailing blank rows are dropped, so a workbook whose first
    sheet holds no values decodes to an empty list.
    """
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        # Stored dimensions are often wrong in files from other tools; read every row.
        sheet.reset_dimensions()
        rows = [list(row) for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()

    # Data may start below row 1; the read-only reader yields the rows above it as blanks.
    start = 0
    while start < len(rows) and _is_blank(rows[start]):
        start += 1
    rows = rows[start:]
    while rows and _is_blank(rows[-1]):
        rows.pop()
    return rows


def encode_rows(rows: list[Row], title: str = MERGED_SHEET_TITLE) -> bytes:
    """Encodes *rows* as the only worksheet of a new .xlsx workbook."""
    workbook = Workbook(write_only=True)
    sheet = workbook.create_sheet(title=title)
    for row in rows:
        sheet.append(row)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TabularMerge(AggregationTransform):
    """Concatenates workbook rows under the header of the first non-empty workbook."""

    mode = AggregationMode.TABULAR_MERGE
    content_type = XLSX_CONTENT_TYPE

    def __init__(self, output_key: str):
        super().__init__(output_key)
        self.header_written = False
        self.row_cursor = 0
        self._rows: list[Row] = []

    @classmethod
    def output_key_for(cls, request: AggregationRequest) -> str:
        return (
            f"output/merged-files-from-{request.start_date.isoformat()}"
            f"-to-{request.end_date.isoformat()}.xlsx"
        )

    @property
    def rows(self) -> list[Row]:
        return list(self._rows)

    def add(self, key: str, data: bytes) -> None:
        try:
            decoded = decode_rows(data)
        except Exception as e:
            raise CodecError(
                "Failed to read workbook", context={"key": key, "error": str(e)}
            ) from e

        self.added_count += 1
        if not decoded:
            logger.debug("Workbook has no rows. Skipping.", extra={"key": key})
            return

        if not self.header_written:
            to_append = decoded
            self.header_written = True
        else:
            # The first row of every later workbook is taken to be a repeat
            # of the header; it is not compared against it.
            to_append = decoded[1:]

        self._rows.extend(to_append)
        self.row_cursor += len(to_append)
        logger.debug(
            "Appended workbook rows",
            extra={"key": key, "rows_appended": len(to_append), "row_cursor": self.row_cursor},
        )

    def finalize(self) -> Artifact:
        if not self.header_written:
            raise NoDataFoundError(file_count=self.added_count)

        try:
            data = encode_rows(self._rows)
        except Exception as e:
            raise CodecError(
                "Failed to write merged workbook",
                context={"key": self.output_key, "rows": self.row_cursor, "error": str(e)},
            ) from e

        return Artifact(
            data=data,
            content_type=self.content_type,
            key=self.output_key,
            object_count=self.added_count,
        )


class ArchivePack(AggregationTransform):
    """Packs every object into one zip archive at maximum compression."""

    mode = AggregationMode.ARCHIVE_PACK
    content_type = ZIP_CONTENT_TYPE

    def __init__(self, output_key: str, compression_level: int = 9):
        super().__init__(output_key)
        self._compression_level = compression_level
        self._buffer = io.BytesIO()
        self._archive = zipfile.ZipFile(
            self._buffer,
            mode="w",
            compression=zipfile.ZIP_DEFLATED,
            compresslevel=compression_level,
        )
        self._names: set[str] = set()

    @classmethod
    def output_key_for(cls, request: AggregationRequest) -> str:
        return (
            f"compressed/{request.file_type}-files-from-{request.start_date.isoformat()}"
            f"-to-{request.end_date.isoformat()}.zip"
        )

    @property
    def entry_names(self) -> set[str]:
        return set(self._names)

    def add(self, key: str, data: bytes) -> None:
        name = archive_entry_name(key)
        if name in self._names:
            raise DuplicateEntryNameError(name=name, key=key)

        info = zipfile.ZipInfo(filename=name, date_time=_FIXED_ZIP_TIMESTAMP)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = _ZIP_ENTRY_MODE

        try:
            self._archive.writestr(info, data, compresslevel=self._compression_level)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            raise CodecError(
                "Failed to add file to archive", context={"key": key, "error": str(e)}
            ) from e

        self._names.add(name)
        self.added_count += 1

    def finalize(self) -> Artifact:
        # Closing writes the central directory; the buffer is only complete afterwards.
        try:
            self._archive.close()
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
            raise CodecError(
                "Failed to seal archive", context={"key": self.output_key, "error": str(e)}
            ) from e

        return Artifact(
            data=self._buffer.getvalue(),
            content_type=self.content_type,
            key=self.output_key,
            object_count=self.added_count,
        )


_TRANSFORMS: dict[AggregationMode, type[AggregationTransform]] = {
    transform_cls.mode: transform_cls for transform_cls in (TabularMerge, ArchivePack)
}


def build_transform(request: AggregationRequest) -> AggregationTransform:
    """Selects and initializes the transform variant for *request.mode*."""
    transform_cls = _TRANSFORMS[request.mode]
    return transform_cls(output_key=transform_cls.output_key_for(request))
