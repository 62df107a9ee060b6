#!/usr/bin/env python3
"""
CSV Text Processor
Reads a small comma-delimited text file, gates it on file type and splits it into
header and data rows for the column extractor.

Tokenizing is line-oriented: the text is trimmed, split on ``\\r?\\n`` and each
line is split on ``,``. Quoted fields are NOT honoured by the default tokenizer;
a comma inside quotes is a delimiter. ``Delimiting.QUOTED`` opts into a
quote-aware split of each line.
"""

import csv
import logging
import mimetypes
import os
import re
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

CSV_MEDIA_TYPE = "text/csv"
CSV_SUFFIX = ".csv"
DEFAULT_ENCODING = "utf-8-sig"

_LINE_SPLIT_RE = re.compile(r"\r?\n")


class CSVProcessingError(Exception):
    """Base exception for CSV processing errors."""

    pass


class FileTypeError(CSVProcessingError):
    """Raised when the selected file is neither a .csv file nor text/csv."""

    pass


class ReadError(CSVProcessingError):
    """Raised when the file cannot be accessed, read or decoded."""

    pass


class StructureError(CSVProcessingError):
    """Raised when the text holds no data rows (header only, or empty)."""

    pass


class RowError(CSVProcessingError):
    """Per-row rejection. Carries the 1-based source line number."""

    def __init__(self, message: str, line_number: Optional[int] = None) -> None:
        super().__init__(message)
        self.line_number = line_number


class RowSchemaError(RowError):
    """Row has the wrong number of fields for the validation mode."""

    pass


class RowValueError(RowError):
    """Target field is missing, empty or not numeric."""

    pass


class EmptyResultError(CSVProcessingError):
    """Raised when no row survives validation."""

    def __init__(self, message: str, invalid_count: int = 0) -> None:
        super().__init__(message)
        self.invalid_count = invalid_count


class ParseError(CSVProcessingError):
    """Catch-all wrapper for unexpected failures in the parse/plot pipeline."""

    pass


class Delimiting(Enum):
    """How a single line is split into fields."""

    NAIVE = auto()  # plain split on ','
    QUOTED = auto()  # quote-aware split, "a,b" stays one field


@dataclass
class TableRow:
    line_number: int
    raw: str
    fields: List[str]

    @property
    def is_blank(self) -> bool:
        return not self.raw.strip()


@dataclass
class ParsedTable:
    """
    Header plus data rows as produced by tokenize().

    Attributes:
        header: Fields of the first line.
        rows: Every line after the header, blank ones included, in source order.
              Row lengths are not guaranteed to match the header.
    """

    header: List[str]
    rows: List[TableRow] = field(default_factory=list)

    @property
    def column_count(self) -> int:
        return len(self.header)

    @property
    def data_rows(self) -> List[TableRow]:
        """Rows that count towards totals (blank lines are treated as absent)."""
        return [r for r in self.rows if not r.is_blank]

    def column_label(self, index: int) -> str:
        if 0 <= index < len(self.header):
            label = self.header[index].strip()
            if label:
                return label
        return f"Column {index + 1}"


def split_fields(line: str, delimiting: Delimiting = Delimiting.NAIVE) -> List[str]:
    """Split one line into fields."""
    if delimiting is Delimiting.QUOTED:
        return next(csv.reader([line], skipinitialspace=False), [])
    return line.split(",")


def tokenize(text: str, delimiting: Delimiting = Delimiting.NAIVE) -> ParsedTable:
    """
    Split raw file text into a ParsedTable.

    Raises:
        StructureError: If fewer than two lines remain after trimming.
    """
    lines = _LINE_SPLIT_RE.split(text.strip())
    if len(lines) <= 1:
        raise StructureError(
            "CSV file has no data rows (a header and at least one data line are required)."
        )

    header = split_fields(lines[0], delimiting)
    rows = [
        TableRow(line_number=i + 2, raw=line, fields=split_fields(line, delimiting))
        for i, line in enumerate(lines[1:])
    ]
    logger.debug(
        f"Tokenized {len(rows)} data lines, header has {len(header)} columns"
    )
    return ParsedTable(header=header, rows=rows)


def check_file_type(name: Union[str, Path], media_type: Optional[str] = None) -> None:
    """
    Accept a file when its name ends in .csv or its media type is text/csv.

    When media_type is None it is guessed from the file name.

    Raises:
        FileTypeError: If neither condition holds.
    """
    name_str = str(name)
    if media_type is None:
        media_type, _ = mimetypes.guess_type(name_str)
    if media_type == CSV_MEDIA_TYPE or name_str.lower().endswith(CSV_SUFFIX):
        return
    raise FileTypeError(
        f"Please upload a .csv file (got {Path(name_str).name!r}, type {media_type!r})."
    )


class CSVTextLoader:
    """
    Reads a CSV file as text after gating it on file type.

    Usable as a context manager so callers read the same way whether or not they
    hold on to the loader.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        media_type: Optional[str] = None,
        encoding: Optional[str] = None,
    ) -> None:
        """
        Args:
            file_path: Path to the CSV file.
            media_type: Media type reported by the upload, if any.
            encoding: Text encoding; defaults to COLSTATS_ENCODING or utf-8-sig.

        Raises:
            FileTypeError: If the file is not a CSV file.
            ReadError: If the path does not exist or is not a regular file.
        """
        self.file_path = Path(file_path)
        self.media_type = media_type
        self.encoding = encoding or os.getenv("COLSTATS_ENCODING", DEFAULT_ENCODING)
        check_file_type(self.file_path.name, media_type)
        if not self.file_path.exists():
            raise ReadError(f"CSV file not found: {self.file_path}")
        if not self.file_path.is_file():
            raise ReadError(f"Path is not a file: {self.file_path}")

    def read_text(self) -> str:
        """
        Raises:
            ReadError: If the file cannot be read or decoded.
        """
        try:
            return self.file_path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError, LookupError) as e:
            raise ReadError(f"Error reading file {self.file_path.name}: {e}") from e

    def read_table(self, delimiting: Delimiting = Delimiting.NAIVE) -> ParsedTable:
        return tokenize(self.read_text(), delimiting)

    def get_file_info(self, delimiting: Delimiting = Delimiting.NAIVE) -> Dict[str, Any]:
        """
        Get basic information about the CSV file.

        Raises:
            ReadError: If the file cannot be read.
            StructureError: If the file holds no data rows.
        """
        table = self.read_table(delimiting)
        return {
            "file_path": str(self.file_path),
            "file_size": self.file_path.stat().st_size,
            "encoding": self.encoding,
            "column_count": table.column_count,
            "columns": [table.column_label(i) for i in range(table.column_count)],
            "data_rows": len(table.data_rows),
        }

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass
