#!/usr/bin/env python3
"""
Column Statistics - CSV column to scatter series.

This module exposes the pipeline as plain functions over explicit parameter objects:
- extract_column()      rows -> (x, y) points, valid/invalid counts
- compute_stats()       values -> median / min / max
- build_plot_series()   points -> labelled series
- render_scatter()      series -> owned Matplotlib figure (ChartHandle)

Session ties them to the two UI events ("file selected", "column changed") and owns
the only mutable state: the retained table and the single chart handle.
"""

import logging
import math
import os
import re
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal, localcontext
from enum import Enum, auto
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

# Select the non-interactive backend before pyplot is imported anywhere.
import matplotlib

matplotlib.use("Agg", force=True)
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

# Support both package and script execution modes
try:
    # When run as a package: python -m colstats.main
    from .csv_processor import (
        CSVProcessingError,
        CSVTextLoader,
        Delimiting,
        EmptyResultError,
        FileTypeError,
        ParsedTable,
        ParseError,
        ReadError,
        RowError,
        RowSchemaError,
        RowValueError,
        StructureError,
        TableRow,
        tokenize,
    )
    from .utils import (
        build_effective_parameters,
        canonical_json_hash,
        ensure_run_dir,
        normalize_abs_posix,
        utc_timestamp_seconds,
        write_manifest,
    )
except ImportError:
    # When run directly: python colstats/main.py
    from csv_processor import (
        CSVProcessingError,
        CSVTextLoader,
        Delimiting,
        EmptyResultError,
        FileTypeError,
        ParsedTable,
        ParseError,
        ReadError,
        RowError,
        RowSchemaError,
        RowValueError,
        StructureError,
        TableRow,
        tokenize,
    )
    from utils import (
        build_effective_parameters,
        canonical_json_hash,
        ensure_run_dir,
        normalize_abs_posix,
        utc_timestamp_seconds,
        write_manifest,
    )

# Configure logging for debugging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Fixed-schema files: every data row has exactly 24 fields, the value is the 12th.
FIXED_FIELD_COUNT: int = 24
FIXED_COLUMN_INDEX: int = 11
FIXED_SERIES_LABEL: str = "Column 12 values"

# Flexible files: the 8th column is pre-selected when there are more than 8 columns.
DEFAULT_COLUMN_INDEX: int = 7
DEFAULT_COLUMN_MIN_COUNT: int = 8

STATS_PLACEHOLDER: str = "-"

# Leading numeric prefix, ASCII digits only: "12.5abc" -> "12.5", "1e" -> "1".
_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


class ValidationMode(Enum):
    """
    Row validation policy.

    - FIXED_SCHEMA: a row must have exactly ExtractParams.expected_field_count fields.
    - FLEXIBLE:     a row must have at least column_index + 1 fields.
    """

    FIXED_SCHEMA = auto()
    FLEXIBLE = auto()


class NumberParsing(Enum):
    PERMISSIVE = auto()  # leading numeric prefix, trailing text tolerated
    STRICT = auto()  # the whole trimmed token must be a number


class MessageLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ExtractParams:
    """
    Parameters for turning a parsed table into a numeric series.

    Attributes:
        mode: Row validation policy.
        column_index: Zero-based column to extract, or None when nothing is selected yet.
        expected_field_count: Exact field count required in FIXED_SCHEMA mode.
        number_parsing: Permissive (prefix) or strict number parsing.
        delimiting: Naive comma split or quote-aware split.
    """

    mode: ValidationMode = ValidationMode.FLEXIBLE
    column_index: Optional[int] = None
    expected_field_count: int = FIXED_FIELD_COUNT
    number_parsing: NumberParsing = NumberParsing.PERMISSIVE
    delimiting: Delimiting = Delimiting.NAIVE


@dataclass
class PlotParams:
    """
    Presentation parameters for the scatter chart.

    series_label None means "use the selected column's header text".
    y_title None means "use the series label".
    """

    series_label: Optional[str] = None
    x_title: str = "Time (s)"
    y_title: Optional[str] = None
    x_begin_at_zero: bool = True
    figsize: Tuple[float, float] = (10.0, 6.0)


@dataclass(frozen=True)
class DataPoint:
    x: int
    y: float


class ExtractionReport:
    """Counters and diagnostics for one extract_column() call."""

    def __init__(self, label: Optional[str] = None) -> None:
        self.label: Optional[str] = label

        # Row counters; blank lines are counted apart and excluded from total_rows
        self.total_rows: int = 0
        self.valid_rows: int = 0
        self.invalid_rows: int = 0
        self.blank_rows: int = 0

        # Diagnostics
        self.rejected: list[tuple[int, str]] = []

        # Timing
        self.started_at: Optional[float] = None
        self.finished_at: Optional[float] = None
        self.elapsed_ms: Optional[float] = None

    def start(self) -> None:
        import time

        self.started_at = time.perf_counter()

    def stop(self) -> None:
        import time

        self.finished_at = time.perf_counter()
        if self.started_at is not None:
            self.elapsed_ms = (self.finished_at - self.started_at) * 1000.0

    def add_rejection(self, line_number: int, reason: str) -> None:
        """Count a skipped row and log why."""
        self.invalid_rows += 1
        self.rejected.append((line_number, reason))
        logger.warning(f"Skipped line {line_number}: {reason}")

    def summarize(self) -> str:
        """Produce a concise summary string for diagnostics."""
        lbl = f"{self.label} " if self.label else ""
        parts = [
            f"{lbl}rows: {self.total_rows} -> valid={self.valid_rows}",
            f"invalid={self.invalid_rows}",
        ]
        if self.blank_rows:
            parts.append(f"blank_skipped={self.blank_rows}")
        if self.elapsed_ms is not None:
            parts.append(f"elapsed_ms={self.elapsed_ms:.1f}")
        return " | ".join(parts)


@dataclass
class ExtractionResult:
    points: List[DataPoint]
    values: List[float]
    column_index: int
    column_label: str
    report: ExtractionReport

    @property
    def valid_count(self) -> int:
        return self.report.valid_rows

    @property
    def invalid_count(self) -> int:
        return self.report.invalid_rows

    @property
    def total_count(self) -> int:
        return self.report.total_rows

    def to_frame(self) -> pd.DataFrame:
        """Points as a two-column DataFrame (x, y)."""
        return pd.DataFrame(
            {
                "x": pd.Series([p.x for p in self.points], dtype="int64"),
                "y": pd.Series([p.y for p in self.points], dtype="float64"),
            }
        )


@dataclass
class StatsSummary:
    """Full-precision statistics; rounding happens only in formatted()."""

    median: float
    min_value: float
    max_value: float

    def formatted(self) -> Dict[str, str]:
        return {
            "median": format_stat(self.median),
            "min": format_stat(self.min_value),
            "max": format_stat(self.max_value),
        }


@dataclass
class PlotSeries:
    label: str
    points: List[DataPoint]
    x_title: str
    y_title: str

    @property
    def xs(self) -> List[int]:
        return [p.x for p in self.points]

    @property
    def ys(self) -> List[float]:
        return [p.y for p in self.points]


# -------------------------
# Row validation
# -------------------------
def parse_number(
    text: Optional[str], number_parsing: NumberParsing = NumberParsing.PERMISSIVE
) -> Optional[float]:
    """
    Parse a field as a float, returning None when it is not numeric.

    PERMISSIVE reads the longest leading numeric prefix, so "12.5abc" parses as 12.5
    and "abc12" does not parse. STRICT requires the whole trimmed token to be a number.
    Non-finite results (e.g. "1e999") are rejected in both modes.
    """
    if text is None:
        return None
    s = text.strip()
    if not s:
        return None
    if number_parsing is NumberParsing.STRICT:
        m = _NUMBER_RE.fullmatch(s)
    else:
        m = _NUMBER_RE.match(s)
    if m is None:
        return None
    value = float(m.group(0))
    if not math.isfinite(value):
        return None
    return value


def validate_row(row: TableRow, params: ExtractParams) -> float:
    """
    Return the numeric value of the selected column for one data row.

    Raises:
        RowSchemaError: Wrong field count (fixed schema) or too few fields (flexible).
        RowValueError: Target field empty or not numeric.
    """
    column = params.column_index
    n_fields = len(row.fields)
    if params.mode is ValidationMode.FIXED_SCHEMA:
        if n_fields != params.expected_field_count:
            raise RowSchemaError(
                f"field count ({n_fields}) is not {params.expected_field_count}",
                row.line_number,
            )
    elif n_fields < column + 1:
        raise RowSchemaError(
            f"has {n_fields} fields, column {column + 1} requires at least {column + 1}",
            row.line_number,
        )

    raw = row.fields[column].strip()
    if not raw:
        raise RowValueError(f"column {column + 1} is empty", row.line_number)
    value = parse_number(raw, params.number_parsing)
    if value is None:
        raise RowValueError(
            f'column {column + 1} value "{raw}" is not a valid number',
            row.line_number,
        )
    return value


def _resolve_column(table: ParsedTable, params: ExtractParams) -> int:
    idx = params.column_index
    if idx is None:
        raise ValueError("No column selected")
    if params.mode is ValidationMode.FIXED_SCHEMA:
        if idx < 0 or idx >= params.expected_field_count:
            raise ValueError(
                f"Column index {idx} out of range for fixed schema with "
                f"{params.expected_field_count} fields"
            )
    elif idx < 0 or idx >= table.column_count:
        raise ValueError(
            f"Column index {idx} out of range for CSV with {table.column_count} columns"
        )
    return idx


# -------------------------
# Column extraction
# -------------------------
def extract_column(table: ParsedTable, params: ExtractParams) -> ExtractionResult:
    """
    Extract the selected column of every valid data row as (x, y) points.

    X values are 1, 2, 3, ... in the order valid rows are met; skipped rows do not
    consume an X slot. Blank lines are ignored entirely, every other row is either
    valid or invalid, so valid_count + invalid_count == total_count.

    An empty result is returned as-is; callers decide how to report it.
    """
    column = _resolve_column(table, params)
    label = table.column_label(column)
    report = ExtractionReport(label=label)
    report.start()

    points: List[DataPoint] = []
    values: List[float] = []
    for row in table.rows:
        if row.is_blank:
            report.blank_rows += 1
            continue
        report.total_rows += 1
        try:
            value = validate_row(row, params)
        except RowError as e:
            report.add_rejection(row.line_number, str(e))
            continue
        points.append(DataPoint(x=len(points) + 1, y=value))
        values.append(value)

    report.valid_rows = len(points)
    report.stop()
    logger.debug(report.summarize())
    return ExtractionResult(
        points=points,
        values=values,
        column_index=column,
        column_label=label,
        report=report,
    )


def require_points(result: ExtractionResult) -> ExtractionResult:
    """
    Raises:
        EmptyResultError: If no valid row survived validation.
    """
    if not result.points:
        raise EmptyResultError(
            "Processing finished, but no valid data points were found to plot. "
            f"Found {result.invalid_count} invalid rows.",
            invalid_count=result.invalid_count,
        )
    return result


def column_options(table: ParsedTable) -> List[Tuple[str, int]]:
    """One (label, index) option per header column."""
    return [(table.column_label(i), i) for i in range(table.column_count)]


def default_column_index(column_count: int) -> Optional[int]:
    if column_count > DEFAULT_COLUMN_MIN_COUNT:
        return DEFAULT_COLUMN_INDEX
    return None


def resolve_column_name(table: ParsedTable, name: str) -> int:
    """Index of the header column matching name (trimmed, case-insensitive)."""
    wanted = name.strip().lower()
    for i, col in enumerate(table.header):
        if col.strip().lower() == wanted:
            return i
    raise ValueError(
        f"Column {name!r} not found in header: {[c.strip() for c in table.header]}"
    )


# -------------------------
# Statistics
# -------------------------
def compute_stats(values: List[float]) -> StatsSummary:
    """
    Median, minimum and maximum of a non-empty sequence.

    Values are sorted numerically; the median of an even-length sequence is the mean
    of the two middle elements.
    """
    if len(values) == 0:
        raise ValueError("compute_stats requires at least one value")
    arr = np.sort(np.asarray(values, dtype=float), kind="stable")
    n = arr.size
    mid = n // 2
    if n % 2 == 0:
        median = (arr[mid - 1] + arr[mid]) / 2
    else:
        median = arr[mid]
    return StatsSummary(
        median=float(median), min_value=float(arr[0]), max_value=float(arr[-1])
    )


def format_stat(value: float) -> str:
    """Two decimal places, ties rounded away from zero."""
    if value == 0:
        value = 0.0  # no "-0.00"
    exact = Decimal(value)
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus two decimals
        ctx.prec = max(28, exact.adjusted() + 3)
        return str(exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def empty_stats_display() -> Dict[str, str]:
    return {
        "median": STATS_PLACEHOLDER,
        "min": STATS_PLACEHOLDER,
        "max": STATS_PLACEHOLDER,
    }


# -------------------------
# Plot data and chart lifecycle
# -------------------------
def build_plot_series(result: ExtractionResult, params: PlotParams) -> PlotSeries:
    label = params.series_label or result.column_label
    return PlotSeries(
        label=label,
        points=list(result.points),
        x_title=params.x_title,
        y_title=params.y_title or label,
    )


class ChartHandle:
    """
    Owns one Matplotlib figure. dispose() closes it; a disposed handle cannot render.
    """

    def __init__(self, figure) -> None:
        self.figure = figure
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def svg(self) -> str:
        if self._disposed:
            raise RuntimeError("Chart has been disposed")
        buf = StringIO()
        self.figure.savefig(buf, format="svg", bbox_inches="tight")
        return buf.getvalue()

    def save(self, path: Union[str, Path]) -> str:
        if self._disposed:
            raise RuntimeError("Chart has been disposed")
        self.figure.savefig(str(path), format="svg", bbox_inches="tight")
        return str(path)

    def dispose(self) -> None:
        if not self._disposed:
            plt.close(self.figure)
            self._disposed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.dispose()


def render_scatter(series: PlotSeries, params: PlotParams) -> ChartHandle:
    """Draw the series as a scatter chart on a new figure and hand back its owner."""
    fig, ax = plt.subplots(figsize=params.figsize)
    try:
        ax.scatter(
            series.xs,
            series.ys,
            s=30,
            color=(54 / 255, 162 / 255, 235 / 255, 0.6),
            edgecolors=(54 / 255, 162 / 255, 235 / 255, 1.0),
            linewidths=1,
            label=series.label,
        )
        ax.set_xlabel(series.x_title)
        ax.set_ylabel(series.y_title)
        if params.x_begin_at_zero:
            ax.set_xlim(left=0)
        ax.grid(alpha=0.3)
        ax.legend()
        fig.tight_layout()
    except Exception:
        plt.close(fig)
        raise
    return ChartHandle(fig)


# -------------------------
# Session (event-handling layer)
# -------------------------
@dataclass
class DisplayState:
    """Three stat slots, one message slot and the column selector."""

    median: str = STATS_PLACEHOLDER
    min: str = STATS_PLACEHOLDER
    max: str = STATS_PLACEHOLDER
    message: str = ""
    level: MessageLevel = MessageLevel.INFO
    column_options: List[Tuple[str, int]] = field(default_factory=list)
    selected_column: Optional[int] = None

    def clear_stats(self) -> None:
        placeholders = empty_stats_display()
        self.median = placeholders["median"]
        self.min = placeholders["min"]
        self.max = placeholders["max"]

    def set_stats(self, summary: StatsSummary) -> None:
        shown = summary.formatted()
        self.median = shown["median"]
        self.min = shown["min"]
        self.max = shown["max"]

    def set_message(self, message: str, level: MessageLevel = MessageLevel.INFO) -> None:
        self.message = message
        self.level = level


def success_message(valid_count: int, invalid_count: int) -> str:
    msg = f"Successfully processed {valid_count} valid rows."
    if invalid_count > 0:
        msg += f" Ignored {invalid_count} invalid or malformed rows."
    return msg


class Session:
    """
    Per-user state for the two UI events.

    Owns the retained table (flexible mode only; fixed mode discards it after use)
    and at most one ChartHandle. Every render disposes the previous chart first.
    """

    def __init__(
        self,
        extract_params: Optional[ExtractParams] = None,
        plot_params: Optional[PlotParams] = None,
    ) -> None:
        d_extract, d_plot = get_default_params(
            extract_params.mode if extract_params else ValidationMode.FLEXIBLE
        )
        self.extract_params = extract_params or d_extract
        self.plot_params = plot_params or d_plot
        self.table: Optional[ParsedTable] = None
        self.chart: Optional[ChartHandle] = None
        self.last_result: Optional[ExtractionResult] = None
        self.last_stats: Optional[StatsSummary] = None
        self.last_error: Optional[CSVProcessingError] = None
        self.display = DisplayState()

    @property
    def mode(self) -> ValidationMode:
        return self.extract_params.mode

    def clear_chart(self) -> None:
        if self.chart is not None:
            self.chart.dispose()
            self.chart = None

    def clear(self) -> None:
        """Dispose the chart and reset the stat slots."""
        self.clear_chart()
        self.last_result = None
        self.last_stats = None
        self.display.clear_stats()

    def close(self) -> None:
        self.clear()
        self.table = None

    def chart_svg(self) -> Optional[str]:
        return self.chart.svg() if self.chart is not None else None

    def _fail(
        self, error: CSVProcessingError, message: Optional[str] = None
    ) -> DisplayState:
        self.clear()
        self.last_error = error
        self.display.set_message(message or str(error), MessageLevel.ERROR)
        return self.display

    def handle_file_selected(
        self, path: Optional[Union[str, Path]], media_type: Optional[str] = None
    ) -> DisplayState:
        """
        Load a newly selected file, replacing any previous table and chart.

        Flexible mode populates the column options and plots the default column when
        one applies; fixed mode plots the fixed column and keeps no table.
        """
        self.clear()
        self.table = None
        self.display.column_options = []
        self.display.selected_column = None
        self.display.set_message("", MessageLevel.INFO)

        if not path:
            return self.display

        try:
            loader = CSVTextLoader(path, media_type=media_type)
            self.display.set_message("Reading file...", MessageLevel.INFO)
            text = loader.read_text()
        except FileTypeError as e:
            logger.info(f"Rejected file: {e}")
            return self._fail(e, f"Error: {e}")
        except ReadError as e:
            logger.warning(f"Read failed: {e}")
            return self._fail(e, f"Error while reading the file: {e}")

        try:
            table = tokenize(text, self.extract_params.delimiting)
        except StructureError as e:
            return self._fail(e, f"Error: {e}")

        if self.mode is ValidationMode.FIXED_SCHEMA:
            return self._plot(table, self.extract_params.column_index)

        self.table = table
        self.display.column_options = column_options(table)
        default = default_column_index(table.column_count)
        if default is None:
            self.display.set_message(
                f"Loaded {table.column_count} columns. Select a column to plot.",
                MessageLevel.INFO,
            )
            return self.display
        return self._plot(table, default)

    def handle_column_changed(self, column_index: Optional[int]) -> DisplayState:
        """Re-extract and re-plot the retained table for a newly selected column."""
        self.clear()
        if self.table is None:
            self.display.set_message("Select a CSV file first.", MessageLevel.INFO)
            return self.display
        if column_index is None:
            self.display.selected_column = None
            self.display.set_message("Select a column to plot.", MessageLevel.INFO)
            return self.display
        return self._plot(self.table, int(column_index))

    def _plot(self, table: ParsedTable, column_index: Optional[int]) -> DisplayState:
        params = replace(self.extract_params, column_index=column_index)
        self.display.selected_column = column_index
        try:
            result = require_points(extract_column(table, params))
            summary = compute_stats(result.values)
            series = build_plot_series(result, self.plot_params)
            self.clear_chart()
            self.chart = render_scatter(series, self.plot_params)
            self.display.set_stats(summary)
        except EmptyResultError as e:
            logger.info(str(e))
            return self._fail(e)
        except Exception as e:
            logger.exception("Unexpected error while parsing or plotting")
            err = ParseError(f"Error while processing the file: {e}")
            err.__cause__ = e
            return self._fail(err)

        self.last_result = result
        self.last_stats = summary
        self.last_error = None
        self.display.set_message(
            success_message(result.valid_count, result.invalid_count),
            MessageLevel.SUCCESS,
        )
        logger.info(result.report.summarize())
        return self.display


# -------------------------
# Defaults, reporting and manifest
# -------------------------
def get_default_params(
    mode: ValidationMode = ValidationMode.FLEXIBLE,
) -> tuple[ExtractParams, PlotParams]:
    """
    Policy defaults for each validation mode.

    FIXED_SCHEMA plots the 12th of 24 fields under a fixed caption; FLEXIBLE leaves the
    column unselected and labels the series and y axis from the header.
    """
    if mode is ValidationMode.FIXED_SCHEMA:
        extract = ExtractParams(
            mode=ValidationMode.FIXED_SCHEMA,
            column_index=FIXED_COLUMN_INDEX,
            expected_field_count=FIXED_FIELD_COUNT,
        )
        plot = PlotParams(series_label=FIXED_SERIES_LABEL, y_title="Height (m)")
        return extract, plot
    return ExtractParams(mode=ValidationMode.FLEXIBLE), PlotParams()


def build_run_identity(
    csv_path: Path, extract: ExtractParams, plot: PlotParams
) -> tuple[str, str, str, dict]:
    """
    Returns (abs_input_posix, short_hash, full_hash, effective_params)
    """
    abs_input_posix = normalize_abs_posix(csv_path)
    effective_params = build_effective_parameters(extract, plot)
    short_hash, full_hash = canonical_json_hash(
        {
            "absolute_input_path": abs_input_posix,
            "effective_parameters": effective_params,
        }
    )
    return abs_input_posix, short_hash, full_hash, effective_params


def build_manifest_dict(
    abs_input_posix: str,
    result: ExtractionResult,
    summary: StatsSummary,
    effective_params: dict,
    hashes: tuple[str, str],
    artifact_paths: Dict[str, str],
) -> dict:
    short_hash, full_hash = hashes
    return {
        "version": "1",
        "timestamp_utc": utc_timestamp_seconds(),
        "absolute_input_path": abs_input_posix,
        "column_index": result.column_index,
        "column_label": result.column_label,
        "total_data_rows": result.total_count,
        "valid_row_count": result.valid_count,
        "invalid_row_count": result.invalid_count,
        "blank_lines_skipped": result.report.blank_rows,
        "stats": {
            "median": summary.median,
            "min": summary.min_value,
            "max": summary.max_value,
        },
        "effective_parameters": effective_params,
        "canonical_hash": full_hash,
        "canonical_hash_short": short_hash,
        "artifacts": artifact_paths,
    }


def assemble_text_report(
    csv_path: Path,
    table: ParsedTable,
    result: ExtractionResult,
    summary: StatsSummary,
    max_rejections: int = 20,
) -> str:
    """Readable summary of one CLI run."""

    def _fmt_head_tail(df: pd.DataFrame, n: int = 5) -> str:
        if df.empty:
            return "(no rows)"
        if len(df) <= 2 * n:
            return df.to_string(index=False)
        return (
            f"{df.head(n).to_string(index=False)}\n...\n"
            f"{df.tail(n).to_string(index=False)}"
        )

    shown = summary.formatted()
    parts: list[str] = [
        f"Input: {csv_path}",
        f"Columns: {table.column_count}",
        f"Selected column: {result.column_index} ({result.column_label})",
        result.report.summarize(),
        success_message(result.valid_count, result.invalid_count),
        "",
        f"Median: {shown['median']}",
        f"Min:    {shown['min']}",
        f"Max:    {shown['max']}",
        "",
        f"Series (head/tail):\n{_fmt_head_tail(result.to_frame())}",
    ]
    if result.report.rejected:
        parts.append("")
        parts.append("Skipped rows:")
        for line_number, reason in result.report.rejected[:max_rejections]:
            parts.append(f"  line {line_number}: {reason}")
        hidden = len(result.report.rejected) - max_rejections
        if hidden > 0:
            parts.append(f"  ... {hidden} more")
    return "\n".join(parts)


def _orchestrate(
    csv_path: Path,
    extract: ExtractParams,
    plot: PlotParams,
    column_name: Optional[str] = None,
    output_dir: Optional[str] = "output",
) -> str:
    """
    Run the full pipeline for one file and return the text report.

    When output_dir is set, the SVG chart, the series CSV and a JSON manifest are
    written into output_dir/<timestamp>/.
    """
    with CSVTextLoader(csv_path) as loader:
        table = loader.read_table(extract.delimiting)

    if column_name is not None:
        extract = replace(extract, column_index=resolve_column_name(table, column_name))
    elif extract.column_index is None:
        default = default_column_index(table.column_count)
        if default is None:
            raise ValueError(
                f"No column selected and the file has only {table.column_count} columns; "
                "pass --column or --column-name"
            )
        extract = replace(extract, column_index=default)

    result = require_points(extract_column(table, extract))
    summary = compute_stats(result.values)
    series = build_plot_series(result, plot)

    with render_scatter(series, plot) as chart:
        if output_dir:
            abs_input_posix, short_hash, full_hash, effective_params = (
                build_run_identity(csv_path, extract, plot)
            )
            run_dir = ensure_run_dir(output_dir)
            svg_path = chart.save(run_dir / f"plot-{short_hash}.svg")
            series_path = run_dir / f"series-{short_hash}.csv"
            result.to_frame().to_csv(series_path, index=False)
            artifacts = {"plot_svg": svg_path, "series_csv": str(series_path)}
            manifest = build_manifest_dict(
                abs_input_posix,
                result,
                summary,
                effective_params,
                (short_hash, full_hash),
                artifacts,
            )
            write_manifest(run_dir / f"manifest-{short_hash}.json", manifest)
            logger.info(f"Wrote artifacts to {run_dir}")

    return assemble_text_report(csv_path, table, result, summary)


# -------------------------
# CLI
# -------------------------
def _build_cli_parser():
    import argparse

    parser = argparse.ArgumentParser(
        prog="colstats",
        description="Plot one CSV column as a scatter series and print median/min/max.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--print-defaults",
        action="store_true",
        help="Print default parameter values for --mode and exit.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show full tracebacks for debugging (also COLSTATS_DEBUG=1).",
    )

    g_extract = parser.add_argument_group("ExtractParams")
    g_extract.add_argument("--csv-path", type=str, help="Path to the CSV file.")
    g_extract.add_argument(
        "--mode",
        choices=[m.name for m in ValidationMode],
        default=ValidationMode.FLEXIBLE.name,
        help="FIXED_SCHEMA: 24 fields per row, 12th plotted. FLEXIBLE: any column.",
    )
    g_extract.add_argument(
        "--column", type=int, help="Zero-based column index to plot (FLEXIBLE mode)."
    )
    g_extract.add_argument(
        "--column-name", type=str, help="Header text of the column to plot."
    )
    g_extract.add_argument(
        "--strict-numbers",
        action="store_true",
        help="Reject values with trailing non-numeric text (e.g. '12.5abc').",
    )
    g_extract.add_argument(
        "--quoted",
        action="store_true",
        help="Honour double-quoted fields containing commas.",
    )

    g_plot = parser.add_argument_group("PlotParams")
    g_plot.add_argument("--label", type=str, help="Series label override.")
    g_plot.add_argument("--x-title", type=str, help="X axis title override.")
    g_plot.add_argument("--y-title", type=str, help="Y axis title override.")

    g_out = parser.add_argument_group("Output")
    g_out.add_argument(
        "--output-dir",
        type=str,
        default="output",
        help="Directory receiving <timestamp>/ run folders.",
    )
    g_out.add_argument(
        "--no-artifacts",
        action="store_true",
        help="Print the report only; write no files.",
    )
    return parser


def _args_to_params(args) -> tuple[ExtractParams, PlotParams, Optional[str]]:
    """
    Overlay parsed CLI arguments on the policy defaults for the selected mode.

    Returns (extract_params, plot_params, column_name).
    """
    mode = ValidationMode[getattr(args, "mode", None) or ValidationMode.FLEXIBLE.name]
    extract, plot = get_default_params(mode)

    column = getattr(args, "column", None)
    column_name = getattr(args, "column_name", None)
    if column is not None and column_name is not None:
        raise ValueError("--column and --column-name cannot be used together")
    if column is not None:
        if column < 0:
            raise ValueError(f"--column must be a non-negative integer, got {column}")
        extract.column_index = column
    if mode is ValidationMode.FIXED_SCHEMA and (
        column is not None or column_name is not None
    ):
        logger.info("FIXED_SCHEMA mode with an explicit column; overriding column 12")

    if getattr(args, "strict_numbers", False):
        extract.number_parsing = NumberParsing.STRICT
    if getattr(args, "quoted", False):
        extract.delimiting = Delimiting.QUOTED

    if getattr(args, "label", None):
        plot.series_label = args.label
    if getattr(args, "x_title", None):
        plot.x_title = args.x_title
    if getattr(args, "y_title", None):
        plot.y_title = args.y_title

    return extract, plot, column_name


def _defaults_payload(mode: ValidationMode) -> Dict[str, Any]:
    d_extract, d_plot = get_default_params(mode)
    return build_effective_parameters(d_extract, d_plot)


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point. Parses arguments, builds parameter objects, then orchestrates.
    """
    import json
    import sys

    parser = _build_cli_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.print_defaults:
        print(json.dumps(_defaults_payload(ValidationMode[args.mode]), indent=2))
        return

    if not args.csv_path:
        parser.error("--csv-path is required")

    debug_mode = bool(args.debug or os.getenv("COLSTATS_DEBUG", "") == "1")
    if debug_mode:
        logger.setLevel(logging.DEBUG)

    try:
        extract, plot, column_name = _args_to_params(args)
        report = _orchestrate(
            Path(args.csv_path),
            extract,
            plot,
            column_name=column_name,
            output_dir=None if args.no_artifacts else args.output_dir,
        )
    except (CSVProcessingError, FileNotFoundError, ValueError) as e:
        # Concise, user-facing errors for user-correctable problems.
        logger.info("User-facing error: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except Exception as e:
        logger.exception("Unhandled exception during execution")
        if debug_mode:
            import traceback

            traceback.print_exc()
        else:
            print(f"Unexpected error: {e}", file=sys.stderr)
            print(
                "Run with --debug or set COLSTATS_DEBUG=1 to see the full traceback.",
                file=sys.stderr,
            )
        sys.exit(1)

    print(report)


if __name__ == "__main__":
    main()
