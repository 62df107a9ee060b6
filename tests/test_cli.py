import json
from pathlib import Path
from types import SimpleNamespace

import matplotlib.pyplot as plt
import pandas as pd
import pytest

from colstats.csv_processor import Delimiting
from colstats.main import NumberParsing, ValidationMode, _args_to_params, main


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def _args(**overrides):
    base = {
        "mode": "FLEXIBLE",
        "column": None,
        "column_name": None,
        "strict_numbers": False,
        "quoted": False,
        "label": None,
        "x_title": None,
        "y_title": None,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


def test_cli_writes_artifacts_and_prints_report(tmp_path, capsys):
    csv_path = _write(tmp_path, "data.csv", "t,height\n0,1\n1,bad\n2,3\n3,2\n")
    out_dir = tmp_path / "out"
    main(["--csv-path", str(csv_path), "--column", "1", "--output-dir", str(out_dir)])

    printed = capsys.readouterr().out
    assert "Median: 2.00" in printed
    assert "Min:    1.00" in printed
    assert "Max:    3.00" in printed
    assert "line 3:" in printed

    run_dirs = list(out_dir.iterdir())
    assert len(run_dirs) == 1
    run_dir = run_dirs[0]
    assert len(list(run_dir.glob("plot-*.svg"))) == 1

    series_csv = next(run_dir.glob("series-*.csv"))
    df = pd.read_csv(series_csv)
    assert df["x"].tolist() == [1, 2, 3]
    assert df["y"].tolist() == [1.0, 3.0, 2.0]

    manifest = json.loads(next(run_dir.glob("manifest-*.json")).read_text("utf-8"))
    assert manifest["valid_row_count"] == 3
    assert manifest["invalid_row_count"] == 1
    assert manifest["total_data_rows"] == 4
    assert manifest["column_label"] == "height"
    assert manifest["stats"] == {"median": 2.0, "min": 1.0, "max": 3.0}
    assert manifest["effective_parameters"]["extract"]["mode"] == "FLEXIBLE"
    # chart handle is released once artifacts are written
    assert plt.get_fignums() == []


def test_cli_no_artifacts(tmp_path, capsys):
    csv_path = _write(tmp_path, "data.csv", "a,b\n1,2\n3,4\n")
    out_dir = tmp_path / "out"
    main(
        [
            "--csv-path",
            str(csv_path),
            "--column-name",
            "B",
            "--output-dir",
            str(out_dir),
            "--no-artifacts",
        ]
    )
    assert "Selected column: 1 (b)" in capsys.readouterr().out
    assert not out_dir.exists()


def test_cli_without_column_on_narrow_file_exits_2(tmp_path, capsys):
    csv_path = _write(tmp_path, "data.csv", "a,b\n1,2\n")
    with pytest.raises(SystemExit) as excinfo:
        main(["--csv-path", str(csv_path), "--no-artifacts"])
    assert excinfo.value.code == 2
    assert "--column" in capsys.readouterr().err


def test_cli_wrong_file_type_exits_2(tmp_path, capsys):
    path = _write(tmp_path, "data.txt", "a,b\n1,2\n")
    with pytest.raises(SystemExit) as excinfo:
        main(["--csv-path", str(path), "--column", "0", "--no-artifacts"])
    assert excinfo.value.code == 2
    assert ".csv" in capsys.readouterr().err


def test_cli_empty_result_exits_2(tmp_path, capsys):
    path = _write(tmp_path, "data.csv", "a,b\nx,y\n")
    with pytest.raises(SystemExit) as excinfo:
        main(["--csv-path", str(path), "--column", "0", "--no-artifacts"])
    assert excinfo.value.code == 2
    assert "no valid data points" in capsys.readouterr().err


def test_print_defaults_fixed_schema(capsys):
    main(["--print-defaults", "--mode", "FIXED_SCHEMA"])
    payload = json.loads(capsys.readouterr().out)
    assert payload["extract"]["column_index"] == 11
    assert payload["extract"]["expected_field_count"] == 24
    assert payload["plot"]["series_label"] == "Column 12 values"


def test_args_to_params_overlays_flags():
    extract, plot, column_name = _args_to_params(
        _args(column=3, strict_numbers=True, quoted=True, label="Alt", y_title="m")
    )
    assert extract.mode is ValidationMode.FLEXIBLE
    assert extract.column_index == 3
    assert extract.number_parsing is NumberParsing.STRICT
    assert extract.delimiting is Delimiting.QUOTED
    assert plot.series_label == "Alt"
    assert plot.y_title == "m"
    assert column_name is None


def test_args_to_params_rejects_negative_and_conflicting_columns():
    with pytest.raises(ValueError) as excinfo:
        _args_to_params(_args(column=-1))
    assert "non-negative" in str(excinfo.value)

    with pytest.raises(ValueError) as excinfo2:
        _args_to_params(_args(column=1, column_name="b"))
    assert "cannot be used together" in str(excinfo2.value)
