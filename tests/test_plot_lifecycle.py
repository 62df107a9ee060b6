import matplotlib.pyplot as plt
import pytest

from colstats.csv_processor import tokenize
from colstats.main import (
    ExtractParams,
    PlotParams,
    ValidationMode,
    build_plot_series,
    extract_column,
    render_scatter,
)


@pytest.fixture(autouse=True)
def _close_figures():
    plt.close("all")
    yield
    plt.close("all")


def _series(plot_params=None):
    table = tokenize("t,height\n0,1.5\n1,x\n2,3.5\n")
    result = extract_column(
        table, ExtractParams(mode=ValidationMode.FLEXIBLE, column_index=1)
    )
    return build_plot_series(result, plot_params or PlotParams())


def test_series_label_defaults_to_header_and_y_title_follows():
    series = _series()
    assert series.label == "height"
    assert series.y_title == "height"
    assert series.x_title == "Time (s)"
    assert series.xs == [1, 2]
    assert series.ys == [1.5, 3.5]


def test_series_label_override():
    series = _series(PlotParams(series_label="Altitude", y_title="Height (m)"))
    assert series.label == "Altitude"
    assert series.y_title == "Height (m)"


def test_render_scatter_owns_exactly_one_figure():
    series = _series()
    chart = render_scatter(series, PlotParams())
    assert len(plt.get_fignums()) == 1
    ax = chart.figure.axes[0]
    offsets = ax.collections[0].get_offsets()
    assert offsets.tolist() == [[1.0, 1.5], [2.0, 3.5]]
    assert ax.get_xlim()[0] == 0
    assert ax.get_xlabel() == "Time (s)"
    assert ax.get_legend().get_texts()[0].get_text() == "height"

    svg = chart.svg()
    assert "<svg" in svg

    chart.dispose()
    assert chart.disposed
    assert plt.get_fignums() == []
    with pytest.raises(RuntimeError):
        chart.svg()
    # second dispose is a no-op
    chart.dispose()


def test_chart_handle_context_manager_disposes(tmp_path):
    with render_scatter(_series(), PlotParams()) as chart:
        out = chart.save(tmp_path / "plot.svg")
        assert len(plt.get_fignums()) == 1
    assert chart.disposed
    assert plt.get_fignums() == []
    assert (tmp_path / "plot.svg").read_text(encoding="utf-8").lstrip().startswith("<?xml")
    assert out.endswith("plot.svg")
