import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
from matplotlib.figure import Figure
from shapely.geometry import box

from mapping.range_map import load_layer, localities_to_points, map_extent, plot_range_map


@pytest.fixture
def boundaries():
    return gpd.GeoDataFrame(
        {"name": ["west", "east"]},
        geometry=[box(-125, 32, -118, 42), box(-118, 32, -110, 42)],
        crs="EPSG:4326",
    )


@pytest.fixture
def range_polygons():
    return gpd.GeoDataFrame({"species": ["focal"]}, geometry=[box(-121, 36, -116, 40)], crs="EPSG:4326")


def test_localities_to_points_drops_bad_coordinates():
    df = pd.DataFrame(
        {
            "specimen": ["a", "b", "c", "d"],
            "longitude": [-120.0, None, -119.0, 250.0],
            "latitude": [37.0, 38.0, "n/a", 38.0],
        }
    )

    points = localities_to_points(df)

    assert list(points["specimen"]) == ["a"]
    assert points.crs == "EPSG:4326"
    assert points.geometry.iloc[0].x == pytest.approx(-120.0)
    assert points.geometry.iloc[0].y == pytest.approx(37.0)


def test_localities_missing_columns_raise():
    with pytest.raises(ValueError, match="Coordinate columns"):
        localities_to_points(pd.DataFrame({"x": [1.0]}), lon_column="lon", lat_column="lat")


def test_map_extent_pads_bounds(range_polygons):
    minx, miny, maxx, maxy = map_extent([range_polygons], padding=0.1)

    assert (minx, maxx) == pytest.approx((-121.5, -115.5))
    assert (miny, maxy) == pytest.approx((35.6, 40.4))


def test_map_extent_of_a_single_point():
    point = localities_to_points(pd.DataFrame({"longitude": [-120.0], "latitude": [37.0]}))

    extent = map_extent([point])

    assert extent == pytest.approx((-121.0, 36.0, -119.0, 38.0))


def test_map_extent_of_nothing_raises():
    with pytest.raises(ValueError):
        map_extent([gpd.GeoDataFrame(geometry=[], crs="EPSG:4326")])


def test_plot_range_map(boundaries, range_polygons, skulls):
    points = localities_to_points(skulls)

    fig = plot_range_map(boundaries, range_polygons, points, group_column="population", title="Range")

    ax = fig.axes[0]
    assert isinstance(fig, Figure)
    assert ax.get_title() == "Range"
    assert ax.get_xlabel() == "Longitude"
    expected = map_extent([range_polygons, points], 0.1)
    assert ax.get_xlim() == pytest.approx((expected[0], expected[2]))
    assert ax.get_ylim() == pytest.approx((expected[1], expected[3]))
    assert len(ax.get_legend().get_texts()) == 3


def test_plot_range_map_reprojects_layers(boundaries, range_polygons):
    projected = range_polygons.to_crs("EPSG:5070")

    fig = plot_range_map(boundaries, projected, extent=(-2.5e6, 1.0e6, -1.5e6, 2.5e6))

    assert fig.axes[0].get_xlim() == pytest.approx((-2.5e6, -1.5e6))
    assert fig.axes[0].get_xlabel() != "Longitude"


def test_load_layer_round_trip(tmp_path, range_polygons):
    path = tmp_path / "range.geojson"
    range_polygons.to_file(path, driver="GeoJSON")

    layer = load_layer(str(path))
    projected = load_layer(str(path), crs="EPSG:3857")

    assert len(layer) == 1
    assert layer.crs.to_epsg() == 4326
    assert projected.crs.to_epsg() == 3857
    assert np.isclose(layer.total_bounds, range_polygons.total_bounds).all()


def test_load_layer_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_layer(str(tmp_path / "missing.shp"))
