"""
Draws a static range map for the species.

The map is composed of three layers read with geopandas: administrative
boundaries drawn as outlines, the species range polygon(s) filled on top,
and the specimen localities as points coloured by group.
"""

import logging
import os
from typing import Iterable, Optional

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

GEOGRAPHIC_CRS = "EPSG:4326"


def load_layer(file_path: str, crs: Optional[str] = None) -> gpd.GeoDataFrame:
    """Reads a vector layer (shapefile, GeoPackage, GeoJSON...).

    Args:
        file_path (str): Path to the layer.
        crs (str, optional): Reproject to this CRS.

    Returns:
        gpd.GeoDataFrame: The layer. Layers without a CRS are assumed to
        be in geographic coordinates (EPSG:4326).

    Raises:
        FileNotFoundError: If the file doesn't exist.
    """
    if not os.path.exists(file_path):
        raise FileNotFoundError(f"Map layer not found: {file_path}")

    layer = gpd.read_file(file_path)
    if layer.crs is None:
        logger.warning(f"{file_path} has no CRS, assuming {GEOGRAPHIC_CRS}")
        layer = layer.set_crs(GEOGRAPHIC_CRS)
    if crs is not None:
        layer = layer.to_crs(crs)

    logger.info(f"Loaded {len(layer)} features from {file_path}")
    return layer


def localities_to_points(
    df: pd.DataFrame,
    lon_column: str = "longitude",
    lat_column: str = "latitude",
    crs: str = GEOGRAPHIC_CRS,
) -> gpd.GeoDataFrame:
    """Turns specimen coordinates into a point layer.

    Rows with a missing or impossible coordinate are dropped.

    Args:
        df (pd.DataFrame): Specimen table.
        lon_column (str, optional): Longitude column in decimal degrees.
        lat_column (str, optional): Latitude column in decimal degrees.
        crs (str, optional): CRS of the coordinates. Defaults to EPSG:4326.

    Returns:
        gpd.GeoDataFrame: One point per located specimen, keeping the
        other columns.

    Raises:
        ValueError: If either coordinate column is missing.
    """
    missing = [col for col in (lon_column, lat_column) if col not in df.columns]
    if missing:
        raise ValueError(f"Coordinate columns not found: {missing}")

    lon = pd.to_numeric(df[lon_column], errors="coerce")
    lat = pd.to_numeric(df[lat_column], errors="coerce")
    valid = lon.notna() & lat.notna() & lon.between(-180, 180) & lat.between(-90, 90)

    if not valid.all():
        logger.warning(f"Dropping {int((~valid).sum())} specimens without usable coordinates")

    located = df[valid.to_numpy()]
    return gpd.GeoDataFrame(
        located,
        geometry=gpd.points_from_xy(lon[valid], lat[valid]),
        crs=crs,
    )


def map_extent(layers: Iterable[gpd.GeoDataFrame], padding: float = 0.1) -> tuple[float, float, float, float]:
    """Bounding box around the given layers, padded by a share of its span.

    Returns:
        tuple[float, float, float, float]: (minx, miny, maxx, maxy).
    """
    bounds = np.array([layer.total_bounds for layer in layers if not layer.empty])
    if len(bounds) == 0:
        raise ValueError("Cannot compute a map extent from empty layers")

    minx, miny = bounds[:, 0].min(), bounds[:, 1].min()
    maxx, maxy = bounds[:, 2].max(), bounds[:, 3].max()

    # a single locality has no span; pad by one map unit instead
    pad_x = (maxx - minx) * padding if maxx > minx else 1.0
    pad_y = (maxy - miny) * padding if maxy > miny else 1.0
    return (minx - pad_x, miny - pad_y, maxx + pad_x, maxy + pad_y)


def plot_range_map(
    boundaries: Optional[gpd.GeoDataFrame],
    range_polygons: gpd.GeoDataFrame,
    points: Optional[gpd.GeoDataFrame] = None,
    group_column: Optional[str] = None,
    extent: Optional[tuple[float, float, float, float]] = None,
    padding: float = 0.1,
    title: Optional[str] = None,
) -> Figure:
    """Composes the range map.

    Args:
        boundaries (gpd.GeoDataFrame, optional): Political or
            administrative outlines.
        range_polygons (gpd.GeoDataFrame): The species range.
        points (gpd.GeoDataFrame, optional): Specimen localities.
        group_column (str, optional): Column of ``points`` to colour by.
        extent (tuple, optional): (minx, miny, maxx, maxy) to show.
            Defaults to the range and localities plus ``padding``.
        padding (float, optional): Share of the span added around the
            default extent.
        title (str, optional): Map title.

    Returns:
        Figure: The map.
    """
    target_crs = range_polygons.crs
    if boundaries is not None and target_crs is not None and boundaries.crs != target_crs:
        boundaries = boundaries.to_crs(target_crs)
    if points is not None and target_crs is not None and points.crs != target_crs:
        points = points.to_crs(target_crs)

    if extent is None:
        focal = [range_polygons] + ([points] if points is not None else [])
        extent = map_extent(focal, padding)

    fig, ax = plt.subplots(figsize=(9, 9))

    range_polygons.plot(ax=ax, facecolor="#f4a582", edgecolor="#b2182b", alpha=0.6, linewidth=0.8, zorder=1)
    if boundaries is not None:
        boundaries.plot(ax=ax, facecolor="none", edgecolor="0.3", linewidth=0.6, zorder=2)

    if points is not None and not points.empty:
        if group_column is not None and group_column in points.columns:
            labels = sorted(points[group_column].dropna().unique(), key=str)
            colours = sns.color_palette("tab10" if len(labels) <= 10 else "husl", len(labels))
            for label, colour in zip(labels, colours):
                subset = points[points[group_column] == label]
                subset.plot(ax=ax, color=colour, markersize=25, edgecolor="black", linewidth=0.4, label=str(label), zorder=3)
            ax.legend(title=group_column, frameon=True, loc="best")
        else:
            points.plot(ax=ax, color="black", markersize=20, zorder=3)

    ax.set_xlim(extent[0], extent[2])
    ax.set_ylim(extent[1], extent[3])
    if range_polygons.crs is not None and range_polygons.crs.is_geographic:
        ax.set_xlabel("Longitude")
        ax.set_ylabel("Latitude")
        ax.set_aspect(1 / np.cos(np.radians((extent[1] + extent[3]) / 2)))
    if title:
        ax.set_title(title)

    return fig
