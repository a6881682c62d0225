import numpy as np
import pandas as pd
import pyproj

from mbg_predict.exceptions import InvalidMeshOrCoords
from typing import Union

GEOGRAPHIC_CRS = "EPSG:4326"


def as_coords_array(coords: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
    """
    Convert a two-column table of coordinates to a float array.

    :param coords: DataFrame or array of shape (n_obs, 2), longitude first
    :return: Coordinate array of shape (n_obs, 2)
    :raises InvalidMeshOrCoords: If coords is not an N x 2 numeric table
    """
    if isinstance(coords, pd.DataFrame):
        coords = coords.to_numpy()
    try:
        coords = np.asarray(coords, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidMeshOrCoords(f"Coordinates must be numeric: {e}") from e

    if coords.ndim != 2 or coords.shape[1] != 2:
        raise InvalidMeshOrCoords(f"Expected coords shape (n_obs, 2), got {coords.shape}")

    return coords


def is_geographic(coords: np.ndarray) -> bool:
    """
    Detect if coordinates are in lon/lat format using value range.

    :param coords: Coordinate array of shape (n_obs, 2)
    :return: True if coordinates appear to be geographic (lon/lat)
    """
    x_vals, y_vals = coords[:, 0], coords[:, 1]
    lon_range = np.all((-180 <= x_vals) & (x_vals <= 180))
    lat_range = np.all((-90 <= y_vals) & (y_vals <= 90))
    return bool(lon_range and lat_range)


def project_coordinates(coords: np.ndarray, crs: str) -> np.ndarray:
    """
    Project geographic coordinates into the given coordinate reference system.

    :param coords: Geographic coordinates (lon/lat)
    :param crs: Target CRS, as a Proj4 string or authority code
    :return: Projected coordinates
    """
    transformer = pyproj.Transformer.from_crs(GEOGRAPHIC_CRS, crs, always_xy=True)

    x_proj, y_proj = transformer.transform(coords[:, 0], coords[:, 1])

    return np.column_stack([x_proj, y_proj])
