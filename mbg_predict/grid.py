"""
In-memory multi-band raster grid.

Cells are numbered row-major from the top-left cell, starting at 0, and
cell coordinates refer to cell centres.
"""

from typing import List, Optional, Sequence, Tuple

import numpy as np

from mbg_predict.exceptions import InputShapeError


class Grid:
    """
    Multi-band raster on a regular grid.

    Attributes
    ----------
    values : np.ndarray
        Band values of shape (n_bands, n_rows, n_cols); NaN marks missing cells
    names : List[str]
        Band names
    extent : Tuple[float, float, float, float]
        (xmin, xmax, ymin, ymax) of the grid
    """

    def __init__(
        self,
        values: np.ndarray,
        extent: Tuple[float, float, float, float],
        names: Optional[Sequence[str]] = None
    ):
        values = np.array(values, dtype=float)
        if values.ndim == 2:
            values = values[np.newaxis]
        if values.ndim != 3:
            raise InputShapeError(f"Expected values shape (n_bands, n_rows, n_cols), got {values.shape}")

        if names is None:
            names = [f"layer_{i + 1}" for i in range(values.shape[0])]
        names = [str(name) for name in names]
        if len(names) != values.shape[0]:
            raise InputShapeError(f"Got {len(names)} names for {values.shape[0]} bands")

        xmin, xmax, ymin, ymax = (float(v) for v in extent)
        if not (xmax > xmin and ymax > ymin):
            raise InputShapeError(f"Invalid extent {extent}")

        self.values = values
        self.names = names
        self.extent = (xmin, xmax, ymin, ymax)

    @property
    def n_bands(self) -> int:
        return self.values.shape[0]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.values.shape[1], self.values.shape[2]

    @property
    def n_cells(self) -> int:
        return self.shape[0] * self.shape[1]

    @property
    def resolution(self) -> Tuple[float, float]:
        xmin, xmax, ymin, ymax = self.extent
        n_rows, n_cols = self.shape
        return (xmax - xmin) / n_cols, (ymax - ymin) / n_rows

    def __getitem__(self, name: str) -> np.ndarray:
        return self.values[self.names.index(name)]

    def cell_values(self) -> np.ndarray:
        """
        Band values per cell.

        :return: Array of shape (n_cells, n_bands)
        """
        return self.values.reshape(self.n_bands, -1).T

    def not_missing_cells(self, band: int = 0) -> np.ndarray:
        """
        Indices of the cells with a value in the given band.

        :param band: Band index
        :return: Sorted cell indices
        """
        return np.flatnonzero(~np.isnan(self.values[band].ravel()))

    def xy_from_cell(self, cells: np.ndarray) -> np.ndarray:
        """
        Coordinates of cell centres.

        :param cells: Cell indices
        :return: Array of shape (n, 2) with x and y of each cell centre
        """
        cells = np.asarray(cells, dtype=np.int64)
        n_rows, n_cols = self.shape
        if np.any((cells < 0) | (cells >= self.n_cells)):
            raise InputShapeError("Cell indices outside the grid")
        xmin, _, _, ymax = self.extent
        xres, yres = self.resolution
        rows, cols = np.divmod(cells, n_cols)
        return np.column_stack([xmin + (cols + 0.5) * xres, ymax - (rows + 0.5) * yres])

    def template(self, names: Sequence[str]) -> "Grid":
        """
        Empty grid of the same shape and extent.

        :param names: Band names of the new grid
        :return: Grid with every cell missing
        """
        values = np.full((len(names),) + self.shape, np.nan)
        return Grid(values, self.extent, names)

    def insert(self, new_values: np.ndarray, cells: np.ndarray) -> "Grid":
        """
        Copy of the grid with new values written into the given cells.

        :param new_values: Values of shape (n_cells_given,) or (n_cells_given, n_bands)
        :param cells: Cell indices to write
        :return: New Grid
        """
        cells = np.asarray(cells, dtype=np.int64)
        new_values = np.asarray(new_values, dtype=float)
        if new_values.ndim == 1:
            new_values = new_values[:, np.newaxis]
        if new_values.shape != (len(cells), self.n_bands):
            raise InputShapeError(
                f"Expected values shape ({len(cells)}, {self.n_bands}), got {new_values.shape}"
            )

        flat = self.values.reshape(self.n_bands, -1).copy()
        flat[:, cells] = new_values.T
        return Grid(flat.reshape(self.values.shape), self.extent, self.names)


def bad_rows(values: np.ndarray) -> np.ndarray:
    """
    Flag the rows of a matrix that contain any missing value.

    :param values: 2-D array
    :return: Boolean mask, True for rows with a NaN
    """
    return np.any(np.isnan(np.asarray(values, dtype=float)), axis=1)
