"""
SPDE mesh handle for prediction.

This module wraps an existing triangular mesh, the one the spatial random
field of a fitted model was defined on, and evaluates the field at new
locations by linear interpolation between mesh nodes.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union

import numpy as np
import pandas as pd
from scipy import sparse
from scipy.spatial import KDTree

from mbg_predict.coords import as_coords_array, is_geographic, project_coordinates
from mbg_predict.exceptions import InvalidMeshOrCoords
from mbg_predict.matrices import (
    _triangle_areas_vectorized,
    compute_projector_matrix,
    locate_points,
)


@dataclass(frozen=True)
class MeshProjector:
    """
    Projection from mesh nodes to a set of locations.

    Attributes
    ----------
    A : sparse.csr_matrix
        Projector matrix of shape (n_locations, n_mesh)
    inside : np.ndarray
        Boolean mask of locations inside the mesh
    """

    A: sparse.csr_matrix
    inside: np.ndarray

    @property
    def n_locations(self) -> int:
        return self.A.shape[0]


class SPDEMesh:
    """
    Triangular mesh over which an SPDE random field is defined.

    Attributes
    ----------
    vertices : np.ndarray
        Mesh vertex coordinates, shape (n_mesh, 2)
    triangles : np.ndarray
        Triangle connectivity, shape (n_tri, 3)
    crs : str or None
        Coordinate reference system of the vertices. When set, geographic
        (lon/lat) prediction coordinates are projected into it first
    """

    def __init__(
        self,
        vertices: np.ndarray,
        triangles: np.ndarray,
        crs: Optional[str] = None
    ):
        """
        Wrap an existing triangulation.

        Parameters
        ----------
        vertices : np.ndarray
            Mesh vertex coordinates, shape (n_mesh, 2)
        triangles : np.ndarray
            Triangle connectivity (0-based vertex indices), shape (n_tri, 3)
        crs : str, optional
            Proj4 string or authority code of the vertex coordinates
        """
        vertices = np.asarray(vertices, dtype=float)
        triangles = np.asarray(triangles)

        if vertices.ndim != 2 or vertices.shape[1] != 2:
            raise InvalidMeshOrCoords(f"Expected vertices shape (n_mesh, 2), got {vertices.shape}")

        if triangles.ndim != 2 or triangles.shape[1] != 3 or len(triangles) == 0:
            raise InvalidMeshOrCoords(f"Expected triangles shape (n_tri, 3), got {triangles.shape}")

        if not np.issubdtype(triangles.dtype, np.integer):
            raise InvalidMeshOrCoords("Triangle connectivity must be integer vertex indices")

        if triangles.min() < 0 or triangles.max() >= len(vertices):
            raise InvalidMeshOrCoords("Triangle connectivity refers to missing vertices")

        areas = _triangle_areas_vectorized(vertices[triangles])
        if np.any(areas <= 1e-12):
            raise InvalidMeshOrCoords(f"Found {np.sum(areas <= 1e-12)} degenerate triangles")

        self.vertices = vertices
        self.triangles = triangles.astype(np.int64)
        self.crs = crs
        self._tree = None

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def tree(self) -> KDTree:
        """KD-tree over triangle centroids, built on first use."""
        if self._tree is None:
            self._tree = KDTree(np.mean(self.vertices[self.triangles], axis=1))
        return self._tree

    def to_mesh_coords(self, coords: Union[np.ndarray, pd.DataFrame]) -> np.ndarray:
        """
        Convert prediction coordinates to the mesh coordinate system.

        :param coords: Coordinates of shape (n, 2), longitude first
        :return: Coordinates in the mesh coordinate system
        """
        coords = as_coords_array(coords)
        if np.any(~np.isfinite(coords)):
            raise InvalidMeshOrCoords("Coordinates contain NaN or infinite values")
        if self.crs is not None and is_geographic(coords):
            coords = project_coordinates(coords, self.crs)
        return coords

    def locate(self, coords: Union[np.ndarray, pd.DataFrame]):
        """
        Find the mesh triangle for each location.

        :param coords: Coordinates of shape (n, 2)
        :return: Tuple of (triangle index per location, inside mask)
        """
        return locate_points(self.vertices, self.triangles, self.to_mesh_coords(coords), self.tree)

    def projector(self, coords: Union[np.ndarray, pd.DataFrame]) -> MeshProjector:
        """
        Build a projector from mesh nodes to the given locations.

        :param coords: Coordinates of shape (n, 2)
        :return: MeshProjector
        """
        A, inside = compute_projector_matrix(
            self.vertices, self.triangles, self.to_mesh_coords(coords), tree=self.tree
        )
        return MeshProjector(A=A, inside=inside)

    def project(self, projector: MeshProjector, field: np.ndarray) -> np.ndarray:
        """
        Interpolate a field given at mesh nodes through a projector.

        :param projector: Projector from projector()
        :param field: Field values, one per mesh node
        :return: Field values at the projector's locations
        """
        field = np.asarray(field, dtype=float)
        if field.shape != (self.n_vertices,):
            raise InvalidMeshOrCoords(
                f"Field has {field.size} values, mesh has {self.n_vertices} nodes"
            )
        return np.asarray(projector.A @ field).ravel()

    def make_A(
        self,
        loc: Union[np.ndarray, pd.DataFrame],
        group: Optional[np.ndarray] = None,
        n_group: Optional[int] = None
    ) -> sparse.csr_matrix:
        """
        Build the basis matrix linking locations to mesh nodes.

        With groups, columns are ordered group-major: the nodes of group 0,
        then the nodes of group 1, and so on.

        :param loc: Locations of shape (n, 2)
        :param group: Group (time slice) index of each location, 0-based
        :param n_group: Number of groups; defaults to max(group) + 1
        :return: Sparse matrix of shape (n, n_mesh * n_group)
        """
        loc = self.to_mesh_coords(loc)

        if group is None:
            A, _ = compute_projector_matrix(self.vertices, self.triangles, loc, tree=self.tree)
            return A

        group = np.asarray(group)
        if group.shape != (len(loc),) or not np.issubdtype(group.dtype, np.integer):
            raise InvalidMeshOrCoords("group must be one integer index per location")
        if n_group is None:
            n_group = int(group.max()) + 1
        if group.min() < 0 or group.max() >= n_group:
            raise InvalidMeshOrCoords(f"group indices must be in [0, {n_group})")

        A, _ = compute_projector_matrix(
            self.vertices, self.triangles, loc, tree=self.tree,
            group=group, n_group=n_group
        )
        return A

    def get_mesh_info(self) -> Dict:
        """
        Get mesh size information.

        Returns
        -------
        Dict with vertex and triangle counts, total area and CRS
        """
        areas = _triangle_areas_vectorized(self.vertices[self.triangles])
        return {
            'n_vertices': self.n_vertices,
            'n_triangles': len(self.triangles),
            'total_area': float(np.sum(areas)),
            'crs': self.crs,
        }

    def __getstate__(self):
        # The KD-tree is rebuilt lazily in worker processes
        state = self.__dict__.copy()
        state['_tree'] = None
        return state
