"""
Projector matrix computation for SPDE meshes.

This module computes the sparse matrix A linking arbitrary locations to the
nodes of a triangular mesh, A[i, k] = psi_k(s_i), where psi_k are the
piecewise linear basis functions of the mesh. Multiplying A by the values
of a field at the mesh nodes linearly interpolates the field at the
locations.
"""

import numpy as np
from scipy import sparse
from scipy.spatial import KDTree
from typing import Optional, Tuple
import warnings

from mbg_predict.exceptions import InvalidMeshOrCoords

# Tolerance on barycentric coordinates for points on triangle edges
_BARY_TOL = 1e-10


def compute_projector_matrix(
    vertices: np.ndarray,
    triangles: np.ndarray,
    obs_coords: np.ndarray,
    tree: Optional[KDTree] = None,
    group: Optional[np.ndarray] = None,
    n_group: int = 1
) -> Tuple[sparse.csr_matrix, np.ndarray]:
    """
    Compute projector matrix A where A[i,k] = psi_k(s_i).

    Points inside the mesh get barycentric weights of their containing
    triangle. Points outside the mesh are assigned to the triangle with the
    nearest centroid and their weights are clamped to be non-negative, so
    the field is extrapolated from the nearest part of the mesh.

    Parameters
    ----------
    vertices : np.ndarray
        Mesh vertex coordinates of shape (n_mesh, 2)
    triangles : np.ndarray
        Triangle connectivity of shape (n_tri, 3)
    obs_coords : np.ndarray
        Locations of shape (n_obs, 2), in the mesh coordinate system
    tree : KDTree, optional
        KD-tree over triangle centroids, built if not given
    group : np.ndarray, optional
        Integer group (time slice) of each location, 0-based. If given, the
        matrix has n_mesh * n_group columns and location i uses the block
        of columns belonging to group[i]
    n_group : int
        Number of groups

    Returns
    -------
    A : sparse.csr_matrix
        Projector matrix of shape (n_obs, n_mesh * n_group)
    inside : np.ndarray
        Boolean mask of locations that fall inside the mesh
    """
    n_obs = len(obs_coords)
    n_vertices = len(vertices)

    simplex_indices, inside = locate_points(vertices, triangles, obs_coords, tree)

    n_outside = np.sum(~inside)
    if n_outside > 0.1 * n_obs:
        warnings.warn(f"{n_outside} of {n_obs} prediction points outside mesh")

    bary_coords = _compute_barycentric_vectorized(
        obs_coords, vertices, triangles, simplex_indices
    )

    # Nearest extrapolation for points outside the triangulation
    if n_outside > 0:
        outside_bary = np.clip(bary_coords[~inside], 0.0, None)
        outside_bary /= outside_bary.sum(axis=1, keepdims=True)
        bary_coords[~inside] = outside_bary

    obs_indices = np.repeat(np.arange(n_obs), 3)
    vertex_indices = triangles[simplex_indices].ravel()
    values = bary_coords.ravel()

    if group is not None:
        vertex_indices = vertex_indices + np.repeat(np.asarray(group, dtype=int), 3) * n_vertices

    nonzero_mask = np.abs(values) > 1e-12
    obs_indices = obs_indices[nonzero_mask]
    vertex_indices = vertex_indices[nonzero_mask]
    values = values[nonzero_mask]

    A = sparse.csr_matrix((values, (obs_indices, vertex_indices)),
                          shape=(n_obs, n_vertices * n_group))

    return A, inside


def locate_points(
    vertices: np.ndarray,
    triangles: np.ndarray,
    points: np.ndarray,
    tree: Optional[KDTree] = None,
    n_candidates: int = 8
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the triangle containing each point.

    Candidate triangles are the ones with the nearest centroids; points not
    found among the candidates are checked against every triangle. Points
    outside the mesh get the triangle with the nearest centroid.

    :param vertices: Mesh vertex coordinates
    :param triangles: Triangle connectivity
    :param points: Point coordinates of shape (n_points, 2)
    :param tree: KD-tree over triangle centroids
    :param n_candidates: Number of nearest triangles checked first
    :return: Tuple of (triangle index per point, inside mask)
    """
    n_points = len(points)
    if tree is None:
        tree = KDTree(np.mean(vertices[triangles], axis=1))

    k = min(n_candidates, len(triangles))
    _, candidates = tree.query(points, k=k)
    candidates = np.asarray(candidates).reshape(n_points, k)

    simplex_indices = np.full(n_points, -1, dtype=int)
    for j in range(k):
        pending = simplex_indices == -1
        if not np.any(pending):
            break
        tri_idx = candidates[pending, j]
        bary = _barycentric(points[pending], vertices[triangles[tri_idx]])
        hit = np.all(bary >= -_BARY_TOL, axis=1)
        pending_idx = np.flatnonzero(pending)
        simplex_indices[pending_idx[hit]] = tri_idx[hit]

    # Exhaustive search for whatever the candidates missed
    all_tri_verts = vertices[triangles]
    for i in np.flatnonzero(simplex_indices == -1):
        point = np.broadcast_to(points[i], (len(triangles), 2))
        bary = _barycentric(point, all_tri_verts)
        hits = np.flatnonzero(np.all(bary >= -_BARY_TOL, axis=1))
        if len(hits) > 0:
            simplex_indices[i] = hits[0]

    inside = simplex_indices != -1
    simplex_indices[~inside] = candidates[~inside, 0]

    return simplex_indices, inside


def _triangle_areas_vectorized(tri_coords: np.ndarray) -> np.ndarray:
    """
    Compute areas of all triangles using vectorized operations.

    Parameters
    ----------
    tri_coords : np.ndarray
        Triangle coordinates of shape (n_tri, 3, 2)

    Returns
    -------
    np.ndarray
        Triangle areas of shape (n_tri,)
    """
    v1, v2, v3 = tri_coords[:, 0], tri_coords[:, 1], tri_coords[:, 2]

    # Cross product formula: 0.5 * |det([[v2-v1], [v3-v1]])|
    areas = 0.5 * np.abs(
        (v2[:, 0] - v1[:, 0]) * (v3[:, 1] - v1[:, 1]) -
        (v3[:, 0] - v1[:, 0]) * (v2[:, 1] - v1[:, 1])
    )

    return areas


def _signed_areas(p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> np.ndarray:
    return 0.5 * (
        (p2[:, 0] - p1[:, 0]) * (p3[:, 1] - p1[:, 1]) -
        (p3[:, 0] - p1[:, 0]) * (p2[:, 1] - p1[:, 1])
    )


def _barycentric(points: np.ndarray, tri_verts: np.ndarray) -> np.ndarray:
    """
    Barycentric coordinates of each point with respect to its own triangle.

    :param points: Point coordinates of shape (n_points, 2)
    :param tri_verts: Triangle vertices of shape (n_points, 3, 2)
    :return: Barycentric coordinates of shape (n_points, 3)
    """
    v1, v2, v3 = tri_verts[:, 0], tri_verts[:, 1], tri_verts[:, 2]

    # Signed areas keep the sign convention independent of vertex order
    total_areas = _signed_areas(v1, v2, v3)
    if np.any(np.abs(total_areas) <= 1e-12):
        raise InvalidMeshOrCoords("Degenerate triangles in barycentric coordinate computation")

    return np.column_stack([
        _signed_areas(points, v2, v3) / total_areas,
        _signed_areas(v1, points, v3) / total_areas,
        _signed_areas(v1, v2, points) / total_areas,
    ])


def _compute_barycentric_vectorized(
    points: np.ndarray,
    vertices: np.ndarray,
    triangles: np.ndarray,
    triangle_indices: np.ndarray
) -> np.ndarray:
    """
    Compute barycentric coordinates for all points using vectorized operations.

    Barycentric coordinates (lambda_1, lambda_2, lambda_3) satisfy:
    point = lambda_1 * v1 + lambda_2 * v2 + lambda_3 * v3
    with lambda_1 + lambda_2 + lambda_3 = 1

    Parameters
    ----------
    points : np.ndarray
        Point coordinates of shape (n_points, 2)
    vertices : np.ndarray
        Mesh vertex coordinates
    triangles : np.ndarray
        Triangle connectivity
    triangle_indices : np.ndarray
        Triangle index for each point

    Returns
    -------
    np.ndarray
        Barycentric coordinates of shape (n_points, 3)
    """
    bary_coords = _barycentric(points, vertices[triangles[triangle_indices]])

    # Renormalise to remove rounding error in the interpolation weights
    coord_sums = bary_coords.sum(axis=1, keepdims=True)
    return bary_coords / coord_sums
