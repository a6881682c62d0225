"""
Linear predictor components of INLA MBG models.

For one draw of the model parameters, the linear predictor at a set of
locations is the sum of a fixed effect part and a spatial random effect
part:

    eta = X beta + A xi

where X holds the covariates, beta the fixed effects, xi the spatial field
at the mesh nodes and A the projector from mesh nodes to locations.
"""

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from mbg_predict.coords import as_coords_array
from mbg_predict.exceptions import (
    InputShapeError,
    InvalidFixedInputs,
    InvalidMeshOrCoords,
    MissingColumn,
    MissingTemporalExtent,
    RowCountMismatch,
    UnknownCovariate,
)
from mbg_predict.mesh import SPDEMesh
from mbg_predict.parameters import ParameterSet

Coords = Union[np.ndarray, pd.DataFrame]


def fill_missing_covariates(X: np.ndarray) -> np.ndarray:
    """
    Replace missing covariate values with zero.

    INLA treats a missing fixed effect covariate as contributing nothing to
    the linear predictor, so predictions do the same rather than failing or
    propagating NaN.

    :param X: Covariate matrix
    :return: Copy of X with NaN replaced by 0
    """
    X = np.array(X, dtype=float)
    X[np.isnan(X)] = 0.0
    return X


def predict_fixed(
    params: ParameterSet,
    data: pd.DataFrame,
    draw: int = 0,
    subset: Optional[Sequence[str]] = None
) -> np.ndarray:
    """
    Predict the fixed effect part of the linear predictor.

    :param params: Parameters from extract_parameters()
    :param data: Covariates, with a column for every fixed effect used
    :param draw: Which parameter draw to use, 0-based
    :param subset: Optional subset of fixed effect names to include
    :return: Fixed effect contribution, one value per row of data
    :raises UnknownCovariate: If subset names a parameter that is not a fixed effect
    :raises MissingColumn: If a fixed effect has no column in data
    """
    names = params.fixed_names
    idx = params.fixed_index

    if subset is not None:
        unknown = [name for name in subset if name not in names]
        if unknown:
            raise UnknownCovariate(f"Covariates {unknown} are not fixed effects of the model")
        subset_idx = [names.index(name) for name in subset]
        idx = idx[subset_idx]
        names = [names[i] for i in subset_idx]

    missing = [name for name in names if name not in data.columns]
    if missing:
        raise MissingColumn(f"Fixed effects {missing} are not columns of data")

    try:
        X = data[names].to_numpy(dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidFixedInputs(f"Fixed effect covariates must be numeric: {e}") from e

    X = fill_missing_covariates(X)

    beta = params.values(draw)[idx]

    return X @ beta


def predict_spatial(
    params: ParameterSet,
    coords: Coords,
    mesh: SPDEMesh,
    draw: int = 0,
    time: Optional[int] = None,
    n_time: Optional[int] = None
) -> np.ndarray:
    """
    Predict the spatial random effect part of the linear predictor.

    The field values at the mesh nodes are linearly interpolated to the
    locations. For a space-time field, pass the time slice and the number
    of time slices; the field then holds n_mesh * n_time values.

    :param params: Parameters from extract_parameters()
    :param coords: Locations of shape (n, 2)
    :param mesh: Mesh the spatial random effect was defined on
    :param draw: Which parameter draw to use, 0-based
    :param time: Time slice to predict, 0-based
    :param n_time: Number of time slices in the model
    :return: Spatial contribution, one value per location
    :raises MissingTemporalExtent: If time is given without n_time
    """
    if time is not None and n_time is None:
        raise MissingTemporalExtent("n_time must be given when predicting for a time slice")

    field = params.spatial(draw)

    if time is None:
        projector = mesh.projector(coords)
        return mesh.project(projector, field)

    coords = as_coords_array(coords)
    A = mesh.make_A(coords, group=np.full(len(coords), time, dtype=int), n_group=n_time)

    if A.shape[1] != len(field):
        raise InvalidMeshOrCoords(
            f"Spatial field has {len(field)} values, expected "
            f"{mesh.n_vertices} nodes x {n_time} time slices"
        )

    return np.asarray(A @ field).ravel()


def predict_all(
    draw: int,
    params: ParameterSet,
    mesh: Optional[SPDEMesh],
    coords: Optional[Coords],
    data: Optional[pd.DataFrame],
    fixed_subset: Optional[Sequence[str]] = None,
    fixed: bool = True,
    spatial: bool = True
) -> np.ndarray:
    """
    Predict the linear predictor from the fixed and spatial random effects.

    :param draw: Which parameter draw to use, 0-based
    :param params: Parameters from extract_parameters()
    :param mesh: Mesh the spatial random effect was defined on
    :param coords: Two-column table of prediction locations
    :param data: Covariates for the fixed effects
    :param fixed_subset: Optional subset of covariates to include
    :param fixed: Whether to include the fixed effects
    :param spatial: Whether to include the spatial random effect
    :return: Linear predictor, one value per location
    """
    if not isinstance(params, ParameterSet):
        raise InputShapeError(f"params must be a ParameterSet, got {type(params).__name__}")

    if spatial:
        if not isinstance(mesh, SPDEMesh):
            raise InvalidMeshOrCoords(f"mesh must be an SPDEMesh, got {type(mesh).__name__}")
        if not isinstance(coords, (pd.DataFrame, np.ndarray)) or coords.ndim != 2 \
                or coords.shape[1] != 2:
            raise InvalidMeshOrCoords("coords must be a table with two columns")
    if fixed:
        if not isinstance(data, pd.DataFrame):
            raise InvalidFixedInputs(f"data must be a DataFrame, got {type(data).__name__}")
        if fixed_subset is not None and (
            isinstance(fixed_subset, str)
            or not all(isinstance(name, str) for name in fixed_subset)
        ):
            raise InvalidFixedInputs("fixed_subset must be a list of covariate names")

    # switched off terms are sized from data when it is given
    n_rows = _n_rows(data, coords)
    if spatial and len(coords) != n_rows:
        raise RowCountMismatch(f"coords has {len(coords)} rows but data has {n_rows} rows")

    pred_fixed = pred_spatial = None
    if fixed:
        pred_fixed = predict_fixed(params=params, data=data, draw=draw, subset=fixed_subset)
    if spatial:
        pred_spatial = predict_spatial(params=params, coords=coords, mesh=mesh, draw=draw)

    if pred_fixed is None:
        pred_fixed = np.zeros(n_rows)
    if pred_spatial is None:
        pred_spatial = np.zeros(n_rows)

    return pred_fixed + pred_spatial


def _n_rows(data: Optional[pd.DataFrame], coords: Optional[Coords]) -> int:
    if data is not None:
        return len(data)
    if coords is not None:
        return len(coords)
    raise InputShapeError("Either data or coords is needed to size the prediction")
