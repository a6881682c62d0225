"""
Prediction from INLA MBG models.

This module provides the user-facing prediction functions: predictions of
the linear predictor (or the response) of a fitted spatial geostatistical
model at new locations, or over a raster, from the MAP parameter set or as
samples from the predictive posterior.

The functions only support the model shape they were written for: fixed
effects on continuous covariates, no INLA intercept, and a single SPDE
spatial random effect. Factor covariates must be expanded into dummy
columns named as in ``FittedModel.names_fixed`` before predicting.
"""

import multiprocessing as mp
import numbers
import warnings
from dataclasses import dataclass, replace
from functools import partial
from typing import Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .exceptions import (
    DuplicateCovariateName,
    InputShapeError,
    InterceptNotSupported,
    InvalidConstantShape,
    InvalidFixedInputs,
    InvalidMethod,
    MissingFixedEffectSource,
    MultipleLinkFunctionsUnsupported,
    UnsupportedModelShape,
)
from .grid import Grid, bad_rows
from .links import LinkFunction, get_link_function
from .mesh import SPDEMesh
from .model import FittedModel
from .parameters import METHODS, ParameterSet, extract_parameters
from .predict import predict_all

PredictionType = Literal["link", "response"]
PredictionMethod = Literal["sample", "MAP"]
TYPES = ("link", "response")

COORD_NAMES = ("Longitude", "Latitude")


@dataclass(frozen=True)
class PredictionRequest:
    """
    Options for one prediction call.

    Attributes
    ----------
    coords : Tuple[str, str]
        Names of the columns of the data holding the prediction coordinates
    type : PredictionType
        'link' for the linear predictor scale, 'response' for the response scale
    method : PredictionMethod
        'sample' for n posterior draws, 'MAP' for the posterior mode
    n : int
        Number of posterior draws for method='sample'
    fixed : bool
        Include the fixed effects
    spatial : bool
        Include the spatial random effect
    fixed_subset : Tuple[str, ...], optional
        Subset of covariates to include in the fixed effects
    ncpu : int
        Number of worker processes
    """

    coords: Tuple[str, ...] = COORD_NAMES
    type: PredictionType = "link"
    method: PredictionMethod = "sample"
    n: int = 1
    fixed: bool = True
    spatial: bool = True
    fixed_subset: Optional[Tuple[str, ...]] = None
    ncpu: int = 1

    def validate(self) -> "PredictionRequest":
        """Check the options, raising on the first invalid one."""
        if self.type not in TYPES:
            raise InputShapeError(f"Invalid type {self.type!r}, expected one of {TYPES}")
        if self.method not in METHODS:
            raise InvalidMethod(f"Invalid method {self.method!r}, expected one of {METHODS}")
        if not _is_positive_int(self.n):
            raise InputShapeError(f"n must be a positive integer, got {self.n!r}")
        if not _is_positive_int(self.ncpu):
            raise InputShapeError(f"ncpu must be a positive integer, got {self.ncpu!r}")

        return self

    def resolve_workers(self, stacklevel: int = 2) -> "PredictionRequest":
        """
        Resolve the number of worker processes.

        :param stacklevel: Passed on to warnings.warn
        :return: Request with one worker for MAP, unchanged otherwise
        """
        if self.method == "MAP" and self.ncpu > 1:
            warnings.warn(
                "parallel prediction is not currently possible for MAP estimation. "
                "Running sequentially instead.",
                UserWarning,
                stacklevel=stacklevel
            )
            return replace(self, ncpu=1)

        return self


def predict_inla(
    model: FittedModel,
    data: pd.DataFrame,
    mesh: SPDEMesh,
    coords: Sequence[str] = COORD_NAMES,
    type: PredictionType = "link",
    method: PredictionMethod = "sample",
    n: int = 1,
    fixed: bool = True,
    spatial: bool = True,
    fixed_subset: Optional[Sequence[str]] = None,
    ncpu: int = 1,
    verbose: bool = True
) -> np.ndarray:
    """
    Predict from an INLA MBG model to a new dataset.

    :param model: Fitted model with fixed effects and one SPDE random effect.
        For method='sample' it needs a posterior sampler
    :param data: Covariates for every fixed effect, plus the coordinate columns
    :param mesh: Mesh used to construct the spatial random effect
    :param coords: Names of the two coordinate columns in data
    :param type: 'link' for the linear predictor, 'response' for the
        response scale (e.g. probabilities for a binomial model)
    :param method: 'sample' for n draws from the predictive posterior,
        'MAP' for the maximum a posteriori parameters
    :param n: Number of draws for method='sample'
    :param fixed: Include the fixed effects
    :param spatial: Include the spatial random effect
    :param fixed_subset: Subset of covariates to include in the fixed effects
    :param ncpu: Number of worker processes; draws run in parallel when > 1
    :param verbose: Print progress
    :return: Array of shape (len(data), n_draws), one column per draw
    """
    request = _make_request(
        coords=coords,
        type=type,
        method=method,
        n=n,
        fixed=fixed,
        spatial=spatial,
        fixed_subset=fixed_subset,
        ncpu=ncpu,
    )
    return _predict(model, data, mesh, request, verbose)


def _make_request(
    coords: Sequence[str] = COORD_NAMES,
    type: PredictionType = "link",
    method: PredictionMethod = "sample",
    n: int = 1,
    fixed: bool = True,
    spatial: bool = True,
    fixed_subset: Optional[Sequence[str]] = None,
    ncpu: int = 1
) -> PredictionRequest:
    return PredictionRequest(
        coords=tuple(coords) if not isinstance(coords, str) else (coords,),
        type=type,
        method=method,
        n=n,
        fixed=fixed,
        spatial=spatial,
        fixed_subset=tuple(fixed_subset) if fixed_subset is not None else None,
        ncpu=ncpu,
    ).validate()


def _predict(
    model: FittedModel,
    data: pd.DataFrame,
    mesh: SPDEMesh,
    request: PredictionRequest,
    verbose: bool
) -> np.ndarray:
    """Checks and draws shared by predict_inla and predict_raster_inla."""
    _check_model(model, mesh)
    _check_data(model, data, request.coords)

    link = _get_link(model)

    # stacklevel 4 points at the caller of the public function
    request = request.resolve_workers(stacklevel=4)

    coords_df = data[list(request.coords)]

    params = extract_parameters(model, method=request.method, n=request.n)

    n_workers = min(request.ncpu, params.n_draws)
    if verbose:
        print(f"Predicting {params.n_draws} draw(s) at {len(data)} locations")
        if n_workers > 1:
            print(f"running predictions in parallel on {n_workers} cores")

    results = run_draws(
        params,
        mesh=mesh,
        coords=coords_df,
        data=data,
        fixed_subset=list(request.fixed_subset) if request.fixed_subset is not None else None,
        fixed=request.fixed,
        spatial=request.spatial,
        ncpu=n_workers,
    )

    results = np.column_stack(results)

    if request.type == "response":
        results = link(results, inverse=True)

    return results


def run_draws(
    params: ParameterSet,
    mesh: Optional[SPDEMesh],
    coords: Optional[pd.DataFrame],
    data: Optional[pd.DataFrame],
    fixed_subset: Optional[List[str]] = None,
    fixed: bool = True,
    spatial: bool = True,
    ncpu: int = 1
) -> List[np.ndarray]:
    """
    Compute the linear predictor for every draw of a parameter set.

    Draws are independent. With ncpu > 1 they are spread over a process
    pool that only lives for this call; results are in draw order either way.

    :param params: Parameters from extract_parameters()
    :param mesh: Mesh of the spatial random effect
    :param coords: Two-column table of prediction locations
    :param data: Covariates for the fixed effects
    :param fixed_subset: Optional subset of covariates to include
    :param fixed: Include the fixed effects
    :param spatial: Include the spatial random effect
    :param ncpu: Number of worker processes
    :return: One prediction vector per draw
    """
    worker = partial(
        predict_all,
        params=params,
        mesh=mesh,
        coords=coords,
        data=data,
        fixed_subset=fixed_subset,
        fixed=fixed,
        spatial=spatial,
    )
    draws = range(params.n_draws)

    if ncpu <= 1 or params.n_draws <= 1:
        return [worker(draw) for draw in draws]

    with mp.Pool(processes=min(ncpu, params.n_draws)) as pool:
        return pool.map(worker, draws)


def predict_raster_inla(
    model: FittedModel,
    grid: Grid,
    mesh: SPDEMesh,
    constants: Optional[Dict[str, float]] = None,
    **kwargs
) -> Grid:
    """
    Predict from an INLA MBG model to every complete cell of a raster.

    Cells with a missing value in any band are left missing in the output.

    :param model: Fitted model (see predict_inla)
    :param grid: Raster with one band per covariate, named as the fixed effects
    :param mesh: Mesh used to construct the spatial random effect
    :param constants: Constant values for named fixed effects, e.g. ``{'int': 1}``
        for an intercept covariate named 'int'
    :param kwargs: Prediction options of predict_inla (type, method, n, ..., verbose)
    :return: Grid of the same shape and extent, one band per draw
    """
    if constants is None:
        constants = {}

    _check_model(model, mesh)
    if not isinstance(grid, Grid):
        raise InputShapeError(f"grid must be a Grid, got {type(grid).__name__}")
    if not isinstance(constants, dict):
        raise InvalidConstantShape(f"constants must be a dict, got {type(constants).__name__}")

    all_names = list(grid.names) + list(constants)

    missing = [name for name in model.names_fixed if name not in all_names]
    if missing:
        raise MissingFixedEffectSource(
            f"The following named fixed effects are not in raster or constants: {missing}"
        )

    duplicated = sorted({name for name in all_names if all_names.count(name) > 1})
    if duplicated:
        raise DuplicateCovariateName(
            f"There are duplicate named fixed effects covariates between raster and constants: {duplicated}"
        )

    for name, value in constants.items():
        if not isinstance(name, str) or not name:
            raise InvalidConstantShape(f"Constant names must be non-empty strings, got {name!r}")
        if np.ndim(value) != 0 or isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidConstantShape(f"Constant '{name}' must be a single number, got {value!r}")

    verbose = kwargs.pop("verbose", True)
    request = _make_request(coords=COORD_NAMES, **kwargs)

    # complete cells only
    cells = grid.not_missing_cells(band=0)
    values = grid.cell_values()[cells]
    bad = bad_rows(values)
    cells = cells[~bad]
    values = values[~bad]

    data = pd.DataFrame(values, columns=grid.names)
    for name, value in constants.items():
        data[name] = float(value)
    xy = grid.xy_from_cell(cells)
    data[COORD_NAMES[0]] = xy[:, 0]
    data[COORD_NAMES[1]] = xy[:, 1]

    preds = _predict(model, data, mesh, request, verbose)

    n_draws = preds.shape[1]
    names = ["prediction"] if n_draws == 1 else [f"draw_{i + 1}" for i in range(n_draws)]

    return grid.template(names).insert(preds, cells)


def _check_model(model: FittedModel, mesh: SPDEMesh) -> None:
    """Model and mesh preconditions shared by the prediction functions."""
    if not isinstance(model, FittedModel):
        raise UnsupportedModelShape(f"model must be a FittedModel, got {type(model).__name__}")

    kind = model.random_kinds[model.spatial_block()]
    if not kind.is_spatial:
        raise UnsupportedModelShape(
            f"The random effect must be an SPDE2 model, got '{kind.value}'"
        )

    if not isinstance(mesh, SPDEMesh):
        raise UnsupportedModelShape(f"mesh must be an SPDEMesh, got {type(mesh).__name__}")


def _check_data(model: FittedModel, data: pd.DataFrame, coords: Tuple[str, ...]) -> None:
    """Shape of the prediction data against the model's fixed effects."""
    if not isinstance(data, pd.DataFrame):
        raise UnsupportedModelShape(f"data must be a DataFrame, got {type(data).__name__}")

    factors = [str(col) for col in data.columns
               if isinstance(data[col].dtype, pd.CategoricalDtype)]
    if factors:
        raise UnsupportedModelShape(f"Factor covariates are not supported: {factors}")

    if len(coords) != 2 or not all(name in data.columns for name in coords):
        raise UnsupportedModelShape(
            f"coords must name exactly two columns of data, got {list(coords)}"
        )

    # INLA intercepts are not compatible with the spde terms
    if model.has_intercept:
        raise InterceptNotSupported(
            "This model appears to contain an INLA intercept term. "
            "Fit the intercept as a covariate instead and supply it as a column or constant."
        )

    missing = [name for name in model.names_fixed if name not in data.columns]
    if missing:
        raise UnsupportedModelShape(f"Fixed effects {missing} are not columns of data")

    non_numeric = [name for name in model.names_fixed
                   if not pd.api.types.is_numeric_dtype(data[name])]
    if non_numeric:
        raise InvalidFixedInputs(f"Fixed effects {non_numeric} must be numeric columns of data")


def _get_link(model: FittedModel) -> LinkFunction:
    if len(model.link_names) > 1:
        raise MultipleLinkFunctionsUnsupported(
            f"multiple link functions not yet supported: {list(model.link_names)}"
        )
    if len(model.link_names) == 0:
        raise UnsupportedModelShape("The model does not report a link function")
    return get_link_function(model.link_names[0])


def _is_positive_int(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, np.integer)) and value >= 1
