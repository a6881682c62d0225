"""
Parameter extraction from fitted INLA MBG models.

This module decomposes the posterior of a fitted model, either its MAP
estimate or a set of posterior samples, into one vector of parameters per
draw, with every position tagged as a fixed effect, a node of the spatial
random field, or a hyperparameter.
"""

import re
from dataclasses import dataclass
from typing import List, Literal, Sequence, Tuple, Union

import numpy as np

from mbg_predict.exceptions import (
    InconsistentRandomEffect,
    InputShapeError,
    InvalidDraw,
    InvalidMethod,
    UnsupportedModelShape,
)
from mbg_predict.model import FittedModel, PosteriorSample

Method = Literal["sample", "MAP"]
METHODS = ("sample", "MAP")

# Linear predictor entries for the training data, not predictable unknowns
_PREDICTOR_PATTERN = re.compile(r"^A?Predictor[:.]")

# Repetition suffix INLA appends to fixed effect names in latent samples
_FIXED_SUFFIX_PATTERN = re.compile(r"[:.]1$")


@dataclass(frozen=True)
class FixedRole:
    name: str


@dataclass(frozen=True)
class SpatialRole:
    node_id: int


@dataclass(frozen=True)
class HyperRole:
    name: str


ParameterRole = Union[FixedRole, SpatialRole, HyperRole]


@dataclass(frozen=True)
class ParameterSet:
    """
    Draw-indexed model parameters.

    Attributes
    ----------
    draws : np.ndarray
        Parameter values of shape (n_draws, n_params), one row per draw
    names : Tuple[str, ...]
        Parameter names shared by all draws. Fixed effects carry their
        covariate name, spatial parameters their mesh node id
    roles : Tuple[ParameterRole, ...]
        Role of each parameter position
    fixed_index, spatial_index, hyper_index : np.ndarray
        Positions of each role; together they partition 0..n_params-1
    """

    draws: np.ndarray
    names: Tuple[str, ...]
    roles: Tuple[ParameterRole, ...]
    fixed_index: np.ndarray
    spatial_index: np.ndarray
    hyper_index: np.ndarray

    @classmethod
    def from_roles(cls, draws: np.ndarray, roles: Sequence[ParameterRole]) -> "ParameterSet":
        """
        Build a parameter set, deriving names and indices from the roles.

        :param draws: Values of shape (n_draws, n_params)
        :param roles: Role of each of the n_params positions
        :return: ParameterSet
        """
        draws = np.array(draws, dtype=float, ndmin=2)
        roles = tuple(roles)
        if draws.shape[1] != len(roles):
            raise InputShapeError(
                f"Draws have {draws.shape[1]} parameters but {len(roles)} roles were given"
            )
        draws.setflags(write=False)

        names = tuple(
            str(role.node_id) if isinstance(role, SpatialRole) else role.name
            for role in roles
        )

        def positions(kind):
            idx = np.array([i for i, role in enumerate(roles) if isinstance(role, kind)], dtype=np.int64)
            idx.setflags(write=False)
            return idx

        return cls(
            draws=draws,
            names=names,
            roles=roles,
            fixed_index=positions(FixedRole),
            spatial_index=positions(SpatialRole),
            hyper_index=positions(HyperRole),
        )

    @property
    def n_draws(self) -> int:
        return self.draws.shape[0]

    @property
    def fixed_names(self) -> List[str]:
        return [self.names[i] for i in self.fixed_index]

    @property
    def hyper_names(self) -> List[str]:
        return [self.names[i] for i in self.hyper_index]

    @property
    def node_ids(self) -> np.ndarray:
        return np.array([self.roles[i].node_id for i in self.spatial_index], dtype=np.int64)

    def values(self, draw: int = 0) -> np.ndarray:
        """
        Full parameter vector of one draw.

        :param draw: Draw index, 0-based
        :return: Parameter vector
        :raises InvalidDraw: If draw is not in 0..n_draws-1
        """
        if isinstance(draw, bool) or not isinstance(draw, (int, np.integer)) \
                or not 0 <= draw < self.n_draws:
            raise InvalidDraw(f"Draw {draw!r} is not in 0..{self.n_draws - 1}")
        return self.draws[draw]

    def fixed(self, draw: int = 0) -> np.ndarray:
        return self.values(draw)[self.fixed_index]

    def spatial(self, draw: int = 0) -> np.ndarray:
        return self.values(draw)[self.spatial_index]

    def hyper(self, draw: int = 0) -> np.ndarray:
        return self.values(draw)[self.hyper_index]


def extract_parameters(model: FittedModel, method: Method = "sample", n: int = 1) -> ParameterSet:
    """
    Extract parameters from a fitted INLA MBG model.

    :param model: Fitted model
    :param method: 'MAP' for the posterior mode (a single draw, n is
        ignored) or 'sample' for n draws from the joint posterior
    :param n: Number of posterior draws for method='sample'
    :return: ParameterSet
    :raises InvalidMethod: If method is neither 'MAP' nor 'sample'
    :raises InconsistentRandomEffect: If the model does not have exactly one
        random effect block
    """
    if method not in METHODS:
        raise InvalidMethod(f"Invalid method {method!r}, expected one of {METHODS}")

    spatial_term = model.spatial_block()

    if method == "MAP":
        return _extract_map(model, spatial_term)

    if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n < 1:
        raise InputShapeError(f"n must be a positive integer, got {n!r}")

    return _extract_samples(model.posterior_sample(int(n)), spatial_term)


def _extract_map(model: FittedModel, spatial_term: str) -> ParameterSet:
    """Single draw of [fixed, spatial, hyper] posterior modes."""
    random = model.summary_random[spatial_term]
    node_labels = random["ID"] if "ID" in random.columns else random.index

    roles: List[ParameterRole] = [FixedRole(name) for name in model.names_fixed]
    roles += [SpatialRole(_canonical_node_id(label)) for label in node_labels]
    roles += [HyperRole(str(name)) for name in model.summary_hyperpar.index]

    values = np.concatenate([
        model.summary_fixed["mode"].to_numpy(dtype=float),
        random["mode"].to_numpy(dtype=float),
        model.summary_hyperpar["mode"].to_numpy(dtype=float),
    ])

    return ParameterSet.from_roles(values[np.newaxis, :], roles)


def _extract_samples(samples: List[PosteriorSample], spatial_term: str) -> ParameterSet:
    """Draws of latent fixed and spatial entries followed by hyperparameters."""
    latent_index = samples[0].latent.index
    hyper_index = samples[0].hyperpar.index
    for sample in samples[1:]:
        if not sample.latent.index.equals(latent_index) or \
                not sample.hyperpar.index.equals(hyper_index):
            raise UnsupportedModelShape("Posterior samples do not share parameter names")

    latent_names = [str(name) for name in latent_index]
    # Spatial entries are "<block>:<node id>"; anything else sharing the prefix is fixed
    spatial_pattern = re.compile(r"^" + re.escape(spatial_term) + r"[:.](\d+)$")

    kept: List[int] = []
    roles: List[ParameterRole] = []
    spatial_slots: List[int] = []
    for position, name in enumerate(latent_names):
        if _PREDICTOR_PATTERN.match(name):
            continue
        match = spatial_pattern.match(name)
        if match:
            spatial_slots.append(len(kept))
            roles.append(SpatialRole(_canonical_node_id(match.group(1))))
        else:
            roles.append(FixedRole(_FIXED_SUFFIX_PATTERN.sub("", name)))
        kept.append(position)

    if not spatial_slots:
        raise InconsistentRandomEffect(
            f"No latent entries found for random effect '{spatial_term}'"
        )

    # Order the spatial entries by ascending node id
    kept_arr = np.array(kept, dtype=np.int64)
    slots = np.array(spatial_slots, dtype=np.int64)
    node_ids = np.array([roles[s].node_id for s in spatial_slots])
    if len(np.unique(node_ids)) != len(node_ids):
        raise InconsistentRandomEffect(f"Duplicate mesh node ids in random effect '{spatial_term}'")
    order = np.argsort(node_ids, kind="stable")
    kept_arr[slots] = kept_arr[slots[order]]
    for slot, node_id in zip(spatial_slots, node_ids[order]):
        roles[slot] = SpatialRole(int(node_id))

    roles += [HyperRole(str(name)) for name in hyper_index]

    latent = np.vstack([s.latent.to_numpy(dtype=float) for s in samples])
    hyper = np.vstack([s.hyperpar.to_numpy(dtype=float) for s in samples]).reshape(len(samples), -1)

    return ParameterSet.from_roles(np.hstack([latent[:, kept_arr], hyper]), roles)


def _canonical_node_id(label) -> int:
    """Mesh node id from a label such as '0012' or 12.0."""
    try:
        value = float(str(label).strip())
    except ValueError:
        raise UnsupportedModelShape(f"Spatial parameter label {label!r} is not a mesh node id") from None
    if not value.is_integer():
        raise UnsupportedModelShape(f"Spatial parameter label {label!r} is not a mesh node id")
    return int(value)
