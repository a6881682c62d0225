"""Shared fixtures: a small grid mesh and a toy fitted model on it."""

import numpy as np
import pandas as pd
import pytest

from mbg_predict.mesh import SPDEMesh
from mbg_predict.model import (
    FittedModel,
    PosteriorSample,
    RandomEffectKind,
    map_summary,
    random_summary,
)

FIXED_NAMES = ["a", "b", "c"]
FIXED_MODES = [0.5, -1.0, 2.0]
HYPER_NAMES = ["Range for field", "Stdev for field"]
HYPER_MODES = [1.0, 0.5]


def make_grid_mesh(n: int = 3, size: float = 2.0, crs=None) -> SPDEMesh:
    """Regular n x n node mesh on [0, size]^2, two triangles per cell."""
    x = np.linspace(0, size, n)
    xx, yy = np.meshgrid(x, x)
    vertices = np.column_stack([xx.ravel(), yy.ravel()])

    triangles = []
    for j in range(n - 1):
        for i in range(n - 1):
            v00 = j * n + i
            v10, v01, v11 = v00 + 1, v00 + n, v00 + n + 1
            triangles.append([v00, v10, v11])
            triangles.append([v00, v11, v01])

    return SPDEMesh(vertices, np.array(triangles), crs=crs)


def make_sampler(n_nodes: int, seed: int = 42):
    """Posterior sampler drawing latent values around the toy model's modes."""
    latent_names = (
        ["APredictor:1", "Predictor:1", "Predictor:2"]
        + [f"field:{k}" for k in range(1, n_nodes + 1)]
        + [f"{name}:1" for name in FIXED_NAMES]
    )

    def sampler(n):
        rng = np.random.default_rng(seed)
        samples = []
        for _ in range(n):
            latent = np.concatenate([
                rng.normal(size=3),
                rng.normal(size=n_nodes),
                np.array(FIXED_MODES) + rng.normal(scale=0.1, size=len(FIXED_NAMES)),
            ])
            hyper = np.array(HYPER_MODES) + rng.normal(scale=0.01, size=len(HYPER_NAMES))
            samples.append(PosteriorSample(
                latent=pd.Series(latent, index=latent_names),
                hyperpar=pd.Series(hyper, index=HYPER_NAMES),
            ))
        return samples

    return sampler


@pytest.fixture
def grid_mesh():
    """3 x 3 node mesh on [0, 2]^2"""
    return make_grid_mesh()


@pytest.fixture
def linear_field(grid_mesh):
    """Field x + y at the mesh nodes; linear interpolation reproduces it exactly"""
    return grid_mesh.vertices.sum(axis=1)


@pytest.fixture
def toy_model(grid_mesh, linear_field):
    """Three covariates, SPDE field equal to x + y at its MAP, logit link"""
    return FittedModel(
        summary_fixed=map_summary(FIXED_NAMES, FIXED_MODES),
        summary_hyperpar=map_summary(HYPER_NAMES, HYPER_MODES),
        summary_random={"field": random_summary(linear_field)},
        random_kinds={"field": RandomEffectKind.SPDE2},
        link_names=["logit"],
        sampler=make_sampler(grid_mesh.n_vertices),
    )


@pytest.fixture
def prediction_data():
    """Two locations; the first has covariates [1, 0, 3]"""
    return pd.DataFrame({
        "a": [1.0, 2.0],
        "b": [0.0, 1.0],
        "c": [3.0, 0.0],
        "Longitude": [0.5, 1.5],
        "Latitude": [0.5, 0.25],
    })
