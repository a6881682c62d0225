"""
Unit tests for mbg_predict.predict module.

Tests the fixed and spatial components of the linear predictor and their
combination for a single draw.
"""

import numpy as np
import pytest

from mbg_predict.exceptions import (
    InputShapeError,
    InvalidFixedInputs,
    InvalidMeshOrCoords,
    MissingColumn,
    MissingTemporalExtent,
    RowCountMismatch,
    UnknownCovariate,
)
from mbg_predict.parameters import (
    FixedRole,
    HyperRole,
    ParameterSet,
    SpatialRole,
    extract_parameters,
)
from mbg_predict.predict import (
    fill_missing_covariates,
    predict_all,
    predict_fixed,
    predict_spatial,
)


@pytest.fixture
def map_params(toy_model):
    return extract_parameters(toy_model, method="MAP")


@pytest.fixture
def coords(prediction_data):
    return prediction_data[["Longitude", "Latitude"]]


class TestPredictFixed:
    """Test the fixed effect component."""

    def test_linear_combination(self, map_params, prediction_data):
        # 0.5 * 1 - 1 * 0 + 2 * 3 and 0.5 * 2 - 1 * 1 + 2 * 0
        pred = predict_fixed(map_params, prediction_data)
        np.testing.assert_allclose(pred, [6.5, 0.0])

    def test_missing_values_contribute_nothing(self, map_params, prediction_data):
        data = prediction_data.copy()
        data.loc[0, "c"] = np.nan
        pred = predict_fixed(map_params, data)
        np.testing.assert_allclose(pred, [0.5, 0.0])

    def test_subset(self, map_params, prediction_data):
        pred = predict_fixed(map_params, prediction_data, subset=["c"])
        np.testing.assert_allclose(pred, [6.0, 0.0])

    def test_subset_ignores_other_columns(self, map_params, prediction_data):
        data = prediction_data.drop(columns=["a", "b"])
        pred = predict_fixed(map_params, data, subset=["c"])
        np.testing.assert_allclose(pred, [6.0, 0.0])

    def test_unknown_subset(self, map_params, prediction_data):
        with pytest.raises(UnknownCovariate, match="not fixed effects"):
            predict_fixed(map_params, prediction_data, subset=["elevation"])

    def test_missing_column(self, map_params, prediction_data):
        with pytest.raises(MissingColumn, match=r"\['b'\]"):
            predict_fixed(map_params, prediction_data.drop(columns=["b"]))

    def test_non_numeric_covariate(self, map_params, prediction_data):
        data = prediction_data.assign(a=["x", "y"])
        with pytest.raises(InvalidFixedInputs, match="numeric"):
            predict_fixed(map_params, data)

    def test_fill_missing_covariates_copies(self):
        X = np.array([[1.0, np.nan], [np.nan, 2.0]])
        filled = fill_missing_covariates(X)
        np.testing.assert_array_equal(filled, [[1.0, 0.0], [0.0, 2.0]])
        assert np.isnan(X[0, 1])


class TestPredictSpatial:
    """Test the spatial random effect component."""

    def test_linear_field_interpolated_exactly(self, map_params, coords, grid_mesh):
        pred = predict_spatial(map_params, coords, grid_mesh)
        np.testing.assert_allclose(pred, [1.0, 1.75])

    def test_at_mesh_nodes(self, map_params, grid_mesh, linear_field):
        pred = predict_spatial(map_params, grid_mesh.vertices, grid_mesh)
        np.testing.assert_allclose(pred, linear_field, atol=1e-12)

    def test_array_coords(self, map_params, grid_mesh):
        pred = predict_spatial(map_params, np.array([[2.0, 2.0], [1.0, 0.5]]), grid_mesh)
        np.testing.assert_allclose(pred, [4.0, 1.5])

    def test_time_without_n_time(self, map_params, coords, grid_mesh):
        with pytest.raises(MissingTemporalExtent):
            predict_spatial(map_params, coords, grid_mesh, time=0)

    def test_time_slice(self, grid_mesh, linear_field, coords):
        # two time slices: x + y, then 10 * (x + y)
        roles = [SpatialRole(k) for k in range(1, 2 * grid_mesh.n_vertices + 1)]
        draws = np.concatenate([linear_field, 10 * linear_field])[np.newaxis, :]
        params = ParameterSet.from_roles(draws, roles)

        np.testing.assert_allclose(
            predict_spatial(params, coords, grid_mesh, time=0, n_time=2), [1.0, 1.75]
        )
        np.testing.assert_allclose(
            predict_spatial(params, coords, grid_mesh, time=1, n_time=2), [10.0, 17.5]
        )

    def test_time_slice_field_length(self, map_params, coords, grid_mesh):
        with pytest.raises(InvalidMeshOrCoords, match="time slices"):
            predict_spatial(map_params, coords, grid_mesh, time=0, n_time=2)

    def test_field_length_mismatch(self, coords, grid_mesh):
        params = ParameterSet.from_roles(np.ones((1, 4)), [SpatialRole(k) for k in range(1, 5)])
        with pytest.raises(InvalidMeshOrCoords, match="mesh has 9 nodes"):
            predict_spatial(params, coords, grid_mesh)


class TestPredictAll:
    """Test the combined linear predictor for one draw."""

    def test_sum_of_components(self, map_params, grid_mesh, coords, prediction_data):
        pred = predict_all(0, map_params, grid_mesh, coords, prediction_data)
        np.testing.assert_allclose(pred, [7.5, 1.75])

    def test_additivity(self, toy_model, grid_mesh, coords, prediction_data):
        params = extract_parameters(toy_model, method="sample", n=3)
        for draw in range(params.n_draws):
            both = predict_all(draw, params, grid_mesh, coords, prediction_data)
            fixed_only = predict_all(draw, params, grid_mesh, coords, prediction_data, spatial=False)
            spatial_only = predict_all(draw, params, grid_mesh, coords, prediction_data, fixed=False)
            np.testing.assert_allclose(both, fixed_only + spatial_only)

    def test_both_components_off(self, map_params, grid_mesh, coords, prediction_data):
        pred = predict_all(0, map_params, grid_mesh, coords, prediction_data,
                           fixed=False, spatial=False)
        np.testing.assert_array_equal(pred, np.zeros(2))

    def test_fixed_only_without_mesh(self, map_params, prediction_data):
        pred = predict_all(0, map_params, None, None, prediction_data, spatial=False)
        np.testing.assert_allclose(pred, [6.5, 0.0])

    def test_spatial_only_without_data(self, map_params, grid_mesh, coords):
        pred = predict_all(0, map_params, grid_mesh, coords, None, fixed=False)
        np.testing.assert_allclose(pred, [1.0, 1.75])

    def test_fixed_subset(self, map_params, grid_mesh, coords, prediction_data):
        pred = predict_all(0, map_params, grid_mesh, coords, prediction_data, fixed_subset=["a"])
        np.testing.assert_allclose(pred, [1.5, 2.75])

    def test_invalid_params(self, grid_mesh, coords, prediction_data):
        with pytest.raises(InputShapeError, match="ParameterSet"):
            predict_all(0, np.ones(12), grid_mesh, coords, prediction_data)

    def test_invalid_mesh(self, map_params, coords, prediction_data):
        with pytest.raises(InvalidMeshOrCoords, match="SPDEMesh"):
            predict_all(0, map_params, "mesh", coords, prediction_data)

    def test_invalid_coords(self, map_params, grid_mesh, prediction_data):
        with pytest.raises(InvalidMeshOrCoords, match="two columns"):
            predict_all(0, map_params, grid_mesh, prediction_data, prediction_data)

    def test_invalid_data(self, map_params, grid_mesh, coords):
        with pytest.raises(InvalidFixedInputs, match="DataFrame"):
            predict_all(0, map_params, grid_mesh, coords, np.ones((2, 3)))

    def test_invalid_subset(self, map_params, grid_mesh, coords, prediction_data):
        with pytest.raises(InvalidFixedInputs, match="fixed_subset"):
            predict_all(0, map_params, grid_mesh, coords, prediction_data, fixed_subset="a")

    def test_row_count_mismatch(self, map_params, grid_mesh, coords, prediction_data):
        with pytest.raises(RowCountMismatch):
            predict_all(0, map_params, grid_mesh, coords.iloc[:1], prediction_data)

    def test_spatial_only_row_count_mismatch(self, map_params, grid_mesh, coords, prediction_data):
        data = prediction_data.iloc[[0, 1, 1]]
        with pytest.raises(RowCountMismatch, match="data has 3 rows"):
            predict_all(0, map_params, grid_mesh, coords, data, fixed=False)

    def test_switched_off_terms_sized_from_data(self, map_params, grid_mesh, coords, prediction_data):
        data = prediction_data.iloc[[0, 1, 1]]
        pred = predict_all(0, map_params, grid_mesh, coords.iloc[:1], data,
                           fixed=False, spatial=False)
        np.testing.assert_array_equal(pred, np.zeros(3))

        pred = predict_all(0, map_params, None, None, data, spatial=False)
        np.testing.assert_allclose(pred, [6.5, 0.0, 0.0])

    def test_both_off_needs_data_or_coords(self, map_params):
        with pytest.raises(InputShapeError, match="Either data or coords"):
            predict_all(0, map_params, None, None, None, fixed=False, spatial=False)

    def test_hyperparameters_unused(self, grid_mesh, coords, prediction_data, linear_field):
        roles = [FixedRole("a"), HyperRole("theta")] + [SpatialRole(k) for k in range(1, 10)]
        values = np.concatenate([[1.0, 1e6], linear_field])[np.newaxis, :]
        params = ParameterSet.from_roles(values, roles)
        pred = predict_all(0, params, grid_mesh, coords, prediction_data)
        np.testing.assert_allclose(pred, [2.0, 3.75])
