"""Tests for the fitted model descriptor."""

import pandas as pd
import pytest

from mbg_predict.exceptions import (
    InconsistentRandomEffect,
    PosteriorSamplingUnavailable,
    UnsupportedModelShape,
)
from mbg_predict.model import (
    FittedModel,
    RandomEffectKind,
    map_summary,
    random_summary,
)


@pytest.fixture
def summaries():
    return dict(
        summary_fixed=map_summary(["x"], [1.0]),
        summary_hyperpar=map_summary(["Range for field"], [2.0]),
        summary_random={"field": random_summary([0.0, 1.0, 2.0])},
    )


class TestRandomEffectKind:

    def test_from_label(self):
        assert RandomEffectKind.from_label("SPDE2 model") is RandomEffectKind.SPDE2
        assert RandomEffectKind.from_label("IID model") is RandomEffectKind.IID

    def test_unknown_label(self):
        with pytest.raises(UnsupportedModelShape, match="Unknown random effect"):
            RandomEffectKind.from_label("Fancy model")

    def test_is_spatial(self):
        assert RandomEffectKind.SPDE2.is_spatial
        assert not RandomEffectKind.RW2.is_spatial


class TestFittedModel:

    def test_labels_converted(self, summaries):
        model = FittedModel(**summaries, random_kinds={"field": "SPDE2 model"})
        assert model.random_kinds["field"] is RandomEffectKind.SPDE2

    def test_defaults(self, summaries):
        model = FittedModel(**summaries, random_kinds={"field": RandomEffectKind.SPDE2})
        assert model.link_names == ("identity",)
        assert model.sampler is None
        assert model.names_fixed == ["x"]
        assert model.random_blocks == ["field"]
        assert not model.has_intercept
        assert model.spatial_block() == "field"

    def test_single_link_name(self, summaries):
        model = FittedModel(**summaries, random_kinds={"field": "SPDE2 model"}, link_names="logit")
        assert model.link_names == ("logit",)

    def test_intercept_detected(self, summaries):
        summaries["summary_fixed"] = map_summary(["(Intercept)", "x"], [0.1, 1.0])
        model = FittedModel(**summaries, random_kinds={"field": "SPDE2 model"})
        assert model.has_intercept

    def test_missing_mode_column(self, summaries):
        summaries["summary_fixed"] = pd.DataFrame({"mean": [1.0]}, index=["x"])
        with pytest.raises(UnsupportedModelShape, match="'mode' column"):
            FittedModel(**summaries, random_kinds={"field": "SPDE2 model"})

    def test_missing_random_kind(self, summaries):
        with pytest.raises(UnsupportedModelShape, match="No model class"):
            FittedModel(**summaries)

    def test_no_random_effect(self, summaries):
        summaries["summary_random"] = {}
        model = FittedModel(**summaries)
        with pytest.raises(InconsistentRandomEffect, match="got 0"):
            model.spatial_block()

    def test_posterior_sample_without_sampler(self, summaries):
        model = FittedModel(**summaries, random_kinds={"field": "SPDE2 model"})
        with pytest.raises(PosteriorSamplingUnavailable, match="config = TRUE"):
            model.posterior_sample(2)

    def test_sampler_draw_count_checked(self, summaries):
        model = FittedModel(**summaries, random_kinds={"field": "SPDE2 model"},
                            sampler=lambda n: [])
        with pytest.raises(UnsupportedModelShape, match="returned 0 draws, expected 3"):
            model.posterior_sample(3)


class TestSummaryHelpers:

    def test_random_summary(self):
        df = random_summary([0.5, 1.5], start=3)
        assert list(df.index) == ["3", "4"]
        assert list(df["ID"]) == [3, 4]
        assert list(df["mode"]) == [0.5, 1.5]

    def test_map_summary(self):
        df = map_summary(["a", "b"], [1, 2])
        assert list(df.index) == ["a", "b"]
        assert df["mode"].dtype == float
