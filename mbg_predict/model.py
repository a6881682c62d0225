"""
Fitted INLA model descriptor.

This module describes the parts of a fitted INLA geostatistical model that
prediction needs: posterior summaries of the fixed effects, hyperparameters
and the spatial random field, the link function(s), and an optional
posterior sampler (only available for models fitted with ``config=TRUE``).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from mbg_predict.exceptions import (
    InconsistentRandomEffect,
    PosteriorSamplingUnavailable,
    UnsupportedModelShape,
)

INTERCEPT_NAME = "(Intercept)"


class RandomEffectKind(Enum):
    """Random effect model classes, labelled as INLA reports them."""

    SPDE2 = "SPDE2 model"
    IID = "IID model"
    RW1 = "RW1 model"
    RW2 = "RW2 model"
    AR1 = "AR1 model"
    BESAG = "Besag model"
    GENERIC = "Generic model"

    @classmethod
    def from_label(cls, label: str) -> "RandomEffectKind":
        """
        Look up a random effect kind from its INLA label.

        :param label: Label such as ``"SPDE2 model"``
        :return: Matching RandomEffectKind
        :raises UnsupportedModelShape: If the label is not recognised
        """
        for kind in cls:
            if kind.value == label:
                return kind
        raise UnsupportedModelShape(f"Unknown random effect model class '{label}'")

    @property
    def is_spatial(self) -> bool:
        return self is RandomEffectKind.SPDE2


@dataclass(frozen=True)
class PosteriorSample:
    """One joint draw from the posterior: latent field and hyperparameters."""

    latent: pd.Series
    hyperpar: pd.Series


Sampler = Callable[[int], List[PosteriorSample]]


@dataclass
class FittedModel:
    """
    Read-only view of a fitted INLA MBG model.

    Attributes
    ----------
    summary_fixed : pd.DataFrame
        Fixed effect posterior summaries, indexed by term name, with a
        ``mode`` column
    summary_hyperpar : pd.DataFrame
        Hyperparameter posterior summaries, indexed by name, with a ``mode``
        column
    summary_random : Dict[str, pd.DataFrame]
        Random effect posterior summaries per block, each with ``ID`` and
        ``mode`` columns and one row per mesh node
    random_kinds : Dict[str, RandomEffectKind]
        Model class of each random effect block
    link_names : Sequence[str]
        Names of the link functions used by the likelihood(s)
    sampler : Callable, optional
        Draws ``n`` PosteriorSample objects from the joint posterior
    """

    summary_fixed: pd.DataFrame
    summary_hyperpar: pd.DataFrame
    summary_random: Dict[str, pd.DataFrame]
    random_kinds: Dict[str, RandomEffectKind] = field(default_factory=dict)
    link_names: Sequence[str] = ("identity",)
    sampler: Optional[Sampler] = None

    def __post_init__(self):
        for df_name in ("summary_fixed", "summary_hyperpar"):
            df = getattr(self, df_name)
            if not isinstance(df, pd.DataFrame) or "mode" not in df.columns:
                raise UnsupportedModelShape(
                    f"{df_name} must be a DataFrame with a 'mode' column"
                )

        self.random_kinds = {
            name: kind if isinstance(kind, RandomEffectKind) else RandomEffectKind.from_label(kind)
            for name, kind in self.random_kinds.items()
        }
        unknown = set(self.summary_random) - set(self.random_kinds)
        if unknown:
            raise UnsupportedModelShape(
                f"No model class given for random effect(s) {sorted(unknown)}"
            )

        if isinstance(self.link_names, str):
            self.link_names = (self.link_names,)
        self.link_names = tuple(self.link_names)

    @property
    def names_fixed(self) -> List[str]:
        return [str(name) for name in self.summary_fixed.index]

    @property
    def random_blocks(self) -> List[str]:
        return list(self.summary_random)

    @property
    def has_intercept(self) -> bool:
        return INTERCEPT_NAME in self.names_fixed

    def spatial_block(self) -> str:
        """
        Name of the single random effect block.

        :return: Block name, e.g. ``"field"``
        :raises InconsistentRandomEffect: If there is not exactly one block
        """
        blocks = self.random_blocks
        if len(blocks) != 1:
            raise InconsistentRandomEffect(
                f"Expected exactly one random effect block, got {len(blocks)}: {blocks}"
            )
        return blocks[0]

    def posterior_sample(self, n: int) -> List[PosteriorSample]:
        """
        Draw ``n`` samples from the joint posterior.

        :param n: Number of draws
        :return: List of PosteriorSample
        :raises PosteriorSamplingUnavailable: If the model has no sampler
        """
        if self.sampler is None:
            raise PosteriorSamplingUnavailable(
                "Model has no posterior sampler; refit with "
                "control.compute = list(config = TRUE) to sample"
            )
        samples = list(self.sampler(n))
        if len(samples) != n:
            raise UnsupportedModelShape(
                f"Posterior sampler returned {len(samples)} draws, expected {n}"
            )
        return samples


def map_summary(names: Sequence[str], modes: Sequence[float]) -> pd.DataFrame:
    """Build a summary table with a ``mode`` column indexed by ``names``."""
    return pd.DataFrame({"mode": np.asarray(modes, dtype=float)}, index=list(names))


def random_summary(modes: Sequence[float], start: int = 1) -> pd.DataFrame:
    """Build a random effect summary with one row per mesh node."""
    modes = np.asarray(modes, dtype=float)
    ids = np.arange(start, start + len(modes))
    return pd.DataFrame({"ID": ids, "mode": modes}, index=[str(i) for i in ids])
