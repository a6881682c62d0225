"""
Link functions for INLA likelihoods.

Each link maps the response scale to the linear predictor scale; the
inverse is used to put predictions on the response scale.
"""

from dataclasses import dataclass
from typing import Callable, Dict

import numpy as np
from scipy.special import expit, logit, ndtr, ndtri

from mbg_predict.exceptions import UnknownLinkFunction


@dataclass(frozen=True)
class LinkFunction:
    """A named link function and its inverse."""

    name: str
    link: Callable[[np.ndarray], np.ndarray]
    inverse: Callable[[np.ndarray], np.ndarray]

    def __call__(self, x, inverse: bool = False) -> np.ndarray:
        x = np.asarray(x, dtype=float)
        return self.inverse(x) if inverse else self.link(x)


def _identity(x: np.ndarray) -> np.ndarray:
    return x


def _cloglog(p: np.ndarray) -> np.ndarray:
    return np.log(-np.log1p(-p))


def _inv_cloglog(x: np.ndarray) -> np.ndarray:
    return -np.expm1(-np.exp(x))


def _loglog(p: np.ndarray) -> np.ndarray:
    return -np.log(-np.log(p))


def _inv_loglog(x: np.ndarray) -> np.ndarray:
    return np.exp(-np.exp(-x))


_LINKS: Dict[str, LinkFunction] = {
    link.name: link
    for link in (
        LinkFunction("identity", _identity, _identity),
        LinkFunction("logit", logit, expit),
        LinkFunction("probit", ndtri, ndtr),
        LinkFunction("cloglog", _cloglog, _inv_cloglog),
        LinkFunction("loglog", _loglog, _inv_loglog),
        LinkFunction("log", np.log, np.exp),
    )
}


def get_link_function(name: str) -> LinkFunction:
    """
    Look up a link function by its INLA name.

    :param name: Link name, e.g. ``"logit"``
    :return: LinkFunction
    :raises UnknownLinkFunction: If the name is not supported
    """
    try:
        return _LINKS[name]
    except KeyError:
        raise UnknownLinkFunction(
            f"Unsupported link function '{name}'. Available: {sorted(_LINKS)}"
        ) from None
