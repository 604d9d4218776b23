"""
Equal-rates substitution model for discrete characters.

The model is the Mk model with equal exchangeabilities between every pair
of states, optional unequal equilibrium frequencies, optional discrete
gamma rate heterogeneity across sites, and an optional ascertainment-bias
flag (constant characters were never collected).
"""

from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from typing import Any, Dict, Optional

import numpy as np
from scipy.stats import gamma

from ..core.matrix import create_reversible_Q, equal_rates_transition
from ..exceptions import ValidationError

SUPPORTED_MODELS = ("ER",)


@lru_cache(maxsize=256)
def _discrete_gamma(alpha: float, k: int) -> tuple:
    if k == 1:
        return (1.0,)
    # Category boundaries of Gamma(alpha, rate=alpha), then the mean rate
    # inside each category via the Gamma(alpha + 1) cdf (Yang 1994)
    boundaries = gamma.ppf(np.arange(1, k) / k, a=alpha, scale=1.0 / alpha)
    cdf = gamma.cdf(boundaries * alpha, a=alpha + 1.0)
    rates = np.diff(np.concatenate([[0.0], cdf, [1.0]])) * k
    return tuple(float(r) for r in rates)


def discrete_gamma_rates(alpha: float, k: int) -> np.ndarray:
    """
    Mean rates of k equal-probability categories of a mean-one gamma.

    Parameters
    ----------
    alpha : float
        Gamma shape parameter (> 0)
    k : int
        Number of categories

    Returns
    -------
    ndarray, shape (k,)
        Category rates, averaging exactly 1
    """
    if alpha <= 0:
        raise ValidationError(f"Gamma shape must be > 0, got {alpha}")
    if k < 1:
        raise ValidationError(f"Number of rate categories must be >= 1, got {k}")
    return np.array(_discrete_gamma(float(alpha), int(k)))


@dataclass(frozen=True)
class SubstitutionModel:
    """
    Continuous-time Markov model of character evolution.

    Parameters
    ----------
    name : str
        Model name; only 'ER' (equal rates) is supported
    n_states : int
        Number of character states
    frequencies : tuple of float, optional
        Equilibrium state frequencies (default: equal); normalised to sum 1
    n_categories : int
        Number of discrete gamma rate categories (1 = no heterogeneity)
    gamma_shape : float
        Gamma shape parameter alpha (ignored when n_categories is 1)
    ascertainment : bool
        Correct for constant characters being absent from the data

    Examples
    --------
    >>> model = SubstitutionModel(n_categories=4, gamma_shape=0.5)
    >>> round(float(model.category_rates().mean()), 6)
    1.0
    """

    name: str = "ER"
    n_states: int = 2
    frequencies: Optional[tuple] = None
    n_categories: int = 1
    gamma_shape: float = 1.0
    ascertainment: bool = False

    def __post_init__(self):
        if self.name not in SUPPORTED_MODELS:
            raise ValidationError(
                f"Unknown substitution model '{self.name}'",
                suggestion=f"Supported models: {', '.join(SUPPORTED_MODELS)}",
            )
        if self.n_states < 2:
            raise ValidationError(f"Model needs at least 2 states, got {self.n_states}")
        if self.n_categories < 1:
            raise ValidationError(
                f"Number of rate categories must be >= 1, got {self.n_categories}"
            )
        if not self.gamma_shape > 0:
            raise ValidationError(f"Gamma shape must be > 0, got {self.gamma_shape}")

        if self.frequencies is None:
            freqs = np.full(self.n_states, 1.0 / self.n_states)
        else:
            freqs = np.asarray(self.frequencies, dtype=float)
            if freqs.shape != (self.n_states,):
                raise ValidationError(
                    f"Expected {self.n_states} state frequencies, got {len(freqs)}"
                )
            if np.any(freqs <= 0):
                raise ValidationError("State frequencies must be positive")
            freqs = freqs / freqs.sum()
        object.__setattr__(self, "frequencies", tuple(float(f) for f in freqs))

    @property
    def pi(self) -> np.ndarray:
        """Equilibrium frequencies as an array."""
        return np.array(self.frequencies)

    def rate_matrix(self) -> np.ndarray:
        """Normalised rate matrix Q (expected rate 1 at equilibrium)."""
        rates = np.ones((self.n_states, self.n_states))
        return create_reversible_Q(rates, self.pi, normalize=True)

    def category_rates(self) -> np.ndarray:
        """Relative rate of each site category."""
        return discrete_gamma_rates(self.gamma_shape, self.n_categories)

    def transition_matrices(self, times) -> np.ndarray:
        """P(t) for every entry of ``times``; shape times.shape + (n, n)."""
        return equal_rates_transition(self.pi, times)

    def with_params(self, **changes) -> "SubstitutionModel":
        """Copy with some parameters replaced."""
        return replace(self, **changes)

    def n_free_params(self, frequencies: bool = False, shape: bool = True) -> int:
        """Free model parameters given which ones are estimated."""
        n = self.n_states - 1 if frequencies else 0
        if shape and self.n_categories > 1:
            n += 1
        return n

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["frequencies"] = list(self.frequencies)
        if self.n_categories == 1:
            data["gamma_shape"] = None
        return data

    def describe(self) -> str:
        text = self.name
        if self.n_categories > 1:
            text += f"+G{self.n_categories}(alpha={self.gamma_shape:.4f})"
        if self.ascertainment:
            text += "+ASC"
        return text
