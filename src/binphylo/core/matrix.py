"""
Rate matrices and transition probabilities for discrete character models.

The equal-rates model has a closed-form P(t); the general matrix
exponential is kept for checking it and for non-equal exchangeabilities.
"""

import numpy as np
from scipy.linalg import expm


def matrix_exponential(Q: np.ndarray, t: float) -> np.ndarray:
    """
    Transition probabilities P(t) = exp(Qt) by scipy's Pade approximant.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Rate matrix
    t : float
        Branch length

    Returns
    -------
    ndarray, shape (n, n)
        Row-stochastic matrix; P[i, j] = Pr(state j after t | state i)
    """
    return expm(Q * t)


def create_reversible_Q(
    rates: np.ndarray, pi: np.ndarray, normalize: bool = True
) -> np.ndarray:
    """
    Time-reversible rate matrix from exchangeabilities and frequencies.

    Off-diagonal entries are Q[i, j] = rates[i, j] * pi[j]; each diagonal
    entry makes its row sum to zero.

    Parameters
    ----------
    rates : ndarray, shape (n, n)
        Symmetric exchangeabilities (the diagonal is ignored)
    pi : ndarray, shape (n,)
        Equilibrium frequencies
    normalize : bool
        Scale Q to one expected change per unit branch length

    Returns
    -------
    ndarray, shape (n, n)

    Examples
    --------
    >>> Q = create_reversible_Q(np.ones((2, 2)), np.array([0.5, 0.5]))
    >>> float(Q[0, 1])
    1.0
    """
    Q = rates * pi[np.newaxis, :]
    np.fill_diagonal(Q, 0.0)
    np.fill_diagonal(Q, -Q.sum(axis=1))

    if normalize:
        Q /= -np.dot(pi, Q.diagonal())

    return Q


def equal_rates_transition(pi: np.ndarray, times: np.ndarray) -> np.ndarray:
    """
    Closed-form P(t) for the normalised equal-rates model.

    With equal exchangeabilities Q[i,j] = mu * pi[j], normalised so the
    expected rate is 1 (mu = 1 / (1 - sum(pi^2))):

        P(t) = exp(-mu t) I + (1 - exp(-mu t)) 1 pi^T

    Parameters
    ----------
    pi : ndarray, shape (n,)
        Equilibrium frequencies
    times : ndarray, any shape
        Branch lengths (already scaled by rate category)

    Returns
    -------
    ndarray, shape times.shape + (n, n)
        Transition matrices
    """
    times = np.asarray(times, dtype=float)
    n = len(pi)
    mu = 1.0 / (1.0 - np.dot(pi, pi))
    decay = np.exp(-mu * times)[..., np.newaxis, np.newaxis]
    return decay * np.eye(n) + (1.0 - decay) * pi[np.newaxis, :]


def check_detailed_balance(Q: np.ndarray, pi: np.ndarray, rtol: float = 1e-10) -> bool:
    """True when pi[i] Q[i, j] == pi[j] Q[j, i] for every pair of states."""
    flux = pi[:, np.newaxis] * Q
    return bool(np.allclose(flux, flux.T, rtol=rtol))
