"""
Pairwise distances between taxa from discrete character data.
"""

import logging
from typing import Sequence

import numpy as np

from ..exceptions import InsufficientOverlapError, UnknownTaxonError, ValidationError
from ..io.matrix import MISSING_CODE, CharacterMatrix

logger = logging.getLogger(__name__)


class DistanceMatrix:
    """
    Symmetric taxon x taxon dissimilarities with a zero diagonal.

    Parameters
    ----------
    taxa : Sequence[str]
        Taxon names in row order
    values : array-like, shape (n, n)
        Distances

    Raises
    ------
    ValidationError
        If the array is not square, symmetric, non-negative with a zero
        diagonal, or does not match the taxon list
    """

    def __init__(self, taxa: Sequence[str], values):
        values = np.array(values, dtype=float)
        taxa = tuple(taxa)
        n = len(taxa)
        if len(set(taxa)) != n:
            raise ValidationError("Distance matrix has duplicate taxon names")
        if values.shape != (n, n):
            raise ValidationError(
                f"Distance matrix has shape {values.shape}, expected ({n}, {n})"
            )
        if not np.all(np.isfinite(values)):
            raise ValidationError("Distance matrix contains non-finite values")
        if np.any(values < 0):
            raise ValidationError("Distance matrix contains negative values")
        if np.any(np.diag(values) != 0):
            raise ValidationError("Distance matrix diagonal must be zero")
        if not np.allclose(values, values.T, rtol=0, atol=1e-12):
            raise ValidationError("Distance matrix is not symmetric")

        values.setflags(write=False)
        self._taxa = taxa
        self._index = {name: i for i, name in enumerate(taxa)}
        self._values = values

    @property
    def taxa(self) -> tuple[str, ...]:
        return self._taxa

    @property
    def values(self) -> np.ndarray:
        """Read-only (n, n) array of distances."""
        return self._values

    @property
    def n_taxa(self) -> int:
        return len(self._taxa)

    def __len__(self) -> int:
        return self.n_taxa

    def __getitem__(self, pair: tuple[str, str]) -> float:
        a, b = pair
        return float(self._values[self._row(a), self._row(b)])

    def _row(self, taxon: str) -> int:
        try:
            return self._index[taxon]
        except KeyError:
            raise UnknownTaxonError([taxon], where="distance matrix") from None

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {
            a: {b: float(self._values[i, j]) for j, b in enumerate(self._taxa)}
            for i, a in enumerate(self._taxa)
        }

    def __repr__(self) -> str:
        return f"DistanceMatrix(n_taxa={self.n_taxa})"


def hamming_distances(matrix: CharacterMatrix) -> DistanceMatrix:
    """
    Proportion of differing sites for every taxon pair.

    Sites where either taxon is missing are excluded from both the count
    of differences and the count of comparable sites.

    Parameters
    ----------
    matrix : CharacterMatrix
        Character data

    Returns
    -------
    DistanceMatrix
        d(a, b) = differing sites / sites observed in both

    Raises
    ------
    InsufficientOverlapError
        If some pair has no site observed in both taxa

    Examples
    --------
    >>> m = CharacterMatrix({"A": "10100", "B": "11110", "C": "100?1"})
    >>> hamming_distances(m)["A", "B"]
    0.4
    """
    states = matrix.states
    valid = states != MISSING_CODE
    n = matrix.n_taxa
    distances = np.zeros((n, n))

    for i in range(n):
        # Vectorised over all later taxa at once
        both_valid = valid[i] & valid[i + 1:]
        comparable = both_valid.sum(axis=1)
        differences = ((states[i] != states[i + 1:]) & both_valid).sum(axis=1)
        empty = np.flatnonzero(comparable == 0)
        if empty.size:
            j = i + 1 + empty[0]
            raise InsufficientOverlapError(matrix.taxa[i], matrix.taxa[j])
        row = differences / comparable
        distances[i, i + 1:] = row
        distances[i + 1:, i] = row

    logger.debug("Computed %d pairwise distances", n * (n - 1) // 2)
    return DistanceMatrix(matrix.taxa, distances)
