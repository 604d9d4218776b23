"""
Likelihood calculation for discrete character models.

This module implements the Felsenstein pruning algorithm for computing
phylogenetic likelihood on a tree, vectorised over site patterns and
rate categories.
"""

import logging
from typing import Optional

import numpy as np

from ..exceptions import ValidationError
from ..io.matrix import MISSING_CODE, CharacterMatrix
from ..io.trees import Tree
from ..models.binary import SubstitutionModel

logger = logging.getLogger(__name__)


class LikelihoodCalculator:
    """
    Compute log-likelihoods of trees under a SubstitutionModel.

    One calculator serves any number of trees over the same taxa, so
    topology search can score candidates without rebuilding tip data.
    Per-node partial likelihoods live in arrays indexed by node id and are
    discarded after every call.

    Attributes
    ----------
    matrix : CharacterMatrix
        Character data
    n_states : int
        Number of character states
    n_patterns : int
        Number of unique site patterns
    """

    def __init__(self, matrix: CharacterMatrix):
        """
        Initialize likelihood calculator.

        Parameters
        ----------
        matrix : CharacterMatrix
            Character data
        """
        self.matrix = matrix
        self.site_patterns = matrix.patterns()
        self.weights = self.site_patterns.weights
        self.n_states = matrix.n_states
        self.n_patterns = self.site_patterns.n_patterns

        codes = self.site_patterns.patterns
        # tips[taxon, pattern, state]: 1 where the state is compatible
        tips = np.zeros((matrix.n_taxa, self.n_patterns, self.n_states))
        observed = codes != MISSING_CODE
        taxon_idx, pattern_idx = np.nonzero(observed)
        tips[taxon_idx, pattern_idx, codes[observed]] = 1.0
        tips[~observed] = 1.0
        self._tips = tips

        # Constant patterns, one per state, appended for ascertainment correction
        constant = np.broadcast_to(
            np.eye(self.n_states), (matrix.n_taxa, self.n_states, self.n_states)
        )
        self._tips_with_constant = np.concatenate([tips, constant], axis=1)

    def _check_model(self, model: SubstitutionModel) -> None:
        if model.n_states != self.n_states:
            raise ValidationError(
                f"Model has {model.n_states} states but the matrix alphabet has "
                f"{self.n_states}"
            )
        if model.ascertainment:
            constant = self.matrix.constant_sites()
            if constant.size:
                raise ValidationError(
                    f"Site {int(constant[0])} is constant but the model assumes "
                    "constant characters were excluded",
                    site=int(constant[0]),
                    suggestion="Remove constant characters or disable ascertainment correction.",
                )

    def _pattern_log_likelihoods(
        self, tree: Tree, model: SubstitutionModel, tips: np.ndarray
    ) -> np.ndarray:
        """Log-likelihood of every column of ``tips`` via post-order pruning."""
        leaf_rows = tree.leaf_rows(self.matrix.taxa)
        rates = model.category_rates()
        pi = model.pi
        n_cols = tips.shape[1]
        n_cat = len(rates)

        lengths = np.array([node.branch_length for node in tree.nodes])
        # P[node, category, i, j] for the edge above each node
        P = model.transition_matrices(lengths[:, None] * rates[None, :])
        P_T = np.swapaxes(P, -1, -2)

        partials: list[Optional[np.ndarray]] = [None] * tree.n_nodes
        log_scale = np.zeros(n_cols)

        for node in tree.nodes:
            if node.is_leaf:
                partials[node.id] = np.broadcast_to(
                    tips[leaf_rows[node.id]], (n_cat, n_cols, self.n_states)
                )
                continue

            acc = None
            for child in node.children:
                # sum_j P[i, j] * L_child[j] for every category and column
                contribution = partials[child.id] @ P_T[child.id]
                acc = contribution if acc is None else acc * contribution
                partials[child.id] = None

            # Rescale per column to avoid underflow on large trees
            scale = acc.max(axis=(0, 2))
            scale = np.where(scale > 0, scale, 1.0)
            acc = acc / scale[None, :, None]
            log_scale += np.log(scale)
            partials[node.id] = acc

        root = partials[tree.root.id]
        column_likelihood = (root @ pi).mean(axis=0)
        with np.errstate(divide="ignore"):
            return np.log(column_likelihood) + log_scale

    def pattern_log_likelihoods(self, tree: Tree, model: SubstitutionModel) -> np.ndarray:
        """
        Log-likelihood of every unique site pattern.

        With ascertainment correction each pattern likelihood is
        conditioned on the character being variable:
        L / (1 - sum over states s of P(all taxa show s)).
        """
        self._check_model(model)
        if not model.ascertainment:
            return self._pattern_log_likelihoods(tree, model, self._tips)

        lls = self._pattern_log_likelihoods(tree, model, self._tips_with_constant)
        data, constant = lls[: self.n_patterns], lls[self.n_patterns:]
        p_constant = np.exp(constant).sum()
        return data - np.log(max(1.0 - p_constant, 1e-300))

    def compute_log_likelihood(self, tree: Tree, model: SubstitutionModel) -> float:
        """
        Compute log-likelihood of a tree with its branch lengths.

        Parameters
        ----------
        tree : Tree
            Tree over exactly the matrix taxa
        model : SubstitutionModel
            Substitution model

        Returns
        -------
        float
            Log-likelihood value

        Raises
        ------
        ValidationError
            If tree and matrix taxa differ, the model's state count does not
            match the alphabet, or ascertainment correction is requested for
            data containing constant characters
        """
        return float(self.weights @ self.pattern_log_likelihoods(tree, model))

    def site_log_likelihoods(self, tree: Tree, model: SubstitutionModel) -> np.ndarray:
        """Log-likelihood of every original site, shape (n_sites,)."""
        return self.pattern_log_likelihoods(tree, model)[self.site_patterns.site_index]


def log_likelihood(
    tree: Tree, matrix: CharacterMatrix, model: Optional[SubstitutionModel] = None
) -> float:
    """
    Log-likelihood of a tree under a model (default: equal-rates, no gamma).

    Parameters
    ----------
    tree : Tree
        Tree with branch lengths
    matrix : CharacterMatrix
        Character data
    model : SubstitutionModel, optional
        Substitution model

    Returns
    -------
    float
    """
    if model is None:
        model = SubstitutionModel(n_states=matrix.n_states)
    return LikelihoodCalculator(matrix).compute_log_likelihood(tree, model)
