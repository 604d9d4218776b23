"""
Discrete character simulation along a tree.
"""

import logging
from typing import Dict, Optional

import numpy as np

from ..exceptions import ValidationError
from ..io.matrix import BINARY_ALPHABET, CharacterMatrix
from ..io.trees import Tree
from ..models.binary import SubstitutionModel

logger = logging.getLogger(__name__)

# Rounds of redrawing constant characters before giving up
_MAX_RESAMPLE_ROUNDS = 1000


class CharacterSimulator:
    """
    Simulate characters under a SubstitutionModel.

    Each site draws one gamma rate category, a root state from the
    equilibrium frequencies, and then evolves from root to tips with the
    transition matrix of every branch scaled by the site's rate.

    Parameters
    ----------
    tree : Tree
        Tree with branch lengths; its root is used as the starting point,
        which does not matter for a reversible model
    model : SubstitutionModel
        Model to simulate under. With ``ascertainment=True`` constant
        characters are redrawn until every character is variable.
    n_sites : int
        Number of characters to simulate
    seed : int, optional
        Random seed for reproducibility

    Attributes
    ----------
    rng : numpy.random.Generator
        Random number generator (seeded for reproducibility)
    """

    def __init__(
        self,
        tree: Tree,
        model: SubstitutionModel,
        n_sites: int,
        seed: Optional[int] = None,
    ):
        if n_sites < 1:
            raise ValidationError(f"Number of sites must be >= 1, got {n_sites}")
        self.tree = tree
        self.model = model
        self.n_sites = n_sites
        self.rng = np.random.default_rng(seed)

    def _draw(self, probs: np.ndarray) -> np.ndarray:
        """One categorical draw per row of ``probs``."""
        cumulative = np.cumsum(probs, axis=-1)
        u = self.rng.random(probs.shape[0])
        states = (u[:, None] > cumulative).sum(axis=1)
        return np.minimum(states, self.model.n_states - 1)

    def _simulate_block(self, n: int) -> Dict[int, np.ndarray]:
        model = self.model
        rates = model.category_rates()
        site_rates = rates[self.rng.integers(len(rates), size=n)]

        states = {self.tree.root.id: self._draw(np.broadcast_to(model.pi, (n, model.n_states)))}
        for node in self.tree.preorder():
            if node.parent is None:
                continue
            parent_states = states[node.parent.id]
            P = model.transition_matrices(node.branch_length * site_rates)
            states[node.id] = self._draw(P[np.arange(n), parent_states])
        return states

    def simulate(self) -> CharacterMatrix:
        """
        Simulate a character matrix.

        Returns
        -------
        CharacterMatrix
            Leaf states, one row per tree leaf in post-order

        Raises
        ------
        ValidationError
            If variable characters are requested but constant characters
            keep being drawn (branches too short)
        """
        leaves = [node for node in self.tree.nodes if node.is_leaf]
        block = self._simulate_block(self.n_sites)
        data = np.vstack([block[leaf.id] for leaf in leaves])

        if self.model.ascertainment:
            for _ in range(_MAX_RESAMPLE_ROUNDS):
                constant = np.flatnonzero((data == data[0]).all(axis=0))
                if constant.size == 0:
                    break
                redraw = self._simulate_block(constant.size)
                data[:, constant] = np.vstack([redraw[leaf.id] for leaf in leaves])
            else:
                raise ValidationError(
                    "Could not simulate variable characters on this tree",
                    suggestion="Use longer branches or disable ascertainment correction.",
                )

        n_states = self.model.n_states
        alphabet = BINARY_ALPHABET if n_states == 2 else tuple(str(i) for i in range(n_states))
        logger.debug("Simulated %d characters on %d taxa", self.n_sites, len(leaves))
        return CharacterMatrix._from_codes(
            [leaf.name for leaf in leaves], data, alphabet=alphabet, missing="?"
        )

    def get_parameters(self) -> Dict:
        """Simulation parameters for output metadata."""
        return {
            "model": self.model.to_dict(),
            "n_sites": self.n_sites,
            "tree": self.tree.to_newick(),
        }


def simulate_characters(
    tree: Tree,
    model: Optional[SubstitutionModel] = None,
    n_sites: int = 100,
    seed: Optional[int] = None,
) -> CharacterMatrix:
    """
    Simulate a character matrix on a tree.

    Parameters
    ----------
    tree : Tree
        Tree with branch lengths
    model : SubstitutionModel, optional
        Model (default: binary equal rates)
    n_sites : int
        Number of characters
    seed : int, optional
        Random seed

    Returns
    -------
    CharacterMatrix
    """
    if model is None:
        model = SubstitutionModel()
    return CharacterSimulator(tree, model, n_sites, seed).simulate()
