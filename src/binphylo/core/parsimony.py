"""
Fitch parsimony scoring and ACCTRAN ancestral state assignment.

State sets are bit masks (bit s set when state s is a candidate), held in
arrays indexed by node id and recomputed on every call; nothing is stored
on the tree. Multifurcating nodes use Hartigan's generalisation of Fitch's
rule, which is exact for polytomies and identical to Fitch on binary nodes.
"""

import logging
from typing import Optional

import numpy as np

from ..exceptions import ValidationError
from ..io.matrix import MISSING_CODE, CharacterMatrix
from ..io.trees import Tree, TreeScore

logger = logging.getLogger(__name__)


def _lowest_bit(sets: np.ndarray) -> np.ndarray:
    return sets & -sets


class FitchScorer:
    """
    Score trees against one character matrix.

    Site columns are compressed to unique patterns once; each call to
    ``score`` is a single post-order pass over the tree.

    Parameters
    ----------
    matrix : CharacterMatrix
        Character data; trees scored must have exactly its taxa
    """

    def __init__(self, matrix: CharacterMatrix):
        if matrix.n_states > 62:
            raise ValidationError(
                f"Parsimony supports at most 62 states, alphabet has {matrix.n_states}"
            )
        self.matrix = matrix
        self.site_patterns = matrix.patterns()
        self.n_states = matrix.n_states
        self.weights = self.site_patterns.weights

        codes = self.site_patterns.patterns.astype(np.int64)
        full = (1 << self.n_states) - 1
        self.leaf_sets = np.where(
            codes == MISSING_CODE, full, np.left_shift(1, np.maximum(codes, 0))
        ).astype(np.int64)
        self._shifts = np.arange(self.n_states, dtype=np.int64)

    def _combine(self, child_sets: list[np.ndarray]) -> tuple[np.ndarray, np.ndarray]:
        """State set and added changes for a node given its children's sets."""
        if len(child_sets) == 2:
            a, b = child_sets
            inter = a & b
            empty = inter == 0
            return np.where(empty, a | b, inter), empty.astype(float)

        stacked = np.stack(child_sets)
        counts = ((stacked[:, None, :] >> self._shifts[None, :, None]) & 1).sum(axis=0)
        best = counts.max(axis=0)
        sets = ((counts == best).astype(np.int64) << self._shifts[:, None]).sum(axis=0)
        return sets.astype(np.int64), (len(child_sets) - best).astype(float)

    def fitch_pass(self, tree: Tree) -> tuple[list[np.ndarray], np.ndarray]:
        """
        Bottom-up pass.

        Returns
        -------
        sets : list[ndarray]
            Candidate state masks per node id, shape (n_patterns,)
        costs : ndarray
            Minimum number of changes per pattern
        """
        leaf_rows = tree.leaf_rows(self.matrix.taxa)
        sets: list[Optional[np.ndarray]] = [None] * tree.n_nodes
        costs = np.zeros(self.site_patterns.n_patterns)
        for node in tree.nodes:
            if node.is_leaf:
                sets[node.id] = self.leaf_sets[leaf_rows[node.id]]
            elif len(node.children) == 1:
                sets[node.id] = sets[node.children[0].id]
            else:
                node_sets, added = self._combine([sets[c.id] for c in node.children])
                sets[node.id] = node_sets
                costs += added
        return sets, costs

    def pattern_costs(self, tree: Tree) -> np.ndarray:
        return self.fitch_pass(tree)[1]

    def score(self, tree: Tree, pattern_weights: Optional[np.ndarray] = None) -> float:
        """
        Weighted parsimony length of a tree.

        Parameters
        ----------
        tree : Tree
            Tree over the matrix taxa
        pattern_weights : ndarray, optional
            Weight per site pattern; defaults to the pattern counts

        Returns
        -------
        float
            Minimum number of (weighted) state changes
        """
        weights = self.weights if pattern_weights is None else pattern_weights
        return float(self.pattern_costs(tree) @ weights)

    def site_scores(self, tree: Tree) -> np.ndarray:
        """Minimum number of changes at every original site."""
        return self.pattern_costs(tree)[self.site_patterns.site_index]

    def acctran_pass(self, tree: Tree) -> list[np.ndarray]:
        """
        Assign one state per node per pattern, changes as close to the root as possible.

        The root takes the lowest state of its set. A child keeps its
        parent's state when its Fitch set allows, otherwise the change is
        placed on the edge above it, taking the lowest state of its own set.

        Returns
        -------
        list[ndarray]
            Single-bit state masks per node id
        """
        sets, _ = self.fitch_pass(tree)
        states: list[Optional[np.ndarray]] = [None] * tree.n_nodes
        for node in tree.preorder():
            own = sets[node.id]
            if node.parent is None:
                states[node.id] = _lowest_bit(own)
            else:
                parent_state = states[node.parent.id]
                states[node.id] = np.where(
                    (own & parent_state) != 0, parent_state, _lowest_bit(own)
                )
        return states


def parsimony_score(
    tree: Tree, matrix: CharacterMatrix, site_weights: Optional[np.ndarray] = None
) -> float:
    """
    Fitch parsimony length of a tree.

    Missing states at a leaf are unconstrained. The score does not depend
    on where the tree is rooted or on child order.

    Parameters
    ----------
    tree : Tree
        Tree with exactly the matrix taxa
    matrix : CharacterMatrix
        Character data
    site_weights : ndarray, optional
        Weight of every site (default 1)

    Returns
    -------
    float
        Minimum (weighted) number of changes

    Raises
    ------
    ValidationError
        If tree and matrix taxa differ
    """
    scorer = FitchScorer(matrix)
    if site_weights is None:
        return scorer.score(tree)
    site_weights = np.asarray(site_weights, dtype=float)
    if site_weights.shape != (matrix.n_sites,):
        raise ValidationError(
            f"Expected {matrix.n_sites} site weights, got shape {site_weights.shape}"
        )
    return scorer.score(tree, scorer.site_patterns.reweight(site_weights))


def site_scores(tree: Tree, matrix: CharacterMatrix) -> np.ndarray:
    """Minimum number of changes per site."""
    return FitchScorer(matrix).site_scores(tree)


def acctran(tree: Tree, matrix: CharacterMatrix, collapse: bool = False) -> Tree:
    """
    Branch lengths from an accelerated-transformation reconstruction.

    Every edge length is the number of sites where the states assigned to
    its two ends differ; the lengths sum to the parsimony score.

    Parameters
    ----------
    tree : Tree
        Topology to annotate (existing lengths are ignored)
    matrix : CharacterMatrix
        Character data
    collapse : bool
        Also merge internal edges with no inferred change, giving a
        multifurcating tree

    Returns
    -------
    Tree
        New tree with change counts as branch lengths
    """
    scorer = FitchScorer(matrix)
    states = scorer.acctran_pass(tree)
    weights = scorer.weights

    result = tree.copy()
    for node in result.nodes:
        if node.parent is None:
            node.branch_length = 0.0
            continue
        changed = states[node.id] != states[node.parent.id]
        node.branch_length = float(weights @ changed)

    score = scorer.score(tree)
    if collapse:
        result = result.collapse_short_edges(tol=0.0)
    result.score = TreeScore(method="parsimony", value=score, params={"lengths": "acctran"})
    logger.debug("ACCTRAN lengths assigned, total %.0f", result.total_length)
    return result


def acctran_states(tree: Tree, matrix: CharacterMatrix) -> dict[int, np.ndarray]:
    """
    ACCTRAN state of every node at every site.

    Returns
    -------
    dict[int, ndarray]
        Node id to state indices, shape (n_sites,)
    """
    scorer = FitchScorer(matrix)
    states = scorer.acctran_pass(tree)
    site_index = scorer.site_patterns.site_index
    return {
        node_id: np.log2(mask).astype(np.int8)[site_index]
        for node_id, mask in enumerate(states)
    }
