"""
Neighbor Joining tree construction.
"""

import logging

import numpy as np

from ..exceptions import DegenerateInputError
from ..io.trees import Tree, TreeNode, TreeScore
from .distance import DistanceMatrix

logger = logging.getLogger(__name__)


def neighbor_joining(distances: DistanceMatrix) -> Tree:
    """
    Build an unrooted tree from a distance matrix (Saitou & Nei 1987).

    At each step the pair (i, j) minimising
    Q(i, j) = (n - 2) d(i, j) - r(i) - r(j) is joined, where r is the row
    sum over the n current clusters. Ties go to the lowest (i, j) in
    current cluster order; the new cluster takes the place of i, so the
    original taxon order decides every tie. Negative branch length
    estimates are clamped to zero. The last three clusters are joined in
    a basal trichotomy.

    Parameters
    ----------
    distances : DistanceMatrix
        Pairwise distances over at least three taxa

    Returns
    -------
    Tree
        Unrooted binary tree with n - 2 internal nodes

    Raises
    ------
    DegenerateInputError
        If fewer than three taxa are supplied
    """
    n = distances.n_taxa
    if n < 3:
        raise DegenerateInputError(
            f"Neighbor Joining needs at least 3 taxa, got {n}", n_taxa=n
        )

    D = np.array(distances.values, dtype=float)
    clusters: list[TreeNode] = [TreeNode(name=name) for name in distances.taxa]

    while len(clusters) > 3:
        m = len(clusters)
        r = D.sum(axis=1)
        Q = (m - 2) * D - r[:, None] - r[None, :]
        # Only the strict upper triangle is eligible; argmin returns the
        # first minimum in row-major order, i.e. the lowest (i, j)
        Q[np.tril_indices(m)] = np.inf
        i, j = divmod(int(np.argmin(Q)), m)

        d_ij = D[i, j]
        limb_i = 0.5 * d_ij + (r[i] - r[j]) / (2.0 * (m - 2))
        limb_j = d_ij - limb_i

        node = TreeNode()
        left, right = clusters[i], clusters[j]
        left.branch_length = max(limb_i, 0.0)
        right.branch_length = max(limb_j, 0.0)
        node.add_child(left)
        node.add_child(right)

        new_row = 0.5 * (D[i] + D[j] - d_ij)
        D[i, :] = new_row
        D[:, i] = new_row
        D[i, i] = 0.0
        D = np.delete(np.delete(D, j, axis=0), j, axis=1)
        clusters[i] = node
        del clusters[j]

        logger.debug("NJ joined clusters %d and %d (Q=%.6g), %d left", i, j, Q[i, j], m - 1)

    a, b, c = clusters
    d_ab, d_ac, d_bc = D[0, 1], D[0, 2], D[1, 2]
    root = TreeNode()
    for node, length in (
        (a, 0.5 * (d_ab + d_ac - d_bc)),
        (b, 0.5 * (d_ab + d_bc - d_ac)),
        (c, 0.5 * (d_ac + d_bc - d_ab)),
    ):
        node.branch_length = max(float(length), 0.0)
        root.add_child(node)

    tree = Tree(root, rooted=False, score=TreeScore(method="nj"))
    logger.info("Neighbor Joining tree built on %d taxa", n)
    return tree
