"""
Topology rearrangement moves.

Every move generator returns independent candidate trees; the input tree
is never modified, so candidates can be scored concurrently.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from ..exceptions import DegenerateInputError
from ..io.trees import Tree, TreeNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Move:
    """
    A candidate rearrangement.

    Attributes
    ----------
    kind : str
        'nni' or 'spr'
    tree : Tree
        The rearranged tree (unrooted)
    focus : int
        Id, in ``tree``, of the node below the edge the move touched; the
        likelihood optimizer re-fits this edge first
    """

    kind: str
    tree: Tree
    focus: int


def _search_tree(tree: Tree) -> Tree:
    if tree.n_leaves < 4:
        raise DegenerateInputError(
            f"Rearrangements need at least 4 taxa, tree has {tree.n_leaves}",
            n_taxa=tree.n_leaves,
        )
    if tree.rooted or len(tree.root.children) == 2:
        return tree.unroot()
    return tree


def nni_neighbors(tree: Tree) -> list[Move]:
    """
    All nearest-neighbor interchanges of a tree.

    For every internal edge (v, parent) each child of v is swapped with the
    first sibling of v, which gives the two alternative resolutions of a
    binary internal edge.

    Parameters
    ----------
    tree : Tree
        Tree with at least 4 leaves; rooted trees are unrooted first

    Returns
    -------
    list[Move]
        One candidate per swap

    Raises
    ------
    DegenerateInputError
        If the tree has fewer than 4 leaves
    """
    base = _search_tree(tree)
    moves = []
    for v in base.nodes:
        if v.is_leaf or v.parent is None:
            continue
        p = v.parent
        siblings = [c for c in p.children if c is not v]
        if not siblings:
            continue
        sibling_id = siblings[0].id
        for ci in range(len(v.children)):
            candidate = base.copy()
            cv = candidate.node(v.id)
            cp = cv.parent
            swap_out = cv.children[ci]
            swap_in = candidate.node(sibling_id)

            cv.children[ci] = swap_in
            swap_in.parent = cv
            pos = next(i for i, c in enumerate(cp.children) if c is swap_in)
            cp.children[pos] = swap_out
            swap_out.parent = cp

            candidate.score = None
            candidate._refresh()
            moves.append(Move("nni", candidate, cv.id))
    return moves


def _subtree_sizes(tree: Tree) -> list[int]:
    sizes = [1] * tree.n_nodes
    for node in tree.nodes:
        for child in node.children:
            sizes[node.id] += sizes[child.id]
    return sizes


def _edge_distance(a: TreeNode, b: TreeNode) -> int:
    """Number of edges on the path between two nodes."""
    depth = {}
    node, d = a, 0
    while node is not None:
        depth[id(node)] = d
        node, d = node.parent, d + 1
    node, d = b, 0
    while id(node) not in depth:
        node, d = node.parent, d + 1
    return d + depth[id(node)]


def spr_neighbors(tree: Tree, radius: Optional[int] = None) -> list[Move]:
    """
    Subtree prune-and-regraft rearrangements.

    Each subtree hanging below a non-root node x is detached and reattached
    at the midpoint of every edge outside it. Regrafts that reproduce the
    starting topology are skipped.

    Parameters
    ----------
    tree : Tree
        Tree with at least 4 leaves; rooted trees are unrooted first
    radius : int, optional
        Only regraft on edges whose lower node lies within this many edges
        of the prune point

    Returns
    -------
    list[Move]

    Raises
    ------
    DegenerateInputError
        If the tree has fewer than 4 leaves
    """
    base = _search_tree(tree)
    sizes = _subtree_sizes(base)
    root = base.root
    moves = []

    for x in base.nodes:
        if x.parent is None:
            continue
        p = x.parent
        first_in_subtree = x.id - sizes[x.id] + 1
        p_collapses = (p is root and len(p.children) == 3) or (
            p is not root and len(p.children) == 2
        )

        for y in base.nodes:
            if y is root or first_in_subtree <= y.id <= x.id:
                continue
            if y.parent is p and p_collapses:
                continue
            if y is p and (p is root or p_collapses):
                continue
            if radius is not None and _edge_distance(p, y) > radius:
                continue
            moves.append(_regraft(base, x.id, y.id))
    return moves


def _regraft(base: Tree, x_id: int, y_id: int) -> Move:
    candidate = base.copy()
    x = candidate.node(x_id)
    y = candidate.node(y_id)
    p = x.parent

    p.remove_child(x)
    if p is not candidate.root and len(p.children) == 1:
        candidate._splice(p)

    junction = TreeNode()
    above = y.parent
    half = y.branch_length / 2.0
    above.replace_child(y, junction)
    junction.branch_length = half
    y.branch_length = half
    junction.add_child(y)
    junction.add_child(x)

    candidate.rooted = False
    candidate.score = None
    candidate._normalize()
    candidate._refresh()
    # The junction can be absorbed by normalisation; fall back to x's edge
    focus = junction.id if junction.parent is not None else x.id
    return Move("spr", candidate, focus)


def neighbors(tree: Tree, kind: str = "nni", radius: Optional[int] = None) -> list[Move]:
    """Candidate moves of the requested kind."""
    if kind == "nni":
        return nni_neighbors(tree)
    if kind == "spr":
        return spr_neighbors(tree, radius=radius)
    raise ValueError(f"Unknown rearrangement '{kind}', expected 'nni' or 'spr'")


def evaluate_moves(
    moves: Sequence[Move],
    score: Callable[[Move], float],
    n_jobs: int = 1,
) -> list[float]:
    """
    Score candidate moves, optionally on a thread pool.

    Results are returned in the order of ``moves`` regardless of
    ``n_jobs``, so searches stay deterministic.
    """
    if n_jobs <= 1 or len(moves) < 2:
        return [score(m) for m in moves]
    with ThreadPoolExecutor(max_workers=n_jobs) as executor:
        return list(executor.map(score, moves))
