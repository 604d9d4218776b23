"""
Phylogenetic tree representation, Newick parsing and structural operations.

Trees are treated as values: every structural operation (reroot, prune,
restrict, ladderize, collapse, unroot) returns a new ``Tree`` and leaves the
receiver untouched. Node ids are reassigned in post-order after every
change, so algorithms can keep per-node working state in arrays indexed
by ``node.id``.
"""

import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Sequence

from ..exceptions import (
    DegenerateInputError,
    NewickParseError,
    UnknownTaxonError,
    ValidationError,
)

# Characters that force a name to be quoted in Newick output
_NEWICK_SPECIAL = set(" ():;,[]'\t\n")


@dataclass(eq=False)
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Post-order index, reassigned whenever the owning tree changes
    name : Optional[str]
        Taxon name (leaves only)
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : float
        Length of the edge to the parent
    label : Optional[str]
        Internal node label (e.g. a support value)
    """

    id: int = -1
    name: Optional[str] = None
    parent: Optional["TreeNode"] = field(default=None, repr=False)
    children: list["TreeNode"] = field(default_factory=list, repr=False)
    branch_length: float = 0.0
    label: Optional[str] = None

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0

    def add_child(self, child: "TreeNode") -> "TreeNode":
        child.parent = self
        self.children.append(child)
        return child

    def remove_child(self, child: "TreeNode") -> None:
        # Identity, not equality: nodes compare by object
        for i, c in enumerate(self.children):
            if c is child:
                del self.children[i]
                child.parent = None
                return
        raise ValueError("node is not a child of this node")

    def replace_child(self, old: "TreeNode", new: "TreeNode") -> None:
        for i, c in enumerate(self.children):
            if c is old:
                self.children[i] = new
                new.parent = self
                old.parent = None
                return
        raise ValueError("node is not a child of this node")


@dataclass(frozen=True)
class TreeScore:
    """
    Score record attached to a tree by the inference engines.

    Attributes
    ----------
    method : str
        Engine that produced the tree ('nj', 'parsimony', 'likelihood')
    value : Optional[float]
        Parsimony length or log-likelihood (None for NJ)
    params : dict
        Engine-specific parameters (model parameters for likelihood)
    """

    method: str
    value: Optional[float] = None
    params: dict = field(default_factory=dict)


class Tree:
    """
    Phylogenetic tree with explicit rooted/unrooted flag.

    An unrooted tree is stored hanging from an arbitrary internal node,
    conventionally a basal trichotomy. Topology comparisons always use
    the unrooted bipartitions.

    Parameters
    ----------
    root : TreeNode
        Root node
    rooted : bool, optional
        Whether the root is meaningful. Defaults to True when the root
        has exactly two children.
    score : TreeScore, optional
        Score record from the engine that produced this tree

    Raises
    ------
    ValidationError
        If a leaf has no name or two leaves share a name
    """

    def __init__(
        self,
        root: TreeNode,
        rooted: Optional[bool] = None,
        score: Optional[TreeScore] = None,
    ):
        self.root = root
        root.parent = None
        self.rooted = len(root.children) == 2 if rooted is None else bool(rooted)
        self.score = score
        self._refresh()

    # ------------------------------------------------------------------
    # Construction and serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Accepts ``(child1:length1,child2:length2,...)label:length;``.
        Leaf names may be single-quoted; internal names are kept as labels.
        Bracketed comments are ignored, except a leading ``[&R]`` / ``[&U]``
        which sets the rooted flag.

        Parameters
        ----------
        newick_string : str
            Newick format tree

        Returns
        -------
        Tree
            Parsed tree

        Raises
        ------
        NewickParseError
            If the text is not valid Newick
        """
        text = newick_string.strip()
        rooted: Optional[bool] = None
        flag = re.match(r"\[&([RrUu])\]", text)
        if flag:
            rooted = flag.group(1).upper() == "R"

        # Drop bracketed comments and line breaks
        text = re.sub(r"\[[^\]]*\]", "", text)
        text = text.replace("\n", "").replace("\t", "").replace("\r", "").strip()

        if ";" not in text:
            raise NewickParseError("Invalid Newick format: missing semicolon")
        text = text[: text.index(";")]
        if not text:
            raise NewickParseError("Invalid Newick format: no tree found")

        def skip_whitespace(s: str, pos: int) -> int:
            while pos < len(s) and s[pos] == " ":
                pos += 1
            return pos

        def parse_name(s: str, pos: int) -> tuple[Optional[str], int]:
            if pos < len(s) and s[pos] == "'":
                end = pos + 1
                chars = []
                while True:
                    if end >= len(s):
                        raise NewickParseError("Unterminated quoted name", pos)
                    if s[end] == "'":
                        # '' is an escaped quote inside a quoted name
                        if end + 1 < len(s) and s[end + 1] == "'":
                            chars.append("'")
                            end += 2
                            continue
                        break
                    chars.append(s[end])
                    end += 1
                return "".join(chars), end + 1
            start = pos
            while pos < len(s) and s[pos] not in ",:();":
                pos += 1
            name = s[start:pos].strip()
            return name or None, pos

        def parse_node(s: str, start: int) -> tuple[TreeNode, int]:
            node = TreeNode()
            pos = skip_whitespace(s, start)

            if pos < len(s) and s[pos] == "(":
                pos += 1
                while True:
                    child, pos = parse_node(s, pos)
                    node.add_child(child)
                    pos = skip_whitespace(s, pos)
                    if pos < len(s) and s[pos] == ",":
                        pos += 1
                        continue
                    elif pos < len(s) and s[pos] == ")":
                        pos += 1
                        break
                    else:
                        raise NewickParseError("Expected ',' or ')'", pos)

            pos = skip_whitespace(s, pos)
            name, pos = parse_name(s, pos)
            if node.children:
                node.label = name
            else:
                node.name = name

            pos = skip_whitespace(s, pos)
            if pos < len(s) and s[pos] == ":":
                pos = skip_whitespace(s, pos + 1)
                length_start = pos
                while pos < len(s) and s[pos] not in ",();":
                    pos += 1
                raw = s[length_start:pos].strip()
                try:
                    node.branch_length = float(raw)
                except ValueError:
                    raise NewickParseError(f"Invalid branch length: {raw!r}", length_start) from None
                if node.branch_length < 0 or math.isnan(node.branch_length):
                    raise NewickParseError(f"Negative branch length: {raw}", length_start)

            return node, pos

        root, pos = parse_node(text, 0)
        pos = skip_whitespace(text, pos)
        if pos != len(text):
            raise NewickParseError("Unexpected text after tree", pos)

        return cls(root, rooted=rooted)

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Tree":
        """Read the first tree of a Newick file."""
        with open(filepath, "r") as f:
            return cls.from_newick(f.read())

    def to_newick(self, branch_lengths: bool = True, precision: int = 12) -> str:
        """
        Serialize the tree as Newick text.

        Parameters
        ----------
        branch_lengths : bool
            Write ``:length`` annotations
        precision : int
            Significant digits for branch lengths

        Returns
        -------
        str
            Newick string terminated by ';'
        """

        def fmt_name(name: Optional[str]) -> str:
            if not name:
                return ""
            if any(ch in _NEWICK_SPECIAL for ch in name):
                return "'" + name.replace("'", "''") + "'"
            return name

        def fmt(node: TreeNode) -> str:
            if node.is_leaf:
                out = fmt_name(node.name)
            else:
                out = "(" + ",".join(fmt(c) for c in node.children) + ")"
                out += fmt_name(node.label)
            if branch_lengths and (node.parent is not None or node.branch_length):
                out += f":{node.branch_length:.{precision}g}"
            return out

        return fmt(self.root) + ";"

    def write(self, filepath: Path | str, **kwargs) -> None:
        with open(filepath, "w") as f:
            f.write(self.to_newick(**kwargs) + "\n")

    def copy(self) -> "Tree":
        """Independent deep copy with identical node order and ids."""
        mapping: dict[int, TreeNode] = {}
        for node in self._nodes:
            clone = TreeNode(
                id=node.id,
                name=node.name,
                branch_length=node.branch_length,
                label=node.label,
            )
            mapping[node.id] = clone
            for child in node.children:
                clone.add_child(mapping[child.id])
        return Tree(mapping[self.root.id], rooted=self.rooted, score=self.score)

    def with_score(self, score: Optional[TreeScore]) -> "Tree":
        tree = self.copy()
        tree.score = score
        return tree

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        """Reassign post-order ids and rebuild lookup tables."""
        nodes = []
        stack: list[tuple[TreeNode, bool]] = [(self.root, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                node.id = len(nodes)
                nodes.append(node)
            else:
                stack.append((node, True))
                for child in reversed(node.children):
                    stack.append((child, False))
        self._nodes = nodes

        leaves = {}
        for node in nodes:
            if node.is_leaf:
                if not node.name:
                    raise ValidationError("Tree has a leaf without a taxon name")
                if node.name in leaves:
                    raise ValidationError(
                        f"Taxon '{node.name}' appears more than once in the tree",
                        taxon=node.name,
                    )
                leaves[node.name] = node
        self._leaves = leaves

    @property
    def nodes(self) -> list[TreeNode]:
        """All nodes in post-order; ``nodes[i].id == i``."""
        return self._nodes

    @property
    def n_nodes(self) -> int:
        return len(self._nodes)

    @property
    def n_leaves(self) -> int:
        return len(self._leaves)

    @property
    def n_internal(self) -> int:
        return self.n_nodes - self.n_leaves

    @property
    def leaf_names(self) -> list[str]:
        """Leaf names in post-order."""
        return [n.name for n in self._nodes if n.is_leaf]

    @property
    def taxa(self) -> frozenset[str]:
        return frozenset(self._leaves)

    @property
    def total_length(self) -> float:
        return sum(n.branch_length for n in self._nodes if n.parent is not None)

    def node(self, node_id: int) -> TreeNode:
        return self._nodes[node_id]

    def leaf(self, name: str) -> TreeNode:
        try:
            return self._leaves[name]
        except KeyError:
            raise UnknownTaxonError([name]) from None

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Returns
        -------
        list[TreeNode]
            Nodes in post-order
        """
        return list(self._nodes)

    def preorder(self) -> list[TreeNode]:
        """Return nodes in pre-order traversal (root to leaves)."""
        result = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(node.children))
        return result

    def get_branches(self) -> list[tuple[TreeNode, TreeNode]]:
        """
        Get all branches as (parent, child) pairs in post-order of the child.

        Returns
        -------
        list[tuple[TreeNode, TreeNode]]
            List of (parent, child) tuples for each branch
        """
        return [(n.parent, n) for n in self._nodes if n.parent is not None]

    def is_binary(self) -> bool:
        """True for a strictly bifurcating tree (basal trichotomy if unrooted)."""
        root_degree = 2 if self.rooted else 3
        if self.n_leaves < 3:
            return True
        for node in self._nodes:
            if node.is_leaf:
                continue
            expected = root_degree if node is self.root else 2
            if len(node.children) != expected:
                return False
        return True

    def leaf_rows(self, taxa: Sequence[str]) -> dict[int, int]:
        """
        Map leaf node ids to row indices of a taxon list.

        Raises
        ------
        ValidationError
            If the tree's leaves and the taxon list are not the same set
        """
        taxa = list(taxa)
        if len(set(taxa)) != len(taxa):
            raise ValidationError("Taxon list contains duplicate names")
        in_taxa = set(taxa)
        if in_taxa != set(self._leaves):
            only_data = sorted(in_taxa - set(self._leaves))
            only_tree = sorted(set(self._leaves) - in_taxa)
            raise ValidationError(
                "Tree and character matrix have different taxa. "
                f"In matrix but not tree: {only_data}. "
                f"In tree but not matrix: {only_tree}",
                suggestion="Use Tree.restrict() or CharacterMatrix.subset() to align them.",
            )
        row = {name: i for i, name in enumerate(taxa)}
        return {node.id: row[name] for name, node in self._leaves.items()}

    def path_length(self, taxon_a: str, taxon_b: str) -> float:
        """Sum of branch lengths on the path between two leaves."""
        a, b = self.leaf(taxon_a), self.leaf(taxon_b)
        depth = {}
        dist = 0.0
        node = a
        while node is not None:
            depth[node.id] = dist
            dist += node.branch_length
            node = node.parent
        dist = 0.0
        node = b
        while node.id not in depth:
            dist += node.branch_length
            node = node.parent
        return dist + depth[node.id]

    def clades(self) -> dict[int, frozenset[str]]:
        """Leaf-name set below every node, keyed by node id."""
        out: dict[int, frozenset[str]] = {}
        for node in self._nodes:
            if node.is_leaf:
                out[node.id] = frozenset([node.name])
            else:
                out[node.id] = frozenset().union(*(out[c.id] for c in node.children))
        return out

    # ------------------------------------------------------------------
    # Topology comparison
    # ------------------------------------------------------------------

    def split_lengths(self) -> dict[frozenset[str], float]:
        """
        Edge lengths keyed by the bipartition each edge induces.

        Each split is keyed by the side not containing the alphabetically
        first taxon. Trivial (terminal) splits are included. The two edges
        at a binary root induce the same split and are summed.
        """
        taxa = self.taxa
        ref = min(taxa)
        clades = self.clades()
        lengths: dict[frozenset[str], float] = {}
        for node in self._nodes:
            if node.parent is None:
                continue
            clade = clades[node.id]
            side = taxa - clade if ref in clade else clade
            if not side:
                continue
            lengths[side] = lengths.get(side, 0.0) + node.branch_length
        return lengths

    def bipartitions(self) -> set[frozenset[str]]:
        """Non-trivial bipartitions (both sides at least two taxa)."""
        n = self.n_leaves
        return {s for s in self.split_lengths() if 2 <= len(s) <= n - 2}

    def topology_key(self) -> frozenset:
        """Hashable key identifying the unrooted topology."""
        return frozenset(self.bipartitions())

    def same_topology(self, other: "Tree") -> bool:
        """Topology-only equality on unrooted bipartitions."""
        return self.taxa == other.taxa and self.bipartitions() == other.bipartitions()

    def equals(self, other: "Tree", tol: float = 1e-9) -> bool:
        """Topology and edge-length equality within an absolute tolerance."""
        if self.taxa != other.taxa:
            return False
        mine, theirs = self.split_lengths(), other.split_lengths()
        if mine.keys() != theirs.keys():
            return False
        return all(abs(mine[k] - theirs[k]) <= tol for k in mine)

    def robinson_foulds(self, other: "Tree", normalize: bool = False) -> float:
        """
        Robinson-Foulds distance: bipartitions present in only one tree.

        Raises
        ------
        ValidationError
            If the trees have different taxa
        """
        if self.taxa != other.taxa:
            raise ValidationError("Robinson-Foulds distance needs trees on the same taxa")
        a, b = self.bipartitions(), other.bipartitions()
        rf = len(a ^ b)
        if normalize:
            max_rf = 2 * (self.n_leaves - 3)
            return rf / max_rf if max_rf > 0 else 0.0
        return rf

    # ------------------------------------------------------------------
    # Structural operations (all return new trees)
    # ------------------------------------------------------------------

    def unroot(self) -> "Tree":
        """Drop the root, leaving a basal trichotomy."""
        tree = self.copy()
        tree._unroot_in_place()
        tree.rooted = False
        tree._refresh()
        return tree

    def reroot(self, outgroup: str, resolve_root: bool = False) -> "Tree":
        """
        Re-hang the tree on the edge leading to an outgroup taxon.

        Parameters
        ----------
        outgroup : str
            Taxon to root on
        resolve_root : bool
            If True, insert a binary root on the outgroup edge (the outgroup
            keeps its edge length, the ingroup edge gets length 0) and mark
            the tree rooted. If False, the outgroup's neighbour becomes the
            (unrooted) basal node.

        Raises
        ------
        UnknownTaxonError
            If the outgroup is not a leaf of the tree
        """
        if outgroup not in self._leaves:
            raise UnknownTaxonError([outgroup])

        tree = self.copy()
        tree._unroot_in_place()
        leaf = tree._leaves[outgroup]
        anchor = leaf.parent
        tree._rehang(anchor)
        tree._suppress_unary()

        anchor.remove_child(leaf)
        anchor.children.insert(0, leaf)
        leaf.parent = anchor

        if resolve_root and len(anchor.children) > 2:
            new_root = TreeNode()
            anchor.remove_child(leaf)
            new_root.add_child(leaf)
            new_root.add_child(anchor)
            anchor.branch_length = 0.0
            tree.root = new_root

        tree.rooted = resolve_root
        tree._refresh()
        return tree

    def prune(self, taxa_to_remove: Iterable[str]) -> "Tree":
        """
        Remove taxa, collapsing internal nodes left with a single child.

        Collapsed edges are summed so leaf-to-leaf path lengths are kept.

        Raises
        ------
        UnknownTaxonError
            If any taxon is not in the tree
        DegenerateInputError
            If fewer than two taxa would remain
        """
        remove = set(taxa_to_remove)
        unknown = remove - set(self._leaves)
        if unknown:
            raise UnknownTaxonError(unknown)
        remaining = self.n_leaves - len(remove)
        if remaining < 2:
            raise DegenerateInputError(
                f"Pruning would leave {remaining} taxa; a tree needs at least 2",
                n_taxa=remaining,
            )
        if not remove:
            return self.copy()

        tree = self.copy()
        for name in remove:
            leaf = tree._leaves[name]
            parent = leaf.parent
            parent.remove_child(leaf)
            while parent is not tree.root and not parent.children:
                grandparent = parent.parent
                grandparent.remove_child(parent)
                parent = grandparent
        tree._normalize()
        tree._refresh()
        return tree

    def restrict(self, taxa_to_keep: Iterable[str]) -> "Tree":
        """Keep exactly the given taxa; see ``prune``."""
        keep = set(taxa_to_keep)
        unknown = keep - set(self._leaves)
        if unknown:
            raise UnknownTaxonError(unknown)
        return self.prune(set(self._leaves) - keep)

    def ladderize(self, descending: bool = True) -> "Tree":
        """Order children by clade size (largest first by default)."""
        tree = self.copy()
        sizes: dict[int, int] = {}
        for node in tree._nodes:
            sizes[node.id] = 1 if node.is_leaf else sum(sizes[c.id] for c in node.children)
        for node in tree._nodes:
            node.children.sort(key=lambda c: sizes[c.id], reverse=descending)
        tree._refresh()
        return tree

    def collapse_short_edges(self, tol: float = 1e-8) -> "Tree":
        """
        Merge internal edges of length <= tol into their parent node.

        Turns a strictly bifurcating tree into a general multifurcating one.
        """
        tree = self.copy()
        for node in list(tree._nodes):
            if node.parent is None or node.is_leaf:
                continue
            if node.branch_length <= tol:
                tree._merge_into_parent(node)
        tree._refresh()
        return tree

    def resolve_polytomies(self) -> "Tree":
        """
        Split every multifurcation into zero-length binary edges.

        The first two children of a node with too many are joined under a
        new node until the node is binary (a basal trichotomy is kept for
        unrooted trees). Path lengths between leaves are unchanged.
        """
        tree = self.copy()
        for node in list(tree._nodes):
            limit = 3 if node is tree.root and not tree.rooted else 2
            while len(node.children) > limit:
                first, second = node.children[0], node.children[1]
                node.remove_child(first)
                node.remove_child(second)
                joined = TreeNode()
                joined.add_child(first)
                joined.add_child(second)
                node.add_child(joined)
        tree._refresh()
        return tree

    # ------------------------------------------------------------------
    # In-place helpers; callers must _refresh() afterwards
    # ------------------------------------------------------------------

    def _merge_into_parent(self, node: TreeNode) -> None:
        """Replace node by its children in its parent's child list."""
        parent = node.parent
        pos = next(i for i, c in enumerate(parent.children) if c is node)
        parent.children[pos:pos + 1] = node.children
        for child in node.children:
            child.parent = parent
        node.children = []
        node.parent = None

    def _splice(self, node: TreeNode) -> None:
        """Remove a non-root node with one child, joining its two edges."""
        (child,) = node.children
        child.branch_length += node.branch_length
        node.children = []
        node.parent.replace_child(node, child)

    def _suppress_unary(self) -> None:
        for node in list(self._postorder_nodes()):
            if node is not self.root and len(node.children) == 1:
                self._splice(node)

    def _postorder_nodes(self):
        """Post-order generator over the current structure (no id refresh)."""
        stack: list[tuple[TreeNode, bool]] = [(self.root, False)]
        while stack:
            node, expanded = stack.pop()
            if expanded:
                yield node
            else:
                stack.append((node, True))
                for child in reversed(node.children):
                    stack.append((child, False))

    def _promote_single_child_root(self) -> None:
        while len(self.root.children) == 1 and not self.root.children[0].is_leaf:
            child = self.root.children[0]
            self.root.children = []
            child.parent = None
            child.branch_length = 0.0
            self.root = child

    def _unroot_in_place(self) -> None:
        self._promote_single_child_root()
        root = self.root
        if len(root.children) != 2:
            return
        internal = [c for c in root.children if not c.is_leaf]
        if not internal:
            return
        merged = internal[-1]
        other = root.children[0] if root.children[1] is merged else root.children[1]
        other.branch_length += merged.branch_length
        self._merge_into_parent(merged)

    def _normalize(self) -> None:
        self._suppress_unary()
        self._promote_single_child_root()
        if not self.rooted:
            self._unroot_in_place()

    def _rehang(self, new_root: TreeNode) -> None:
        """Make new_root the root by reversing edges on its path to the old root."""
        path = []
        node = new_root
        while node is not None:
            path.append(node)
            node = node.parent
        for i in range(len(path) - 1, 0, -1):
            parent, child = path[i], path[i - 1]
            parent.remove_child(child)
            parent.branch_length = child.branch_length
            child.add_child(parent)
        new_root.parent = None
        new_root.branch_length = 0.0
        self.root = new_root

    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        kind = "rooted" if self.rooted else "unrooted"
        return f"Tree({kind}, n_leaves={self.n_leaves}, n_nodes={self.n_nodes})"

    def __str__(self) -> str:
        return self.to_newick()
