"""
Pytest configuration and shared fixtures.
"""

import pytest
from typer.testing import CliRunner

from binphylo.io.matrix import CharacterMatrix
from binphylo.io.trees import Tree


# Six taxa, three cherries; every character fits the tree with one change
CHERRY_DATA = {
    "A": "100111",
    "B": "100101",
    "C": "010100",
    "D": "010100",
    "E": "001000",
    "F": "001000",
}

CHERRY_NEWICK = "((A:0.1,B:0.1):0.3,(C:0.1,D:0.1):0.3,(E:0.1,F:0.1):0.3);"


@pytest.fixture
def small_matrix():
    """Three taxa with one missing state."""
    return CharacterMatrix({"A": "10100", "B": "11110", "C": "100?1"})


@pytest.fixture
def cherry_matrix():
    """Six-taxon matrix whose unique most parsimonious tree is three cherries."""
    return CharacterMatrix(CHERRY_DATA)


@pytest.fixture
def cherry_tree():
    """The most parsimonious tree for cherry_matrix, with branch lengths."""
    return Tree.from_newick(CHERRY_NEWICK)


@pytest.fixture
def wrong_tree():
    """Six-taxon tree with every cherry broken (parsimony length 9)."""
    return Tree.from_newick("((A:0.1,C:0.1):0.2,(B:0.1,D:0.1):0.2,(E:0.1,F:0.1):0.2);")


@pytest.fixture
def five_taxon_tree():
    """Unrooted binary tree on five taxa with distinct branch lengths."""
    return Tree.from_newick("((A:0.1,B:0.2):0.05,C:0.3,(D:0.15,E:0.25):0.1);")


@pytest.fixture
def cli_runner():
    """CLI test runner for Typer apps."""
    return CliRunner()


@pytest.fixture
def cherry_matrix_file(tmp_path, cherry_matrix):
    """Sequential PHYLIP-style file of cherry_matrix."""
    path = tmp_path / "cherries.phy"
    cherry_matrix.to_phylip(path)
    return path


@pytest.fixture
def cherry_tree_file(tmp_path):
    """Newick file of the cherry tree."""
    path = tmp_path / "cherries.nwk"
    path.write_text(CHERRY_NEWICK + "\n")
    return path
