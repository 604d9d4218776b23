"""
Input/Output modules for character matrices and phylogenetic trees.

This module provides classes for reading and working with:

- **Character matrices**: taxa x discrete states, sequential PHYLIP-style files
- **Phylogenetic trees**: Newick format

The main classes handle file parsing and data validation.
"""

from binphylo.io.matrix import CharacterMatrix, SitePatterns
from binphylo.io.trees import Tree, TreeNode, TreeScore

__all__ = ["CharacterMatrix", "SitePatterns", "Tree", "TreeNode", "TreeScore"]
