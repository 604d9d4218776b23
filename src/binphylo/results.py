"""
Result objects returned by the inference engines.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json

from .io.trees import Tree
from .models.binary import SubstitutionModel


@dataclass(frozen=True)
class InferenceResult:
    """
    Tree, score and search record from one inference run.

    Every engine (Neighbor Joining, Parsimony Ratchet, maximum likelihood)
    returns this one type. ``tree.score`` carries the same score so the
    tree can be passed on by itself.

    Attributes
    ----------
    method : str
        'nj', 'parsimony' or 'likelihood'
    tree : Tree
        Best tree found
    score : float or None
        Parsimony length or log-likelihood (None for Neighbor Joining)
    model : SubstitutionModel, optional
        Fitted model (likelihood only)
    history : list[float]
        Best score after every iteration or cycle
    iterations : int
        Number of iterations or cycles run
    converged : bool
        False when a budget (iterations, cycles, time) ended the search
    elapsed : float
        Wall-clock seconds
    equal_trees : list[Tree]
        Distinct topologies sharing the best parsimony score
    """

    method: str
    tree: Tree
    score: Optional[float] = None
    model: Optional[SubstitutionModel] = None
    history: List[float] = field(default_factory=list)
    iterations: int = 0
    converged: bool = True
    elapsed: float = 0.0
    equal_trees: List[Tree] = field(default_factory=list)

    @property
    def newick(self) -> str:
        return self.tree.to_newick()

    def summary(self) -> str:
        """
        Generate a formatted summary of the run.

        Returns
        -------
        str
            Multi-line formatted summary
        """
        titles = {
            "nj": "Neighbor Joining",
            "parsimony": "Parsimony Ratchet",
            "likelihood": "Maximum Likelihood",
        }
        lines = []
        lines.append("=" * 70)
        lines.append(titles.get(self.method, self.method))
        lines.append("=" * 70)
        lines.append("")
        lines.append(f"Taxa: {self.tree.n_leaves}")

        if self.method == "parsimony" and self.score is not None:
            lines.append(f"Parsimony length: {self.score:g}")
            if self.equal_trees:
                lines.append(f"Equally parsimonious trees: {len(self.equal_trees)}")
        elif self.method == "likelihood" and self.score is not None:
            lines.append(f"Log-likelihood: {self.score:.6f}")
            if self.model is not None:
                lines.append(f"Model: {self.model.describe()}")
                freqs = ", ".join(f"{f:.4f}" for f in self.model.frequencies)
                lines.append(f"  State frequencies: {freqs}")
                if self.model.n_categories > 1:
                    lines.append(f"  Gamma shape (alpha): {self.model.gamma_shape:.4f}")

        if self.method != "nj":
            status = "converged" if self.converged else "stopped by budget"
            lines.append(f"Iterations: {self.iterations} ({status})")
        lines.append(f"Time: {self.elapsed:.2f}s")
        lines.append(f"Tree length: {self.tree.total_length:.6f}")
        lines.append("")
        lines.append("Tree:")
        lines.append(f"  {self.newick}")
        lines.append("=" * 70)

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """
        Export results as a dictionary.

        Returns
        -------
        dict
            JSON-serialisable record of the run
        """
        return {
            "method": self.method,
            "score": float(self.score) if self.score is not None else None,
            "tree": self.newick,
            "model": self.model.to_dict() if self.model is not None else None,
            "history": [float(h) for h in self.history],
            "iterations": int(self.iterations),
            "converged": bool(self.converged),
            "elapsed": float(self.elapsed),
            "equal_trees": [t.to_newick() for t in self.equal_trees],
        }

    def to_json(self, filepath: Optional[str] = None, indent: int = 2) -> str:
        """
        Export results as JSON.

        Parameters
        ----------
        filepath : str, optional
            If provided, write JSON to this file
        indent : int, default=2
            Indentation level for pretty printing

        Returns
        -------
        str
            JSON string representation
        """
        json_str = json.dumps(self.to_dict(), indent=indent)

        if filepath:
            with open(filepath, "w") as f:
                f.write(json_str)

        return json_str
