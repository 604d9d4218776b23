"""Simulate command implementation."""

import json
from pathlib import Path
from typing import Optional

from ...exceptions import BinPhyloError
from ...simulate.binary import CharacterSimulator
from ..utils import build_model, fail, load_tree


def run_simulate(
    tree: Path,
    output: Path,
    n_sites: int,
    seed: Optional[int],
    gamma_categories: int,
    alpha: float,
    ascertainment: bool,
    output_params: bool,
):
    """Simulate a binary character matrix along a tree."""
    tree_obj = load_tree(tree)
    model = build_model(2, gamma_categories, alpha, ascertainment)
    try:
        simulator = CharacterSimulator(tree_obj, model, n_sites, seed=seed)
        matrix = simulator.simulate()
    except BinPhyloError as e:
        fail("Simulation failed", e)

    matrix.to_phylip(output)
    if output_params:
        params = simulator.get_parameters()
        params["seed"] = seed
        params_file = output.with_suffix(".params.json")
        with open(params_file, "w") as f:
            json.dump(params, f, indent=2)
