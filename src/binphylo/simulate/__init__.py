"""
Character simulation module for binphylo.

Useful for:
- Validating tree and parameter estimation
- Generating test datasets
"""

from .binary import CharacterSimulator, simulate_characters

__all__ = [
    'CharacterSimulator',
    'simulate_characters',
]
