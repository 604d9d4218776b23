"""
Character evolution models for likelihood calculation.

- **ER**: equal-rates Mk model with optional discrete gamma rate
  heterogeneity and ascertainment-bias correction
"""

from binphylo.models.binary import SubstitutionModel, discrete_gamma_rates

__all__ = ["SubstitutionModel", "discrete_gamma_rates"]
