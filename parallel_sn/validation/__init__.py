"""Analytic reference solutions and the self-check run by ``--validate``."""
from .analytic import infinite_medium_keff, infinite_medium_flux, run_validation

__all__ = ['infinite_medium_keff', 'infinite_medium_flux', 'run_validation']
