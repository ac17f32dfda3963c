"""
Transport weak forms plugged into the Equation assembly engine.

  saaf - self-adjoint angular flux (CFEM)
  ep   - even parity (CFEM / DFEM)
  nda  - nonlinear diffusion acceleration low-order equation (CFEM)
"""
from ..errors import ConfigurationError
from .base import Formulation, AngularFormulation
from .saaf import SAAF
from .even_parity import EvenParity
from .nda import NDA

TRANSPORT_MODELS = {
    SAAF.name: SAAF,
    EvenParity.name: EvenParity,
}


def make_formulation(model: str, quadrature, materials, bcs, element,
                     is_eigen: bool = True) -> Formulation:
    """Build a high-order transport formulation by name ('saaf' or 'ep')."""
    model = model.lower()
    if model not in TRANSPORT_MODELS:
        raise ConfigurationError(
            f"Unknown transport model: {model}. Choose from: {sorted(TRANSPORT_MODELS)}"
        )
    return TRANSPORT_MODELS[model](quadrature, materials, bcs, element, is_eigen)


__all__ = [
    'Formulation', 'AngularFormulation', 'SAAF', 'EvenParity', 'NDA',
    'TRANSPORT_MODELS', 'make_formulation',
]
