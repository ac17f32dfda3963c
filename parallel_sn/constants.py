"""
Numerical constants, boundary naming and iteration defaults.

Boundary ids follow the axis convention of the structured mesh generator:
  xmin -> 0, xmax -> 1, ymin -> 2, ymax -> 3
"""
import numpy as np

# ---------------------------------------------------------------------------
# Angular integration
# ---------------------------------------------------------------------------
FOUR_PI = 4.0 * np.pi             # total solid angle (sr)
DIRECTION_MATCH_TOL = 1.0e-10     # tolerance for locating reflected directions

# ---------------------------------------------------------------------------
# Boundary ids and treatments
# ---------------------------------------------------------------------------
XMIN, XMAX, YMIN, YMAX = 0, 1, 2, 3
BOUNDARY_NAMES = {XMIN: 'xmin', XMAX: 'xmax', YMIN: 'ymin', YMAX: 'ymax'}

VACUUM = 'vacuum'
REFLECTIVE = 'reflective'
INCIDENT = 'incident'
BOUNDARY_KINDS = (VACUUM, REFLECTIVE, INCIDENT)

# ---------------------------------------------------------------------------
# Discretization
# ---------------------------------------------------------------------------
CFEM = 'cfem'
DFEM = 'dfem'
DISCRETIZATIONS = (CFEM, DFEM)
IP_PENALTY_FACTOR = 4.0           # interior-penalty constant for DFEM faces
MARSHAK_KAPPA = 0.5               # LO boundary coefficient before closure
MIN_CLOSURE_FLUX = 1.0e-14        # below this, NDA closure falls back to diffusion

# ---------------------------------------------------------------------------
# Iteration defaults
# ---------------------------------------------------------------------------
ERR_K_TOL = 1.0e-6
ERR_PHI_TOL = 1.0e-5
MAX_EIGEN_ITERATIONS = 500
MG_TOL = 1.0e-7
MAX_MG_SWEEPS = 200
IG_TOL = 1.0e-8
MAX_IG_ITERATIONS = 2000
K_INIT = 1.0

# ---------------------------------------------------------------------------
# Linear algebra defaults
# ---------------------------------------------------------------------------
LINEAR_SOLVER = 'direct'
PRECONDITIONER = 'ilu'
LINEAR_SOLVER_RTOL = 1.0e-12
LINEAR_SOLVER_MAXITER = 1000

# ---------------------------------------------------------------------------
# Shannon entropy mesh (coarse bins over the domain)
# ---------------------------------------------------------------------------
ENTROPY_NX = 10
ENTROPY_NY = 10
