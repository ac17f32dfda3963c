"""
parallel_sn - Parallel Finite Element Discrete-Ordinates Neutron Transport

Multigroup S_N transport on structured 1D/2D meshes:
  - SAAF and even-parity weak forms (CFEM; even parity also DFEM)
  - NDA low-order acceleration
  - Power iteration for k-eigenvalue problems, fixed-source driver

Assembly runs over owned-cell partitions on a multiprocessing pool with
Numba JIT scatter kernels.
"""
__version__ = "0.1.0"
