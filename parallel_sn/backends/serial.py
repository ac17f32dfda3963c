"""Single-process backend: one partition, everything inline."""
from typing import Callable, List, Sequence

from .base import AssemblyBackend


class SerialBackend(AssemblyBackend):
    """Runs every assembly pass in the driver process."""

    @property
    def n_workers(self) -> int:
        return 1

    def map(self, func: Callable, args_list: Sequence) -> List:
        return [func(args) for args in args_list]

    def get_name(self) -> str:
        return "Serial (1 process, Numba JIT)"

    def is_available(self) -> bool:
        return True
