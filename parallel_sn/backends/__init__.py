"""
Backend registry with automatic selection.

Priority order: CPU process pool when more than one worker is requested,
otherwise the serial backend.
"""
from typing import Optional

from ..errors import ConfigurationError
from .base import AssemblyBackend
from .cpu import CPUBackend
from .serial import SerialBackend


def list_backends():
    """List all available backends with their status."""
    backends = []

    serial = SerialBackend()
    backends.append(('Serial', serial.get_name(), serial.is_available()))

    cpu = CPUBackend()
    backends.append(('CPU', cpu.get_name(), cpu.is_available()))

    return backends


def auto_select_backend(n_workers: Optional[int] = 1) -> AssemblyBackend:
    """Pick the serial backend for one worker, the CPU pool otherwise.

    ``None`` requests one worker per core.
    """
    if n_workers == 1:
        return SerialBackend()
    return CPUBackend(n_workers)


def get_backend(name: str, n_workers: Optional[int] = 1) -> AssemblyBackend:
    """Get a specific backend by name.

    Args:
        name: 'serial', 'cpu', or 'auto'
        n_workers: worker count for the CPU backend

    Raises:
        ConfigurationError if the backend name is unknown
    """
    name = name.lower()

    if name == 'auto':
        return auto_select_backend(n_workers)
    elif name == 'serial':
        return SerialBackend()
    elif name == 'cpu':
        return CPUBackend(n_workers)
    else:
        raise ConfigurationError(f"Unknown backend: {name}. Choose from: serial, cpu, auto")


__all__ = [
    'AssemblyBackend', 'CPUBackend', 'SerialBackend',
    'list_backends', 'auto_select_backend', 'get_backend',
]
