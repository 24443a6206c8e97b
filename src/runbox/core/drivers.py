"""Trusted-execution driver modes and the host devices they require.

Two hardware/kernel generations expose the enclave devices at different
paths, so the mode selected for a run decides which devices get bound into
the container.
"""

from __future__ import annotations

from enum import Enum


class DriverMode(str, Enum):
    """Security driver mode requested for a run."""

    NONE = "NONE"
    LEGACY = "LEGACY"  # out-of-tree driver
    NATIVE = "NATIVE"  # in-kernel driver (5.11+)


_DEVICES: dict[DriverMode, tuple[str, ...]] = {
    DriverMode.NONE: (),
    DriverMode.LEGACY: ("/dev/isgx",),
    DriverMode.NATIVE: ("/dev/sgx/enclave", "/dev/sgx/provision"),
}


def devices_for(mode: DriverMode | None) -> tuple[str, ...]:
    """Return the fixed, ordered device paths for a driver mode.

    ``None`` is treated as :attr:`DriverMode.NONE`.
    """
    if mode is None:
        return ()
    return _DEVICES[DriverMode(mode)]


def is_driver_mode_active(mode: DriverMode | None) -> bool:
    """Return True unless the mode is ``None`` or :attr:`DriverMode.NONE`."""
    return mode is not None and DriverMode(mode) != DriverMode.NONE
