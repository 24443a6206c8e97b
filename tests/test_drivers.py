"""Tests for driver mode device policy."""

import pytest

from runbox.core.drivers import DriverMode, devices_for, is_driver_mode_active


class TestDevicesFor:
    """Tests for devices_for."""

    def test_none_mode(self):
        assert devices_for(DriverMode.NONE) == ()
        assert devices_for(None) == ()

    def test_legacy_mode(self):
        assert devices_for(DriverMode.LEGACY) == ("/dev/isgx",)

    def test_native_mode_order(self):
        assert devices_for(DriverMode.NATIVE) == ("/dev/sgx/enclave", "/dev/sgx/provision")

    def test_from_string(self):
        assert devices_for("NATIVE") == devices_for(DriverMode.NATIVE)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            devices_for("SEV")


class TestIsDriverModeActive:
    """Tests for is_driver_mode_active."""

    @pytest.mark.parametrize(
        "mode, active",
        [
            (None, False),
            (DriverMode.NONE, False),
            (DriverMode.LEGACY, True),
            (DriverMode.NATIVE, True),
        ],
    )
    def test_active(self, mode, active):
        assert is_driver_mode_active(mode) is active
