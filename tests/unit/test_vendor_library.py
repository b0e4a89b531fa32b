"""
Tests for the reference-counted vendor library handle.

A MagicMock stands in for the ctypes library object; its functions return 0
(success) unless a test says otherwise.
"""

from unittest.mock import MagicMock

import pytest

from labserial.drivers import VendorLibrary, VendorLibraryError


@pytest.fixture
def fake_lib():
    lib = MagicMock()
    lib.initLib.return_value = 0
    lib.closeLib.return_value = 0
    return lib


@pytest.fixture
def loader(fake_lib):
    return MagicMock(return_value=fake_lib)


class TestRefcount:

    def test_first_acquire_loads_and_initialises(self, loader, fake_lib):
        vendor = VendorLibrary("dalib", init_function="initLib", loader=loader)
        assert vendor.acquire() is fake_lib
        loader.assert_called_once_with("dalib")
        fake_lib.initLib.assert_called_once_with()
        assert vendor.refcount == 1

    def test_later_acquires_share_the_load(self, loader, fake_lib):
        vendor = VendorLibrary("dalib", init_function="initLib", loader=loader)
        vendor.acquire()
        vendor.acquire()
        assert loader.call_count == 1
        assert fake_lib.initLib.call_count == 1
        assert vendor.refcount == 2

    def test_teardown_only_on_last_release(self, loader, fake_lib):
        vendor = VendorLibrary("dalib", teardown_function="closeLib", loader=loader)
        vendor.acquire()
        vendor.acquire()
        vendor.release()
        fake_lib.closeLib.assert_not_called()
        assert vendor.is_loaded
        vendor.release()
        fake_lib.closeLib.assert_called_once_with()
        assert not vendor.is_loaded

    def test_reacquire_after_full_release_loads_again(self, loader):
        vendor = VendorLibrary("dalib", loader=loader)
        vendor.acquire()
        vendor.release()
        vendor.acquire()
        assert loader.call_count == 2

    def test_unmatched_release_only_warns(self, loader, caplog):
        vendor = VendorLibrary("dalib", loader=loader)
        vendor.release()
        assert vendor.refcount == 0
        assert "without matching acquire" in caplog.text


class TestFailures:

    def test_load_failure(self):
        def missing(name):
            raise OSError(f"{name}: cannot open shared object file")

        vendor = VendorLibrary("dalib", loader=missing)
        with pytest.raises(VendorLibraryError, match="Cannot load dalib"):
            vendor.acquire()
        assert vendor.refcount == 0

    def test_nonzero_init_status(self, loader, fake_lib):
        fake_lib.initLib.return_value = 7
        vendor = VendorLibrary("dalib", init_function="initLib", loader=loader)
        with pytest.raises(VendorLibraryError, match="returned 7"):
            vendor.acquire()
        assert not vendor.is_loaded
        assert vendor.refcount == 0

    def test_function_before_load(self, loader):
        with pytest.raises(VendorLibraryError, match="not loaded"):
            VendorLibrary("dalib", loader=loader).function("cbVOut")

    def test_function_lookup(self, loader, fake_lib):
        vendor = VendorLibrary("dalib", loader=loader)
        vendor.acquire()
        assert vendor.function("cbVOut") is fake_lib.cbVOut

    def test_missing_symbol(self, loader):
        lib = MagicMock(spec=["initLib"])
        loader.return_value = lib
        vendor = VendorLibrary("dalib", loader=loader)
        vendor.acquire()
        with pytest.raises(VendorLibraryError, match="no function cbVOut"):
            vendor.function("cbVOut")


class TestShared:

    def test_same_name_same_instance(self, loader):
        first = VendorLibrary.shared("dalib", loader=loader)
        assert VendorLibrary.shared("dalib") is first

    def test_different_names_are_independent(self, loader):
        assert VendorLibrary.shared("a", loader=loader) is not VendorLibrary.shared("b", loader=loader)
