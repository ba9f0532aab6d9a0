from unittest import mock

import psutil
import pytest

from memory_composer import config
from memory_composer.errors import InvalidParameter, SurfaceAllocationFailure
from memory_composer.surface import allocated_surface, check_surface_budget, new_surface, surface_bytes


def test_surface_bytes():
    assert surface_bytes(10, 10) == 400
    assert surface_bytes(10, 10, "L") == 100


def test_new_surface_is_filled():
    surface = new_surface(20, 10, "#ff0000")
    assert surface.size == (20, 10)
    assert surface.getpixel((5, 5)) == (255, 0, 0)


def test_dimension_limit():
    with pytest.raises(SurfaceAllocationFailure):
        check_surface_budget(config.MAX_CANVAS_DIMENSION + 1, 10)
    with pytest.raises(InvalidParameter):
        check_surface_budget(0, 10)


def test_memory_budget_is_enforced():
    memory = mock.Mock(available=1000)
    with mock.patch("memory_composer.surface.psutil.virtual_memory", return_value=memory):
        with pytest.raises(SurfaceAllocationFailure):
            new_surface(100, 100)


def test_memory_check_failure_is_logged(caplog):
    with mock.patch("memory_composer.surface.psutil.virtual_memory", side_effect=psutil.Error("boom")):
        check_surface_budget(10, 10)
    assert "Memory check failed" in caplog.text


def test_allocated_surface_is_released_on_error():
    surface = mock.Mock()
    with mock.patch("memory_composer.surface.new_surface", return_value=surface):
        with pytest.raises(RuntimeError):
            with allocated_surface(10, 10):
                raise RuntimeError("drawing failed")
    surface.close.assert_called_once()
