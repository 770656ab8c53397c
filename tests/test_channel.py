"""
Tests for the sysfs PWM Channel module
"""

import errno
import pytest
from unittest.mock import patch, call

from pwmfan.pwm.channel import (
    HardwareError,
    HardwareErrorKind,
    InvalidValueError,
    PermissionDeniedError,
    Polarity,
    ResourceBusyError,
    SysfsPWMChannel
)

@pytest.fixture
def sysfs(tmp_path):
    """Create a fake /sys/class/pwm tree with one chip"""
    chip = tmp_path / "pwmchip0"
    chip.mkdir()
    (chip / "export").write_text("")
    (chip / "unexport").write_text("")
    (chip / "npwm").write_text("2\n")
    return tmp_path

@pytest.fixture
def exported(sysfs):
    """Create the pwm0 channel directory as the kernel does on export"""
    channel = sysfs / "pwmchip0" / "pwm0"
    channel.mkdir()
    (channel / "enable").write_text("0\n")
    (channel / "period").write_text("25000000\n")
    (channel / "duty_cycle").write_text("0\n")
    (channel / "polarity").write_text("normal\n")
    return channel

@pytest.fixture
def channel(sysfs):
    return SysfsPWMChannel("pwmchip0", "pwm0", pwm_root=str(sysfs))

# Error classification

@pytest.mark.parametrize("code, error_class, kind", [
    (errno.EACCES, PermissionDeniedError, HardwareErrorKind.PERMISSION_DENIED),
    (errno.EPERM, PermissionDeniedError, HardwareErrorKind.PERMISSION_DENIED),
    (errno.EBUSY, ResourceBusyError, HardwareErrorKind.RESOURCE_BUSY),
    (errno.EINVAL, InvalidValueError, HardwareErrorKind.INVALID_VALUE),
    (errno.ERANGE, InvalidValueError, HardwareErrorKind.INVALID_VALUE),
    (errno.EIO, HardwareError, HardwareErrorKind.UNKNOWN),
])
def test_error_classification(code, error_class, kind):
    """Test OSError errno maps to the matching HardwareError"""
    error = HardwareError.from_os_error("/sys/class/pwm/pwmchip0/export", OSError(code, "failure"))
    assert type(error) is error_class
    assert error.kind == kind
    assert "/sys/class/pwm/pwmchip0/export: failure" in str(error)

def test_write_errors_are_classified(channel, exported):
    """Test failed writes raise classified errors"""
    with patch("pwmfan.pwm.channel.open", create=True,
               side_effect=OSError(errno.EINVAL, "Invalid argument")):
        with pytest.raises(InvalidValueError, match="Invalid argument"):
            channel.set_duty_cycle(30000000)

    with patch("pwmfan.pwm.channel.open", create=True,
               side_effect=OSError(errno.EBUSY, "Device or resource busy")):
        with pytest.raises(ResourceBusyError):
            channel.export()

    with patch("pwmfan.pwm.channel.open", create=True,
               side_effect=OSError(errno.EACCES, "Permission denied")):
        with pytest.raises(PermissionDeniedError):
            channel.set_enable(True)

# Chip and export

def test_chip_and_export_state(sysfs, channel):
    """Test chip and channel directory detection"""
    assert channel.chip_exists()
    assert not channel.is_exported()
    assert channel.read_npwm() == 2

    missing = SysfsPWMChannel("pwmchip9", "pwm0", pwm_root=str(sysfs))
    assert not missing.chip_exists()

def test_export_unexport(sysfs):
    """Test export and unexport write the channel number"""
    channel = SysfsPWMChannel("pwmchip0", "pwm1", pwm_root=str(sysfs))
    assert channel.channel_number == 1

    channel.export()
    assert (sysfs / "pwmchip0" / "export").read_text() == "1"

    channel.unexport()
    assert (sysfs / "pwmchip0" / "unexport").read_text() == "1"

# Registers

def test_register_writes(channel, exported):
    """Test register setters write plain values"""
    channel.set_period(20000000)
    channel.set_duty_cycle(10000000)
    channel.set_enable(True)
    channel.set_polarity(Polarity.INVERTED)

    assert (exported / "period").read_text() == "20000000"
    assert (exported / "duty_cycle").read_text() == "10000000"
    assert (exported / "enable").read_text() == "1"
    assert (exported / "polarity").read_text() == "inversed"

    channel.set_enable(False)
    assert (exported / "enable").read_text() == "0"

def test_register_reads(channel, exported):
    """Test register getters parse values"""
    assert channel.is_exported()
    assert channel.read_period() == 25000000
    assert channel.read_duty_cycle() == 0
    assert channel.read_enable() is False
    assert channel.read_polarity() == Polarity.NORMAL

    (exported / "enable").write_text("1\n")
    assert channel.read_enable() is True

def test_register_reads_invalid(channel, exported):
    """Test unexpected register contents"""
    (exported / "enable").write_text("2\n")
    with pytest.raises(InvalidValueError, match="enable state"):
        channel.read_enable()

    (exported / "period").write_text("abc\n")
    with pytest.raises(InvalidValueError, match="unexpected value"):
        channel.read_period()

    (exported / "polarity").write_text("sideways\n")
    with pytest.raises(InvalidValueError, match="polarity"):
        channel.read_polarity()

def test_read_missing_channel(channel):
    """Test reading an unexported channel fails"""
    with pytest.raises(HardwareError):
        channel.read_period()

def test_write_error_cache(sysfs, exported, tmp_path):
    """Test failed writes are recorded in the cache directory"""
    cache = tmp_path / "cache"
    channel = SysfsPWMChannel("pwmchip0", "pwm0", pwm_root=str(sysfs), cache_root=str(cache))

    # A directory in place of the register makes the write fail
    (exported / "duty_cycle").unlink()
    (exported / "duty_cycle").mkdir()

    with pytest.raises(HardwareError):
        channel.set_duty_cycle(100)
    assert (cache / "duty_cycle.cache").exists()
    assert "duty_cycle" in (cache / "duty_cycle.cache").read_text()

# Max duty cycle probing

def test_max_duty_cycle_equals_period(channel, exported):
    """Test max duty cycle is the period when accepted"""
    assert channel.read_max_supported_duty_cycle() == 25000000
    assert (exported / "duty_cycle").read_text() == "25000000"

def test_max_duty_cycle_fallback(channel, exported):
    """Test max duty cycle falls back to period - 100"""
    with patch.object(SysfsPWMChannel, "set_duty_cycle",
                      side_effect=[InvalidValueError("rejected"), None]) as mock_set:
        assert channel.read_max_supported_duty_cycle() == 24999900
    assert mock_set.call_args_list == [call(25000000), call(24999900)]

def test_max_duty_cycle_failure(channel, exported):
    """Test both probe values rejected"""
    with patch.object(SysfsPWMChannel, "set_duty_cycle",
                      side_effect=InvalidValueError("rejected")):
        with pytest.raises(InvalidValueError):
            channel.read_max_supported_duty_cycle()
