"""
PWM Channel Module

This module provides a wrapper around the Linux sysfs PWM interface
(/sys/class/pwm) for exporting a channel and driving its registers.
"""

import errno
import logging
import os
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

class Polarity(Enum):
    """PWM signal polarity as written to the sysfs polarity file"""
    NORMAL = "normal"
    INVERTED = "inversed"

class HardwareErrorKind(Enum):
    """Classification of low-level PWM/sensor failures"""
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_BUSY = "resource_busy"
    INVALID_VALUE = "invalid_value"
    UNKNOWN = "unknown"

class HardwareError(Exception):
    """Base exception for PWM hardware errors"""
    kind = HardwareErrorKind.UNKNOWN

    @classmethod
    def from_os_error(cls, path: str, error: OSError) -> "HardwareError":
        """Build the matching HardwareError subclass for an OSError

        Args:
            path: sysfs file that was being accessed
            error: Original OSError

        Returns:
            HardwareError instance classified by errno
        """
        message = f"{path}: {error.strerror or error}"
        if error.errno in (errno.EACCES, errno.EPERM):
            return PermissionDeniedError(message)
        if error.errno == errno.EBUSY:
            return ResourceBusyError(message)
        if error.errno in (errno.EINVAL, errno.ERANGE):
            return InvalidValueError(message)
        return HardwareError(message)

class PermissionDeniedError(HardwareError):
    """Raised when the current user may not write a PWM file"""
    kind = HardwareErrorKind.PERMISSION_DENIED

class ResourceBusyError(HardwareError):
    """Raised when the PWM chip or channel is in use"""
    kind = HardwareErrorKind.RESOURCE_BUSY

class InvalidValueError(HardwareError):
    """Raised when the driver rejects a register value"""
    kind = HardwareErrorKind.INVALID_VALUE


class PWMChannel:
    """Base class for a single PWM output channel.

    Every operation may raise HardwareError.
    """

    def chip_exists(self) -> bool:
        raise NotImplementedError

    def export(self) -> None:
        raise NotImplementedError

    def unexport(self) -> None:
        raise NotImplementedError

    def is_exported(self) -> bool:
        raise NotImplementedError

    def set_enable(self, enabled: bool) -> None:
        raise NotImplementedError

    def set_period(self, period_ns: int) -> None:
        raise NotImplementedError

    def set_duty_cycle(self, duty_cycle_ns: int) -> None:
        raise NotImplementedError

    def set_polarity(self, polarity: Polarity) -> None:
        raise NotImplementedError

    def read_enable(self) -> bool:
        raise NotImplementedError

    def read_period(self) -> int:
        raise NotImplementedError

    def read_duty_cycle(self) -> int:
        raise NotImplementedError

    def read_polarity(self) -> Polarity:
        raise NotImplementedError

    def read_npwm(self) -> int:
        raise NotImplementedError

    def read_max_supported_duty_cycle(self) -> int:
        """Find the largest duty cycle the driver accepts.

        Writes the current period as duty cycle and falls back to
        period - 100 ns when the driver rejects it. The accepted value
        stays written on the channel.

        Returns:
            Maximum duty cycle in nanoseconds

        Raises:
            HardwareError: If neither value is accepted
        """
        period = self.read_period()
        try:
            self.set_duty_cycle(period)
            return period
        except HardwareError as e:
            logger.warning(f"Duty cycle equal to period ({period} ns) rejected: {e}")

        fallback = period - 100
        self.set_duty_cycle(fallback)
        return fallback


class SysfsPWMChannel(PWMChannel):
    """Drives a PWM channel through the kernel sysfs interface.

    See https://www.kernel.org/doc/Documentation/pwm.txt for the file layout:

        <pwm_root>/<chip>/export
        <pwm_root>/<chip>/unexport
        <pwm_root>/<chip>/npwm
        <pwm_root>/<chip>/<channel>/{enable,period,duty_cycle,polarity}

    Failed writes are classified from errno into HardwareError subclasses.
    If cache_root is given, the error text of the most recent failure per
    attribute is kept in <cache_root>/<attribute>.cache.
    """

    def __init__(self, chip: str = "pwmchip0", channel: str = "pwm0",
                 pwm_root: str = "/sys/class/pwm/", cache_root: Optional[str] = None):
        """Initialize sysfs channel

        Args:
            chip: PWM controller name (e.g. "pwmchip0")
            channel: PWM channel name (e.g. "pwm0")
            pwm_root: Root of the sysfs PWM class
            cache_root: Directory for write-error cache files, or None
        """
        self.chip = chip
        self.channel = channel
        self.chip_path = os.path.join(pwm_root, chip)
        self.channel_path = os.path.join(self.chip_path, channel)
        self.cache_root = cache_root

    @property
    def channel_number(self) -> int:
        """Numeric index written to export/unexport"""
        return int(self.channel[len("pwm"):])

    def _record_error(self, name: str, error: HardwareError) -> None:
        if self.cache_root is None:
            return
        try:
            os.makedirs(self.cache_root, exist_ok=True)
            with open(os.path.join(self.cache_root, f"{name}.cache"), "w") as f:
                f.write(f"{error}\n")
        except OSError as e:
            logger.debug(f"Could not record error for {name}: {e}")

    def _write(self, path: str, value) -> None:
        """Write a value to a sysfs file

        Raises:
            HardwareError: If the write fails
        """
        name = os.path.basename(path)
        logger.debug(f"Writing {value} to {path}")
        try:
            with open(path, "w") as f:
                f.write(str(value))
        except OSError as e:
            error = HardwareError.from_os_error(path, e)
            self._record_error(name, error)
            raise error from e

    def _read(self, path: str) -> str:
        """Read a sysfs file

        Raises:
            HardwareError: If the read fails
        """
        try:
            with open(path) as f:
                return f.read().strip()
        except OSError as e:
            raise HardwareError.from_os_error(path, e) from e

    def _read_int(self, path: str) -> int:
        value = self._read(path)
        try:
            return int(value)
        except ValueError:
            raise InvalidValueError(f"{path}: unexpected value {value!r}")

    def chip_exists(self) -> bool:
        return os.path.isdir(self.chip_path)

    def is_exported(self) -> bool:
        return os.path.isdir(self.channel_path)

    def export(self) -> None:
        self._write(os.path.join(self.chip_path, "export"), self.channel_number)

    def unexport(self) -> None:
        self._write(os.path.join(self.chip_path, "unexport"), self.channel_number)

    def set_enable(self, enabled: bool) -> None:
        self._write(os.path.join(self.channel_path, "enable"), 1 if enabled else 0)

    def set_period(self, period_ns: int) -> None:
        self._write(os.path.join(self.channel_path, "period"), int(period_ns))

    def set_duty_cycle(self, duty_cycle_ns: int) -> None:
        self._write(os.path.join(self.channel_path, "duty_cycle"), int(duty_cycle_ns))

    def set_polarity(self, polarity: Polarity) -> None:
        self._write(os.path.join(self.channel_path, "polarity"), polarity.value)

    def read_enable(self) -> bool:
        value = self._read_int(os.path.join(self.channel_path, "enable"))
        if value not in (0, 1):
            raise InvalidValueError(f"Unexpected enable state: {value}")
        return value == 1

    def read_period(self) -> int:
        return self._read_int(os.path.join(self.channel_path, "period"))

    def read_duty_cycle(self) -> int:
        return self._read_int(os.path.join(self.channel_path, "duty_cycle"))

    def read_polarity(self) -> Polarity:
        value = self._read(os.path.join(self.channel_path, "polarity"))
        try:
            return Polarity(value)
        except ValueError:
            raise InvalidValueError(f"Unexpected polarity: {value!r}")

    def read_npwm(self) -> int:
        return self._read_int(os.path.join(self.chip_path, "npwm"))

    def __repr__(self) -> str:
        return f"SysfsPWMChannel({self.chip!r}, {self.channel!r})"
