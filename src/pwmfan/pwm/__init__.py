"""
PWM Hardware Package for pwmfan

This package wraps the Linux sysfs interfaces needed to drive a cooling
fan: the PWM class for the fan signal and the thermal class for the chip
temperature.

Key Components:
- SysfsPWMChannel: export/unexport and register access for one PWM channel
- ThermalZoneSensor: discovery and reading of a thermal zone
- HardwareError: classified failure raised by every channel operation

Example Usage:
    >>> from pwmfan.pwm import SysfsPWMChannel, ThermalZoneSensor
    >>>
    >>> channel = SysfsPWMChannel("pwmchip0", "pwm0")
    >>> channel.export()
    >>> channel.set_period(25000000)
    >>> channel.set_duty_cycle(12500000)
    >>> channel.set_enable(True)
    >>>
    >>> sensor = ThermalZoneSensor("(soc|cpu)")
    >>> sensor.discover()
    >>> sensor.read_temperature()

Note:
    Writing to /sys/class/pwm usually requires root access.
"""

from .channel import (
    HardwareError,
    HardwareErrorKind,
    InvalidValueError,
    PermissionDeniedError,
    Polarity,
    PWMChannel,
    ResourceBusyError,
    SysfsPWMChannel,
)
from .sensors import ThermalZoneSensor

__all__ = [
    'HardwareError',
    'HardwareErrorKind',
    'InvalidValueError',
    'PermissionDeniedError',
    'Polarity',
    'PWMChannel',
    'ResourceBusyError',
    'SysfsPWMChannel',
    'ThermalZoneSensor'
]
