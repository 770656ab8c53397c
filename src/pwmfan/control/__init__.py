"""
Control package for pwmfan

This package provides modules for fan duty cycle control logic,
including the thermal window, controllers, the control loop and the
startup/shutdown lifecycle.
"""

from .window import ThermalWindow
from .controller import (
    DutyCycleBounds,
    DutyCycleController,
    LogisticController,
    PIDController,
    create_controller
)
from .manager import ControlLoop, ControlMode, ThermalThresholds, select_mode
from .lifecycle import FanLifecycleManager, StartupError

__all__ = [
    'ThermalWindow',
    'DutyCycleBounds',
    'DutyCycleController',
    'LogisticController',
    'PIDController',
    'create_controller',
    'ControlLoop',
    'ControlMode',
    'ThermalThresholds',
    'select_mode',
    'FanLifecycleManager',
    'StartupError'
]
