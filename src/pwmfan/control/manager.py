"""
Fan Control Loop Module

This module provides the main control loop logic for regulating the
fan duty cycle based on temperature readings.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..pwm import HardwareError, PWMChannel, ThermalZoneSensor
from .controller import DutyCycleBounds, DutyCycleController
from .window import ThermalWindow

logger = logging.getLogger(__name__)

class ControlMode(Enum):
    """Action taken by the control loop on a tick"""
    OFF = "off"                         # duty cycle forced to 0
    SATURATED_LOW = "saturated_low"     # duty cycle forced to bounds.min
    SATURATED_HIGH = "saturated_high"   # duty cycle forced to bounds.max
    CONTROLLED = "controlled"           # controller output applied
    HOLD = "hold"                       # nothing written this tick
    FULL_SPEED = "full_speed"           # monitoring disabled

@dataclass(frozen=True)
class ThermalThresholds:
    """Absolute temperature thresholds in Celsius.

    Attributes:
        off: At or below, the fan is turned off
        on: At or above, the fan is regulated
        low: At or below (while regulated), the minimum duty cycle is used
        high: At or above, the maximum duty cycle is used
    """
    off: int
    on: int
    low: int
    high: int

    def __post_init__(self):
        if self.on <= self.off:
            raise ValueError(
                f"on threshold ({self.on}°C) must be greater than off threshold ({self.off}°C)")


def select_mode(latest: int, thresholds: ThermalThresholds, history_length: int) -> ControlMode:
    """Pick the control mode for the latest temperature sample.

    Between the off and on thresholds (the dead zone) and on the first
    sample inside the controlled band nothing is written.

    Args:
        latest: Latest temperature sample
        thresholds: Thermal thresholds
        history_length: Number of samples in the thermal window

    Returns:
        ControlMode for this tick
    """
    if latest <= thresholds.off:
        return ControlMode.OFF
    if latest >= thresholds.on:
        if latest <= thresholds.low:
            return ControlMode.SATURATED_LOW
        if latest >= thresholds.high:
            return ControlMode.SATURATED_HIGH
        if history_length > 1:
            return ControlMode.CONTROLLED
    return ControlMode.HOLD


class ControlLoop:
    """Runs the sense, decide, actuate and wait cycle until cancelled"""

    def __init__(self, channel: PWMChannel, sensor: Optional[ThermalZoneSensor],
                 controller: DutyCycleController, thresholds: ThermalThresholds,
                 bounds: DutyCycleBounds, max_duty_cycle: int, window_capacity: int = 6,
                 interval: float = 10, monitoring: bool = True,
                 cancel_event: Optional[threading.Event] = None,
                 initial_duty_cycle: Optional[int] = None):
        """Initialize control loop

        Args:
            channel: PWM channel driving the fan
            sensor: Temperature sensor, may be None when monitoring is disabled
            controller: Controller used inside the controlled band
            thresholds: Thermal thresholds
            bounds: Duty cycle bounds in ns
            max_duty_cycle: Largest duty cycle accepted by the channel (ns)
            window_capacity: Number of samples kept in the thermal window
            interval: Seconds between ticks
            monitoring: If False, run the fan at full speed all the time
            cancel_event: Event that stops the loop when set
            initial_duty_cycle: Duty cycle already on the channel (ns), used
                when it cannot be read back
        """
        if monitoring and sensor is None:
            raise ValueError("A sensor is required when monitoring is enabled")

        self.channel = channel
        self.sensor = sensor
        self.controller = controller
        self.thresholds = thresholds
        self.bounds = bounds
        self.max_duty_cycle = max_duty_cycle
        self.interval = interval
        self.monitoring = monitoring
        self.cancel_event = cancel_event or threading.Event()
        self.window = ThermalWindow(window_capacity)

        # Last duty cycle known to be on the channel
        self.duty_cycle: Optional[int] = initial_duty_cycle
        self.mode: Optional[ControlMode] = None
        self._running = False

    def _write_duty_cycle(self, duty_cycle: int) -> bool:
        """Write a duty cycle, discarding failures

        Returns:
            True if the write succeeded
        """
        try:
            self.channel.set_duty_cycle(duty_cycle)
        except HardwareError as e:
            logger.warning(f"Failed to set duty cycle to {duty_cycle} ns: {e}")
            return False
        self.duty_cycle = duty_cycle
        return True

    def _current_duty_cycle(self) -> Optional[int]:
        """Duty cycle currently on the device, or the last one written"""
        try:
            return self.channel.read_duty_cycle()
        except HardwareError as e:
            logger.warning(f"Failed to read duty cycle: {e}")
            return self.duty_cycle

    def _set_mode(self, mode: ControlMode) -> None:
        if mode != self.mode:
            logger.info(f"Control mode: {mode.value}")
        self.mode = mode

    def tick(self) -> ControlMode:
        """Run one iteration of the control loop

        Returns:
            Mode applied on this tick
        """
        if not self.monitoring:
            self._write_duty_cycle(self.max_duty_cycle)
            self._set_mode(ControlMode.FULL_SPEED)
            return ControlMode.FULL_SPEED

        temperature = self.sensor.read_temperature()
        if temperature is None:
            logger.warning("No temperature reading, skipping this tick")
            self._set_mode(ControlMode.HOLD)
            return ControlMode.HOLD

        self.window.push(temperature)
        mode = select_mode(temperature, self.thresholds, len(self.window))
        logger.debug(f"Temperature {temperature}°C, window {self.window.samples()} -> {mode.value}")

        if mode == ControlMode.OFF:
            self._write_duty_cycle(0)
        elif mode == ControlMode.SATURATED_LOW:
            self._write_duty_cycle(self.bounds.min)
        elif mode == ControlMode.SATURATED_HIGH:
            self._write_duty_cycle(self.bounds.max)
        elif mode == ControlMode.CONTROLLED:
            current = self.duty_cycle
            if self.controller.uses_current_duty_cycle:
                current = self._current_duty_cycle()
            if current is None and self.controller.uses_current_duty_cycle:
                logger.warning("Current duty cycle unknown, skipping controller")
                mode = ControlMode.HOLD
            else:
                duty_cycle = self.controller.compute(self.window, self.bounds, current)
                if self.controller.saturated:
                    logger.debug(f"{self.controller.name} output saturated at {duty_cycle} ns")
                self._write_duty_cycle(duty_cycle)

        self._set_mode(mode)
        return mode

    def run(self) -> None:
        """Run ticks until the cancel event is set"""
        if self.monitoring:
            logger.info(f"Running fan in temperature monitor mode with the {self.controller.name} controller")
        else:
            logger.info("Running fan at full speed until stopped")

        self._running = True
        try:
            while not self.cancel_event.is_set():
                self.tick()
                if self.cancel_event.wait(self.interval):
                    break
        finally:
            self._running = False
        logger.info("Control loop stopped")

    def stop(self) -> None:
        self.cancel_event.set()

    def get_status(self) -> Dict[str, Any]:
        """Get current control status

        Returns:
            Dictionary with current status information
        """
        return {
            "running": self._running,
            "monitoring": self.monitoring,
            "mode": self.mode.value if self.mode else None,
            "controller": self.controller.name,
            "temperatures": self.window.samples(),
            "mean": self.window.mean() if len(self.window) else None,
            "duty_cycle": self.duty_cycle,
            "bounds": {"min": self.bounds.min, "max": self.bounds.max}
        }
