"""
Fan Lifecycle Module

This module performs the one-time startup sequence of the PWM channel
(export, defaults, maximum duty cycle probing and warmup) and the
matching shutdown sequence around the control loop.
"""

import logging
import os
import shutil
import threading
import time
from typing import Optional

from ..config import FanConfig
from ..pwm import (
    HardwareError,
    HardwareErrorKind,
    InvalidValueError,
    Polarity,
    PWMChannel,
    SysfsPWMChannel,
    ThermalZoneSensor,
)
from .controller import DutyCycleBounds, DutyCycleController, PIDController, create_controller
from .manager import ControlLoop, ThermalThresholds

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# Period fallback: lower the period by this much (ns) per attempt ...
PERIOD_DECREMENT = 100
# ... while the candidate stays above this floor (ns)
PERIOD_FLOOR = 100

class StartupError(Exception):
    """Raised when the channel cannot be brought to a known state"""
    pass

class StartupCancelled(Exception):
    """Raised when cancellation is requested during startup"""
    pass

class FanLifecycleManager:
    """Brings the fan up, runs the control loop and tears it down"""

    # Pause after register changes that need the driver to settle
    settle_seconds: float = 1.0

    def __init__(self, config: FanConfig, channel: Optional[PWMChannel] = None,
                 sensor: Optional[ThermalZoneSensor] = None,
                 controller: Optional[DutyCycleController] = None,
                 cancel_event: Optional[threading.Event] = None):
        """Initialize lifecycle manager

        Args:
            config: Validated configuration
            channel: PWM channel (defaults to the sysfs channel from config)
            sensor: Temperature sensor (defaults to the thermal zone from config)
            controller: Duty cycle controller (defaults to the one from config)
            cancel_event: Event set when the process should stop
        """
        self.config = config
        self.channel = channel or SysfsPWMChannel(
            chip=config.chip,
            channel=config.channel,
            pwm_root=config.pwm_root,
            cache_root=config.cache_root
        )
        self.sensor = sensor or ThermalZoneSensor(
            pattern=config.monitored_device_pattern,
            thermal_root=config.thermal_root
        )
        self.controller = controller or create_controller(config)
        self.cancel_event = cancel_event or threading.Event()

        self.period: Optional[int] = None
        self.max_duty_cycle: Optional[int] = None
        self.warmup_duty_cycle: Optional[int] = None
        self.initial_temperature: Optional[int] = None
        self.monitoring = False
        self.loop: Optional[ControlLoop] = None

        self._shutdown_lock = threading.Lock()
        self._shutdown_done = False

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise StartupCancelled()

    def _wait(self, seconds: float) -> None:
        """Sleep, returning early if cancellation is requested

        Raises:
            StartupCancelled: If the cancel event is set
        """
        if self.cancel_event.wait(seconds):
            raise StartupCancelled()

    def _check_chip(self) -> None:
        if not self.channel.chip_exists():
            raise StartupError(f"The sysfs interface for '{self.config.chip}' is not accessible")
        logger.info(f"Working with the sysfs interface for '{self.config.chip}'")
        try:
            logger.info(f"'{self.config.chip}' supports {self.channel.read_npwm()} channel(s)")
        except HardwareError as e:
            logger.warning(f"Could not read the number of channels: {e}")

    def _export(self) -> None:
        if self.channel.is_exported():
            logger.warning(f"'{self.config.channel}' channel is already accessible")
            return

        try:
            self.channel.export()
        except HardwareError as e:
            if e.kind == HardwareErrorKind.PERMISSION_DENIED:
                logger.error(f"This user does not have permission to use channel '{self.config.channel}'")
            elif e.kind == HardwareErrorKind.RESOURCE_BUSY:
                logger.error(f"'{self.config.chip}' was busy while exporting '{self.config.channel}'")
            else:
                logger.error(f"Unknown error while exporting channel '{self.config.channel}'")
            raise
        self._wait(self.settle_seconds)

    def _apply_period(self, period: int) -> int:
        """Write the period, lowering it until the driver accepts one

        Returns:
            Period in ns that was accepted

        Raises:
            StartupError: If no period above the floor is accepted
            StartupCancelled: If cancellation is requested while lowering
        """
        try:
            self.channel.set_period(period)
            return period
        except InvalidValueError as e:
            logger.warning(f"The period provided ({period} ns) is not acceptable: {e}")
            logger.warning(f"Trying to lower it by {PERIOD_DECREMENT} ns decrements. This may take a while...")

        candidate = period - PERIOD_DECREMENT
        while candidate > PERIOD_FLOOR:
            self._check_cancelled()
            try:
                self.channel.set_period(candidate)
                logger.info(f"Period lowered to {candidate} ns")
                return candidate
            except InvalidValueError:
                candidate -= PERIOD_DECREMENT
        raise StartupError("Unable to set an appropriate value for the period")

    def _reset_defaults(self) -> None:
        """Disable the channel if needed and apply default registers"""
        try:
            enabled = self.channel.read_enable()
        except HardwareError as e:
            raise StartupError(f"Unable to read the fan enable status: {e}")

        if enabled:
            logger.warning("The fan is already enabled. Will disable it.")
            self.channel.set_enable(False)
            self._wait(self.settle_seconds)

        try:
            self.channel.set_duty_cycle(0)
        except InvalidValueError:
            # Use small positive values instead
            self.channel.set_period(100)
            self.channel.set_duty_cycle(10)

        self.period = self._apply_period(self.config.period_ns)
        self.channel.set_polarity(Polarity.NORMAL)

        try:
            logger.info(f"Default polarity: {self.channel.read_polarity().value}")
            logger.info(f"Default period: {self.channel.read_period()} ns")
            logger.info(f"Default duty cycle: {self.channel.read_duty_cycle()} ns")
        except HardwareError as e:
            logger.warning(f"Could not read back channel defaults: {e}")

    def _warmup(self) -> None:
        """Probe max duty cycle and run at full speed for the startup time"""
        try:
            self.max_duty_cycle = self.channel.read_max_supported_duty_cycle()
        except HardwareError as e:
            raise StartupError(f"Unable to set max duty_cycle: {e}")
        logger.info(f"Max duty cycle: {self.max_duty_cycle} ns")

        logger.info(f"Running fan at full speed for the next {self.config.startup_seconds} seconds...")
        self.channel.set_enable(True)
        self._wait(self.config.startup_seconds)

        half = self.max_duty_cycle // 2
        self.channel.set_duty_cycle(half)
        self.warmup_duty_cycle = half
        logger.info(f"Initialization done. Duty cycle at 50% now: {half} ns")
        self._wait(self.settle_seconds)

    def _setup_monitoring(self) -> None:
        """Find the temperature sensor and capture the initial temperature"""
        if self.config.full_speed_override:
            logger.warning("Full speed mode requested")
        elif self.sensor.discover():
            self.initial_temperature = self.sensor.read_temperature()
            logger.info(f"Current '{self.config.monitored_device_pattern}' temp is: "
                        f"{self.initial_temperature} Celsius")
            self.monitoring = True
        if not self.monitoring:
            logger.warning(f"Setting fan to operate independent of the "
                           f"'{self.config.monitored_device_pattern}' temperature")
            return

        if isinstance(self.controller, PIDController) and self.initial_temperature is not None:
            self.controller.set_initial_temperature(self.initial_temperature)

    def startup(self) -> ControlLoop:
        """Run the startup sequence and build the control loop

        Returns:
            Control loop ready to run

        Raises:
            HardwareError: If a startup write fails
            StartupError: If the channel cannot be brought to a known state
            StartupCancelled: If cancellation was requested
        """
        logger.info("Starting fan initialization")
        for step in (self._check_chip, self._export, self._reset_defaults,
                     self._warmup, self._setup_monitoring):
            self._check_cancelled()
            step()

        try:
            bounds = DutyCycleBounds.from_percentages(
                self.max_duty_cycle,
                self.config.duty_min_percent,
                self.config.duty_max_percent
            )
        except ValueError as e:
            raise StartupError(f"Unusable duty cycle bounds: {e}")
        logger.info(f"Duty cycle bounds: {bounds.min}-{bounds.max} ns")

        self.loop = ControlLoop(
            channel=self.channel,
            sensor=self.sensor if self.monitoring else None,
            controller=self.controller,
            thresholds=ThermalThresholds(
                off=self.config.temp_off,
                on=self.config.temp_on,
                low=self.config.temp_low,
                high=self.config.temp_high
            ),
            bounds=bounds,
            max_duty_cycle=self.max_duty_cycle,
            window_capacity=self.config.window_capacity,
            interval=self.config.loop_interval_seconds,
            monitoring=self.monitoring,
            cancel_event=self.cancel_event,
            initial_duty_cycle=self.warmup_duty_cycle
        )
        return self.loop

    def shutdown(self) -> None:
        """Stop the fan and release the channel.

        Runs at most once; later calls return immediately. Every step is
        best-effort so one failure does not prevent the others.
        """
        with self._shutdown_lock:
            if self._shutdown_done:
                logger.debug("Shutdown already performed")
                return
            self._shutdown_done = True

        logger.info("Cleaning up")
        if self.channel.is_exported():
            logger.info(f"Freeing up the channel '{self.config.channel}' controlled by '{self.config.chip}'")
            try:
                self.channel.set_duty_cycle(0)
            except HardwareError as e:
                logger.warning(f"Failed to set duty cycle to 0: {e}")
            try:
                self.channel.set_enable(False)
            except HardwareError as e:
                logger.warning(f"Failed to disable channel: {e}")
            time.sleep(self.settle_seconds)
            try:
                self.channel.unexport()
            except HardwareError as e:
                logger.warning(f"Failed to unexport channel: {e}")
            time.sleep(self.settle_seconds)

            if self.channel.is_exported():
                logger.warning(f"Channel '{self.config.channel}' is still exported but it should not be")
            else:
                logger.info(f"Channel '{self.config.channel}' was successfully disabled")
        else:
            logger.warning("There is no channel to disable")

        cache_root = self.config.cache_root
        if cache_root and os.path.isdir(cache_root):
            try:
                shutil.rmtree(cache_root)
            except OSError as e:
                logger.warning(f"Failed to remove cache directory {cache_root}: {e}")

    def run(self) -> int:
        """Start up, run the control loop until cancelled and shut down

        Returns:
            Process exit code: 0 on graceful cancellation, 1 on fatal failure
        """
        try:
            self.startup()
            self.loop.run()
            return EXIT_SUCCESS
        except StartupCancelled:
            logger.info("Cancelled during startup")
            return EXIT_SUCCESS
        except (HardwareError, StartupError) as e:
            logger.error(f"Fan initialization failed: {e}")
            return EXIT_FAILURE
        finally:
            self.shutdown()
