"""Duty cycle controller implementations."""

from dataclasses import dataclass
from typing import Optional, Tuple
import logging
import math

from ..config import FanConfig
from .window import ThermalWindow

logger = logging.getLogger(__name__)

# Offset added to the post-warmup temperature when PID has no fixed setpoint
PID_IDEAL_OFFSET = 2


@dataclass(frozen=True)
class DutyCycleBounds:
    """Lowest and highest duty cycle (ns) the controllers may command."""
    min: int
    max: int

    def __post_init__(self):
        if self.min < 0:
            raise ValueError(f"Invalid min duty cycle {self.min} ns, must be >= 0")
        if self.min >= self.max:
            raise ValueError(f"min duty cycle ({self.min} ns) must be lower than max ({self.max} ns)")

    @classmethod
    def from_percentages(cls, max_duty_cycle: int, min_percent: int, max_percent: int) -> "DutyCycleBounds":
        """Derive bounds from percentages of the maximum duty cycle.

        Args:
            max_duty_cycle: Largest duty cycle accepted by the channel (ns)
            min_percent: Lower bound in percent (0-49)
            max_percent: Upper bound in percent (50-100)
        """
        return cls(
            min=(min_percent * max_duty_cycle) // 100,
            max=(max_percent * max_duty_cycle) // 100
        )

    def clamp(self, value: int) -> Tuple[int, bool]:
        """Clamp a duty cycle to the bounds.

        Returns:
            Tuple of (clamped value, whether clamping occurred)
        """
        if value < self.min:
            return self.min, True
        if value > self.max:
            return self.max, True
        return value, False


class DutyCycleController:
    """Base class for duty cycle controllers."""

    name = "base"
    # Whether compute() builds on the duty cycle currently applied
    uses_current_duty_cycle = True

    def __init__(self):
        self.saturated = False

    def compute(self, window: ThermalWindow, bounds: DutyCycleBounds,
                current_duty_cycle: Optional[int]) -> int:
        """Get the duty cycle for the current thermal window.

        Only called while the latest sample lies strictly between the low
        and high thermal thresholds and the window holds at least two
        samples.

        Args:
            window: Recent temperature samples
            bounds: Duty cycle bounds in ns
            current_duty_cycle: Duty cycle currently applied (ns), or None
                when unknown and uses_current_duty_cycle is False

        Returns:
            Duty cycle in ns, clamped to bounds
        """
        raise NotImplementedError


class LogisticController(DutyCycleController):
    """Logistic curve bound to the upper duty cycle threshold.

    The output follows L / (1 + e^(-(a/b)(x - x0))) where L is the upper
    duty cycle bound, x the latest sample and x0 the absolute distance
    between the window mean and a critical temperature. Using the mean as
    a moving mid-point damps sensor noise.
    """

    name = "logistic"
    uses_current_duty_cycle = False

    def __init__(self, critical: float = 75, a: float = 1, b: float = 10):
        """Initialize with curve constants.

        Args:
            critical: Critical temperature in Celsius
            a: Growth rate numerator (> 0)
            b: Growth rate denominator (> 0)
        """
        super().__init__()
        if a <= 0 or b <= 0:
            raise ValueError(f"Invalid logistic constants a={a}, b={b}, both must be > 0")
        self.critical = critical
        self.a = a
        self.b = b

    def curve(self, x: float, x0: float, L: float) -> int:
        """Evaluate the logistic function truncated to an integer."""
        exponent = -(self.a / self.b) * (x - x0)
        # math.exp overflows past ~709
        if exponent > 700:
            return 0
        return int(L / (1 + math.exp(exponent)))

    def compute(self, window: ThermalWindow, bounds: DutyCycleBounds, current_duty_cycle: int) -> int:
        x0 = abs(window.mean() - self.critical)
        model = self.curve(window.latest(), x0, bounds.max)
        duty_cycle, self.saturated = bounds.clamp(model)
        logger.debug(f"Logistic: x={window.latest()} x0={x0} model={model} -> {duty_cycle} ns")
        return duty_cycle


class PIDController(DutyCycleController):
    """Proportional-Integral-Derivative controller on the duty cycle.

    The controller output is added to the current duty cycle. Whenever
    the sum saturates against the bounds the accumulated integral error
    is reset to zero (anti-windup).
    """

    name = "pid"

    def __init__(self, kp: float, ki: float, kd: float, ideal: Optional[float] = None):
        """Initialize PID controller

        Args:
            kp: Proportional gain
            ki: Integral gain
            kd: Derivative gain
            ideal: Fixed target temperature, or None to derive it from the
                temperature measured after startup
        """
        super().__init__()
        self.kp = kp
        self.ki = ki
        self.kd = kd
        self.ideal = ideal
        self.integral_error = 0

    def set_initial_temperature(self, temperature: int) -> None:
        """Use temperature + offset as target unless a fixed one was given"""
        if self.ideal is None:
            self.ideal = temperature + PID_IDEAL_OFFSET
            logger.info(f"PID target temperature set to {self.ideal}°C")

    def reset(self) -> None:
        self.integral_error = 0

    def compute(self, window: ThermalWindow, bounds: DutyCycleBounds, current_duty_cycle: int) -> int:
        latest = window.latest()
        if self.ideal is None:
            logger.warning("No reference temperature captured, using the latest sample")
            self.set_initial_temperature(latest)

        previous = window.previous()
        p_error = latest - self.ideal
        self.integral_error += p_error
        d_error = latest - previous if previous is not None else 0

        output = int(self.kp * p_error + self.ki * self.integral_error + self.kd * d_error)
        duty_cycle, self.saturated = bounds.clamp(current_duty_cycle + output)
        if self.saturated:
            self.integral_error = 0

        logger.debug(
            f"PID: p={p_error} i={self.integral_error} d={d_error} "
            f"output={output} -> {duty_cycle} ns"
        )
        return duty_cycle


def create_controller(config: FanConfig) -> DutyCycleController:
    """Create the controller selected in the configuration.

    PID gains that are not configured are derived from the PWM period.
    """
    if config.controller_kind == "logistic":
        return LogisticController(
            critical=config.logistic_critical,
            a=config.logistic_a,
            b=config.logistic_b
        )
    if config.controller_kind == "pid":
        return PIDController(
            kp=config.pid_kp if config.pid_kp is not None else config.period_ns / 100,
            ki=config.pid_ki if config.pid_ki is not None else config.period_ns / 1000,
            kd=config.pid_kd if config.pid_kd is not None else config.period_ns / 50,
            ideal=config.pid_ideal
        )
    raise ValueError(f"Unknown controller: {config.controller_kind}")
