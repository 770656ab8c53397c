"""
Command Line Interface Module

This module provides the command-line interface for running the
PWM fan controller as a long-lived process.
"""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import List, Optional

from ..config import CONTROLLERS, ConfigurationError, FanConfig, load_config
from ..control import FanLifecycleManager
from ..control.lifecycle import EXIT_FAILURE, EXIT_SUCCESS

logger = logging.getLogger(__name__)

LOGGERS = [
    'pwmfan.config',
    'pwmfan.pwm.channel',
    'pwmfan.pwm.sensors',
    'pwmfan.control.controller',
    'pwmfan.control.manager',
    'pwmfan.control.lifecycle',
    'pwmfan.cli.interface'
]

class CLI:
    """Command-line interface handler"""

    def __init__(self):
        """Initialize CLI handler"""
        self.parser = self._create_parser()
        self.manager: Optional[FanLifecycleManager] = None
        self.cancel_event = threading.Event()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser

        Returns:
            Configured argument parser
        """
        parser = argparse.ArgumentParser(
            description="pwmfan - temperature based PWM fan control through sysfs",
            epilog="Options given on the command line override the configuration file."
        )

        parser.add_argument(
            "--config",
            help="Path to YAML configuration file"
        )
        parser.add_argument(
            "--debug",
            action="store_true",
            help="Enable debug logging"
        )
        parser.add_argument(
            "-c", dest="channel", metavar="CHANNEL",
            help="Name of the PWM channel (e.g., pwm0, pwm1). Default: pwm0"
        )
        parser.add_argument(
            "-C", dest="chip", metavar="CHIP",
            help="Name of the PWM controller (e.g., pwmchip0, pwmchip1). Default: pwmchip0"
        )
        parser.add_argument(
            "-d", dest="duty_min_percent", type=int, metavar="PERCENT",
            help="Lowest duty cycle threshold in percentage of the period (0-49). Default: 49"
        )
        parser.add_argument(
            "-D", dest="duty_max_percent", type=int, metavar="PERCENT",
            help="Highest duty cycle threshold in percentage of the period (50-100). Default: 100"
        )
        parser.add_argument(
            "-f", dest="full_speed_override", action="store_true", default=None,
            help="Run the fan at full speed all the time, independent of temperature"
        )
        parser.add_argument(
            "-F", dest="startup_seconds", type=int, metavar="SECONDS",
            help="Time to run the fan at full speed during startup. Default: 3"
        )
        parser.add_argument(
            "-l", dest="loop_interval_seconds", type=int, metavar="SECONDS",
            help="Time between thermal reads. Default: 10"
        )
        parser.add_argument(
            "-m", dest="monitored_device_pattern", metavar="DEVICE",
            help="Regular expression matching the thermal zone type to monitor. Default: (soc|cpu)"
        )
        parser.add_argument(
            "-o", dest="controller_kind", choices=CONTROLLERS,
            help="Thermal controller. Default: logistic"
        )
        parser.add_argument(
            "-p", dest="period_ns", type=int, metavar="NS",
            help="The fan period in nanoseconds. Default (40Hz): 25000000"
        )
        parser.add_argument(
            "-s", dest="window_capacity", type=int, metavar="SIZE",
            help="Number of temperature samples kept (greater than 1). Default: 6"
        )
        parser.add_argument(
            "-t", dest="temp_low", type=int, metavar="CELSIUS",
            help="Lowest temperature threshold (0-59); lower temps set the fan to min. Default: 45"
        )
        parser.add_argument(
            "-T", dest="temp_high", type=int, metavar="CELSIUS",
            help="Highest temperature threshold (60-120); higher temps set the fan to max. Default: 78"
        )
        parser.add_argument(
            "-u", dest="temp_off", type=int, metavar="CELSIUS",
            help="Fan-off temperature threshold (0-59). Default: 0"
        )
        parser.add_argument(
            "-U", dest="temp_on", type=int, metavar="CELSIUS",
            help="Fan-on temperature threshold, greater than the off threshold. Default: 1"
        )

        return parser

    def _build_config(self, args: argparse.Namespace) -> FanConfig:
        """Merge configuration file and command-line options

        Raises:
            ConfigurationError: If the result is invalid
        """
        config = load_config(args.config) if args.config else FanConfig()
        return config.with_overrides(
            channel=args.channel,
            chip=args.chip,
            duty_min_percent=args.duty_min_percent,
            duty_max_percent=args.duty_max_percent,
            full_speed_override=args.full_speed_override,
            startup_seconds=args.startup_seconds,
            loop_interval_seconds=args.loop_interval_seconds,
            monitored_device_pattern=args.monitored_device_pattern,
            controller_kind=args.controller_kind,
            period_ns=args.period_ns,
            window_capacity=args.window_capacity,
            temp_low=args.temp_low,
            temp_high=args.temp_high,
            temp_off=args.temp_off,
            temp_on=args.temp_on
        ).validate()

    def _signal_handler(self, signum, frame) -> None:
        logger.info(f"Received signal {signal.Signals(signum).name}, stopping")
        self.cancel_event.set()

    def _install_signal_handlers(self) -> None:
        for name in ("SIGINT", "SIGHUP", "SIGTERM"):
            signum = getattr(signal, name, None)
            if signum is not None:
                signal.signal(signum, self._signal_handler)

    def _banner(self, title: str, detail: str) -> None:
        logger.info("#" * 52)
        logger.info(f"# {title}")
        logger.info(f"# {detail}")
        logger.info("#" * 52)

    def run(self, argv: Optional[List[str]] = None) -> int:
        """Run the CLI interface

        Args:
            argv: Arguments to parse (defaults to sys.argv)

        Returns:
            Process exit code
        """
        args = self.parser.parse_args(argv)

        if args.debug:
            for name in LOGGERS:
                logging.getLogger(name).setLevel(logging.DEBUG)

        self._banner("STARTING PWMFAN", f"Date and time: {time.strftime('%c')}")

        try:
            config = self._build_config(args)
        except ConfigurationError as e:
            logger.error(f"Invalid configuration: {e}")
            self._banner("END OF PWMFAN", "MESSAGE: Invalid configuration. Cannot continue.")
            return EXIT_FAILURE

        self._install_signal_handlers()
        self.manager = FanLifecycleManager(config, cancel_event=self.cancel_event)
        code = self.manager.run()

        if code == EXIT_SUCCESS:
            message = "Received a signal to stop."
        else:
            message = "Fan initialization failed."
        self._banner("END OF PWMFAN", f"MESSAGE: {message}")
        return code

def main() -> None:
    """Main entry point"""
    cli = CLI()
    sys.exit(cli.run())

if __name__ == "__main__":
    main()
