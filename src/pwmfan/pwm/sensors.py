"""
Temperature Sensor Module

This module locates the monitored chip's thermal zone in the sysfs
thermal class and converts its millidegree readings to Celsius.
"""

import glob
import logging
import os
import re
from typing import Optional, Pattern

logger = logging.getLogger(__name__)

class ThermalZoneSensor:
    """Reads the temperature of one sysfs thermal zone.

    The zone is selected by matching a regular expression against each
    zone's ``type`` file:

        <thermal_root>/thermal_zone0/type   -> "soc-thermal"
        <thermal_root>/thermal_zone0/temp   -> "46250"

    Readings are millidegrees Celsius and are truncated (not rounded)
    to whole degrees.

    Examples:
        >>> sensor = ThermalZoneSensor("(soc|cpu)")
        >>> if sensor.discover():
        ...     print(sensor.read_temperature())
        46
    """

    def __init__(self, pattern: str = "(soc|cpu)", thermal_root: str = "/sys/class/thermal/"):
        """Initialize thermal zone sensor

        Args:
            pattern: Regular expression matched against the zone type
            thermal_root: Root of the sysfs thermal class
        """
        self.pattern = pattern
        self._pattern_re: Pattern = re.compile(pattern)
        self.thermal_root = thermal_root
        self.temp_file: Optional[str] = None
        self.zone_type: Optional[str] = None

    def discover(self) -> bool:
        """Find the first thermal zone whose type matches the pattern.

        Returns:
            True if a matching zone with a temp file was found
        """
        if not os.path.isdir(self.thermal_root):
            logger.warning(f"Thermal zones cannot be found at '{self.thermal_root}'")
            return False

        for zone in sorted(glob.glob(os.path.join(self.thermal_root, "thermal_zone*"))):
            temp_file = os.path.join(zone, "temp")
            try:
                with open(os.path.join(zone, "type")) as f:
                    zone_type = f.read().strip()
            except OSError as e:
                logger.debug(f"Skipping {zone}: {e}")
                continue

            if self._pattern_re.search(zone_type) and os.path.isfile(temp_file):
                self.temp_file = temp_file
                self.zone_type = zone_type
                logger.info(f"Found the '{self.pattern}' temperature at '{temp_file}'")
                return True

        logger.warning(f"Did not find the temperature for the device type: {self.pattern}")
        return False

    @property
    def available(self) -> bool:
        return self.temp_file is not None

    def read_temperature(self) -> Optional[int]:
        """Read the current temperature.

        Returns:
            Temperature in whole degrees Celsius, or None if the sensor was
            not discovered or the reading failed
        """
        if self.temp_file is None:
            return None

        try:
            with open(self.temp_file) as f:
                raw = f.read().strip()
            millidegrees = int(raw)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read temperature from {self.temp_file}: {e}")
            return None

        # Truncate toward zero
        degrees = abs(millidegrees) // 1000
        return degrees if millidegrees >= 0 else -degrees
