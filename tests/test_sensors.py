"""
Tests for the Temperature Sensor module
"""

import pytest
from pwmfan.pwm.sensors import ThermalZoneSensor

def add_zone(root, index, zone_type, temp=None):
    zone = root / f"thermal_zone{index}"
    zone.mkdir()
    (zone / "type").write_text(f"{zone_type}\n")
    if temp is not None:
        (zone / "temp").write_text(f"{temp}\n")
    return zone

@pytest.fixture
def thermal_root(tmp_path):
    """Create a fake /sys/class/thermal tree"""
    root = tmp_path / "thermal"
    root.mkdir()
    add_zone(root, 0, "gpu-thermal", 40000)
    add_zone(root, 1, "soc-thermal", 46750)
    return root

def test_discover_matching_zone(thermal_root):
    """Test discovery picks the zone matching the pattern"""
    sensor = ThermalZoneSensor("(soc|cpu)", thermal_root=str(thermal_root))
    assert not sensor.available

    assert sensor.discover()
    assert sensor.available
    assert sensor.zone_type == "soc-thermal"
    assert sensor.temp_file == str(thermal_root / "thermal_zone1" / "temp")

def test_discover_first_match_wins(thermal_root):
    """Test zones are scanned in order"""
    add_zone(thermal_root, 2, "cpu-thermal", 50000)
    sensor = ThermalZoneSensor("thermal", thermal_root=str(thermal_root))
    assert sensor.discover()
    assert sensor.zone_type == "gpu-thermal"

def test_discover_skips_zone_without_temp(tmp_path):
    """Test zones without a temp file are ignored"""
    root = tmp_path / "thermal"
    root.mkdir()
    add_zone(root, 0, "cpu-thermal")
    add_zone(root, 1, "cpu-thermal", 51000)

    sensor = ThermalZoneSensor("cpu", thermal_root=str(root))
    assert sensor.discover()
    assert sensor.read_temperature() == 51

def test_discover_no_match(thermal_root):
    """Test discovery fails without a matching zone"""
    sensor = ThermalZoneSensor("ddr", thermal_root=str(thermal_root))
    assert not sensor.discover()
    assert sensor.read_temperature() is None

def test_discover_missing_root(tmp_path):
    """Test discovery fails without the thermal class"""
    sensor = ThermalZoneSensor(thermal_root=str(tmp_path / "missing"))
    assert not sensor.discover()

def test_read_temperature_truncates(thermal_root):
    """Test millidegrees are truncated to whole degrees"""
    sensor = ThermalZoneSensor(thermal_root=str(thermal_root))
    sensor.discover()
    assert sensor.read_temperature() == 46

    (thermal_root / "thermal_zone1" / "temp").write_text("46999\n")
    assert sensor.read_temperature() == 46

    (thermal_root / "thermal_zone1" / "temp").write_text("-1500\n")
    assert sensor.read_temperature() == -1

def test_read_temperature_failures(thermal_root):
    """Test unreadable values yield None"""
    sensor = ThermalZoneSensor(thermal_root=str(thermal_root))
    sensor.discover()

    (thermal_root / "thermal_zone1" / "temp").write_text("n/a\n")
    assert sensor.read_temperature() is None

    (thermal_root / "thermal_zone1" / "temp").unlink()
    assert sensor.read_temperature() is None
