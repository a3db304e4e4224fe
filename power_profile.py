#!/usr/bin/env python3
"""
🔋 Fuel Gauge Power Profile
==========================
Copyright (c) 2025 PNGN-Tec LLC

Static per-device table of average current draw (mA) per component.
Some components are indexed by a discrete level: CPU frequency step,
signal strength bin.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import numpy as np

logger = logging.getLogger('PNGN.FuelGauge.Profile')

# ============================================================================
# COMPONENT KEYS
# ============================================================================

class PowerComponent(Enum):
    """Profile keys, named as in the device's power_profile.xml"""
    CPU_SPEEDS = 'cpu.speeds'
    CPU_ACTIVE = 'cpu.active'
    CPU_IDLE = 'cpu.idle'
    SCREEN_ON = 'screen.on'
    SCREEN_FULL = 'screen.full'
    WIFI_ON = 'wifi.on'
    WIFI_ACTIVE = 'wifi.active'
    BLUETOOTH_ON = 'bluetooth.on'
    BLUETOOTH_AT_CMD = 'bluetooth.at'
    RADIO_ACTIVE = 'radio.active'
    RADIO_ON = 'radio.on'
    RADIO_SCANNING = 'radio.scanning'
    GPS_ON = 'gps.on'

ProfileValue = Union[float, List[float]]

# ============================================================================
# POWER PROFILE
# ============================================================================

class PowerProfile:
    """
    Read-only lookup of average current draw.

    Scalar components answer every level with the same value. Array
    components answer a level past the end with their last entry and no
    level with their first. Unknown components draw 0 mA.
    """

    def __init__(self, values: Mapping[PowerComponent, ProfileValue]):
        self._values: Dict[PowerComponent, np.ndarray] = {}
        for component, value in values.items():
            self._values[component] = np.atleast_1d(np.asarray(value, dtype=np.float64))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'PowerProfile':
        """Build from profile-key strings ('cpu.active', ...); unknown keys are ignored"""
        known = {component.value: component for component in PowerComponent}
        values = {}
        for key, value in data.items():
            component = known.get(key)
            if component is None:
                logger.debug(f"Ignoring unknown power profile key: {key}")
                continue
            values[component] = value
        return cls(values)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> 'PowerProfile':
        """Load a profile saved as a JSON object of key -> mA (or list of mA)"""
        with open(Path(path).expanduser(), 'r') as f:
            data = json.load(f)
        profile = cls.from_dict(data)
        logger.info(f"Loaded power profile from {path}: {len(profile._values)} components, "
                    f"{profile.num_speed_steps} CPU speed steps")
        return profile

    def get_average_power(self, component: PowerComponent, level: Optional[int] = None) -> float:
        """Average current draw in mA for a component, optionally at a level"""
        values = self._values.get(component)
        if values is None or values.size == 0:
            return 0.0
        if level is None or level < 0:
            return float(values[0])
        if level < values.size:
            return float(values[level])
        return float(values[-1])

    def get_power_levels(self, component: PowerComponent, count: int) -> np.ndarray:
        """Vector of draws for levels 0..count-1"""
        return np.array([self.get_average_power(component, level) for level in range(count)],
                        dtype=np.float64)

    @property
    def num_speed_steps(self) -> int:
        """Number of CPU frequency steps the profile describes"""
        speeds = self._values.get(PowerComponent.CPU_SPEEDS)
        if speeds is not None:
            return int(speeds.size)
        active = self._values.get(PowerComponent.CPU_ACTIVE)
        return int(active.size) if active is not None else 1

    def to_dict(self) -> Dict[str, ProfileValue]:
        """Inverse of from_dict"""
        result: Dict[str, ProfileValue] = {}
        for component, values in self._values.items():
            result[component.value] = float(values[0]) if values.size == 1 else values.tolist()
        return result
