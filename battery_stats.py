#!/usr/bin/env python3
"""
🔋 Fuel Gauge Battery Statistics
===============================
Copyright (c) 2025 PNGN-Tec LLC

Cumulative usage counters since last charge / unplug, the blob codec that
carries them, and the sources a snapshot can be fetched from.

UNITS (as reported by the platform):
- Process user/system/foreground times: 10ms clock ticks
- CPU speed step times: raw ticks (only their ratios are used)
- Timers (screen, radio, wifi, bluetooth, sensors, realtime): microseconds
- Network counters: bytes
"""

import json
import logging
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from config import (
    NUM_SCREEN_BRIGHTNESS_BINS, NUM_SIGNAL_STRENGTH_BINS,
    STATS_KEY_TOTAL, STATS_KEY_UNPLUGGED,
)
from shared_types import StatsType, StatsUnavailableError

logger = logging.getLogger('PNGN.FuelGauge.Stats')

STATS_KEYS = {
    StatsType.TOTAL: STATS_KEY_TOTAL,
    StatsType.UNPLUGGED: STATS_KEY_UNPLUGGED,
}

# Period counters holding one value per bin
BIN_FIELDS = ('screen_brightness_times_us', 'phone_signal_strength_times_us')

# ============================================================================
# COUNTERS
# ============================================================================

@dataclass
class SensorStats:
    """On-time of one sensor held by a uid"""
    handle: int
    total_time_us: int = 0

@dataclass
class ProcessStats:
    """CPU counters of one process under a uid"""
    name: str
    user_time: int = 0
    system_time: int = 0
    foreground_time: int = 0
    speed_step_times: List[int] = field(default_factory=list)

    def time_at_speed_step(self, step: int) -> int:
        if 0 <= step < len(self.speed_step_times):
            return self.speed_step_times[step]
        return 0

@dataclass
class UidStats:
    """Everything tracked for one consumer id"""
    uid: int
    processes: Dict[str, ProcessStats] = field(default_factory=dict)
    sensors: Dict[int, SensorStats] = field(default_factory=dict)
    tcp_bytes_sent: int = 0
    tcp_bytes_received: int = 0

@dataclass
class StatsPeriod:
    """Counter set for one statistics mode"""
    battery_realtime_us: int = 0
    uids: Dict[int, UidStats] = field(default_factory=dict)
    phone_on_time_us: int = 0
    screen_on_time_us: int = 0
    screen_brightness_times_us: List[int] = field(
        default_factory=lambda: [0] * NUM_SCREEN_BRIGHTNESS_BINS)
    wifi_on_time_us: int = 0
    wifi_running_time_us: int = 0
    bluetooth_on_time_us: int = 0
    bluetooth_ping_count: int = 0
    phone_signal_strength_times_us: List[int] = field(
        default_factory=lambda: [0] * NUM_SIGNAL_STRENGTH_BINS)
    phone_signal_scanning_time_us: int = 0
    radio_data_uptime_us: int = 0
    mobile_tcp_bytes_sent: int = 0
    mobile_tcp_bytes_received: int = 0
    total_tcp_bytes_sent: int = 0
    total_tcp_bytes_received: int = 0

    @property
    def mobile_bytes(self) -> int:
        return self.mobile_tcp_bytes_sent + self.mobile_tcp_bytes_received

    @property
    def total_bytes(self) -> int:
        return self.total_tcp_bytes_sent + self.total_tcp_bytes_received

# ============================================================================
# SNAPSHOT + CODEC
# ============================================================================

@dataclass
class StatsSnapshot:
    """Decoded statistics blob: one counter set per statistics mode"""
    periods: Dict[StatsType, StatsPeriod] = field(default_factory=dict)
    on_battery: bool = True

    def period(self, which: StatsType) -> StatsPeriod:
        """Counters for a statistics mode; an empty set if the blob lacks it"""
        period = self.periods.get(which)
        if period is None:
            logger.debug(f"Snapshot has no {which.name} counters, using empty set")
            period = StatsPeriod()
        return period

    @classmethod
    def from_blob(cls, blob: Union[bytes, str]) -> 'StatsSnapshot':
        """Decode a JSON statistics blob"""
        try:
            if isinstance(blob, bytes):
                blob = blob.decode('utf-8')
            return cls.from_dict(json.loads(blob))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError,
                ValueError, AttributeError) as e:
            raise StatsUnavailableError(f"Malformed statistics blob: {e}") from e

    def to_blob(self) -> bytes:
        return json.dumps(self.to_dict()).encode('utf-8')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatsSnapshot':
        periods = {}
        for which, key in STATS_KEYS.items():
            if key in data:
                periods[which] = _period_from_dict(data[key])
        return cls(periods=periods, on_battery=bool(data.get('on_battery', True)))

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'on_battery': self.on_battery}
        for which, period in self.periods.items():
            data = asdict(period)
            data['uids'] = [_uid_to_dict(u) for u in period.uids.values()]
            result[STATS_KEYS[which]] = data
        return result


def _period_from_dict(data: Dict[str, Any]) -> StatsPeriod:
    period_data = dict(data)
    uids = {}
    for uid_data in period_data.pop('uids', []):
        uid_stats = _uid_from_dict(uid_data)
        uids[uid_stats.uid] = uid_stats
    counters = {}
    for name, value in period_data.items():
        if name in BIN_FIELDS:
            if not isinstance(value, list):
                raise TypeError(f"{name} must be a list of bin times")
            counters[name] = [int(t) for t in value]
        else:
            counters[name] = int(value)
    return StatsPeriod(uids=uids, **counters)


def _uid_from_dict(data: Dict[str, Any]) -> UidStats:
    processes = {}
    for proc in data.get('processes', []):
        processes[proc['name']] = ProcessStats(
            name=proc['name'],
            user_time=int(proc.get('user_time', 0)),
            system_time=int(proc.get('system_time', 0)),
            foreground_time=int(proc.get('foreground_time', 0)),
            speed_step_times=[int(t) for t in proc.get('speed_step_times', [])],
        )
    sensors = {}
    for sensor in data.get('sensors', []):
        handle = int(sensor['handle'])
        sensors[handle] = SensorStats(handle=handle, total_time_us=int(sensor.get('total_time_us', 0)))
    return UidStats(
        uid=int(data['uid']),
        processes=processes,
        sensors=sensors,
        tcp_bytes_sent=int(data.get('tcp_bytes_sent', 0)),
        tcp_bytes_received=int(data.get('tcp_bytes_received', 0)),
    )


def _uid_to_dict(uid_stats: UidStats) -> Dict[str, Any]:
    return {
        'uid': uid_stats.uid,
        'processes': [asdict(p) for p in uid_stats.processes.values()],
        'sensors': [asdict(s) for s in uid_stats.sensors.values()],
        'tcp_bytes_sent': uid_stats.tcp_bytes_sent,
        'tcp_bytes_received': uid_stats.tcp_bytes_received,
    }

# ============================================================================
# SOURCES
# ============================================================================

class StatsSource:
    """Where the opaque statistics blob comes from"""

    def get_statistics(self) -> bytes:
        raise NotImplementedError


class FileStatsSource(StatsSource):
    """Blob dumped to a file"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def get_statistics(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as e:
            raise StatsUnavailableError(f"Cannot read {self.path}: {e}") from e


class CallableStatsSource(StatsSource):
    """Blob produced by a callable, e.g. a service binder"""

    def __init__(self, fetch: Callable[[], bytes]):
        self.fetch = fetch

    def get_statistics(self) -> bytes:
        try:
            return self.fetch()
        except StatsUnavailableError:
            raise
        except Exception as e:
            raise StatsUnavailableError(f"Statistics service failed: {e}") from e

# ============================================================================
# SENSOR REGISTRY
# ============================================================================

@dataclass(frozen=True)
class Sensor:
    handle: int
    name: str
    power_ma: float


class SensorRegistry:
    """Device sensors by handle; answers None for sensors it doesn't know"""

    def __init__(self, sensors: Optional[List[Sensor]] = None):
        self._sensors = {s.handle: s for s in (sensors or [])}

    @classmethod
    def from_dict(cls, data: Dict[Any, Dict[str, Any]]) -> 'SensorRegistry':
        """{handle: {'name': ..., 'power_ma': ...}}"""
        return cls([Sensor(handle=int(handle), name=info.get('name', str(handle)),
                           power_ma=float(info.get('power_ma', 0.0)))
                    for handle, info in data.items()])

    def get_default_sensor(self, handle: int) -> Optional[Sensor]:
        return self._sensors.get(handle)

    def __len__(self) -> int:
        return len(self._sensors)
