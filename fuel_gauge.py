#!/usr/bin/env python3
"""
🔋🐧🔋 Fuel Gauge Power Usage Summary
==================================
Copyright (c) 2025 PNGN-Tec LLC

Attributes battery drain to applications and hardware subsystems from
cumulative usage counters and the device power profile.

ARCHITECTURE:
- UsageAggregator: counters + profile -> one Sipper per consumer
- SipperRanker: descending order, absolute + relative threshold, top 10
- MetadataResolver: single low-priority worker resolving app names/icons
  through a FIFO queue, a uid cache and a non-blocking update channel
- PowerUsageSummary: refresh / reload / stats-mode control surface that
  owns the display list and applies updates on the display thread

COST MODEL (unit-approximate, consistent across sippers):
    value = Σ current_mA × time_ms / 1000

CPU:      Σ_steps (t_step / Σt) × cpu_ms × P_step / 1000
Network:  (sent + received) × average cost per byte
Sensors:  P_sensor × on_ms / 1000
Screen:   (on_ms × P_on + Σ_bins P_full × (i + 0.5)/N × bin_ms) / 1000
"""

import os
import time
import queue
import threading
from typing import Callable, Deque, Dict, Iterable, List, Optional, Tuple, Any
from dataclasses import dataclass, field
from collections import deque
import logging
from pathlib import Path
import numpy as np

from config import (
    MIN_POWER_THRESHOLD, MIN_PERCENT_OF_TOTAL, MAX_ITEMS_TO_LIST,
    CPU_TICK_MS, US_PER_MS, POWER_NORMALIZATION, SECONDS_PER_HOUR, BITS_PER_BYTE,
    WIFI_BPS, MOBILE_BPS, GPS_SENSOR_HANDLE,
    RESOLVER_THREAD_NAME, RESOLVER_THREAD_NICE, RESOLVER_IDLE_TIMEOUT, RESOLVER_JOIN_TIMEOUT,
    KERNEL_UID, KERNEL_LABEL, MEDIASERVER_PROCESS, MEDIASERVER_LABEL,
    SYSTEM_ICON, DEFAULT_ACTIVITY_ICON, MAX_UPDATE_CALLBACKS,
)
from shared_types import (
    StatsType, ResolverState, StatsUnavailableError, PackageNotFoundError,
    Sipper, AppSipper, PhoneSipper, ScreenSipper, WifiSipper, BluetoothSipper,
    IdleSipper, CellSipper, UidDetail, MetadataUpdate,
)
from power_profile import PowerComponent, PowerProfile
from battery_stats import (
    FileStatsSource, ProcessStats, SensorRegistry, StatsPeriod, StatsSnapshot,
    StatsSource, UidStats,
)

# Configure logging
logger = logging.getLogger('PNGN.FuelGauge')

# ============================================================================
# AGGREGATION SESSION
# ============================================================================

@dataclass
class AggregationSession:
    """
    State of one aggregation pass.

    Attributes:
        period: Counter set being read
        which: Statistics mode the counters belong to
        sippers: Every consumer emitted so far, in emission order
        total_power: Sum of all emitted values
        max_power: Largest single emitted value
        average_cost_per_byte: Blended network cost, fixed for the pass
        battery_realtime_us: Time on battery covered by the counters
    """
    period: StatsPeriod
    which: StatsType
    sippers: List[Sipper] = field(default_factory=list)
    total_power: float = 0.0
    max_power: float = 0.0
    average_cost_per_byte: float = 0.0
    battery_realtime_us: int = 0

    def add(self, sipper: Sipper) -> Sipper:
        """Record an emitted sipper and fold it into the totals"""
        if sipper.value > self.max_power:
            self.max_power = sipper.value
        self.total_power += sipper.value
        self.sippers.append(sipper)
        return sipper

    @property
    def total_power_uah(self) -> float:
        """Total drain expressed as µAh (debug readout)"""
        return (self.total_power * 1000) / SECONDS_PER_HOUR

# ============================================================================
# USAGE AGGREGATOR
# ============================================================================

class UsageAggregator:
    """
    Converts usage counters into power values per consumer.

    One pass over every tracked uid, then one fixed-order pass over the
    hardware subsystems: phone, screen, wifi, bluetooth, idle, cell.
    """

    def __init__(self, profile: PowerProfile,
                 sensor_registry: Optional[SensorRegistry] = None,
                 resolver: Optional['MetadataResolver'] = None):
        self.profile = profile
        self.sensor_registry = sensor_registry or SensorRegistry()
        self.resolver = resolver

    def aggregate(self, snapshot: StatsSnapshot, which: StatsType) -> AggregationSession:
        """Run a full pass and return the session holding its results"""
        period = snapshot.period(which)
        session = AggregationSession(
            period=period,
            which=which,
            battery_realtime_us=period.battery_realtime_us,
        )
        session.average_cost_per_byte = self.average_data_cost(period)

        self.process_app_usage(session)
        self.process_misc_usage(session)

        logger.debug(f"Aggregated {len(session.sippers)} sippers ({which.name}): "
                     f"total={session.total_power:.2f} max={session.max_power:.2f} "
                     f"({session.total_power_uah:.1f} µAh)")
        return session

    # ------------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------------

    def process_app_usage(self, session: AggregationSession) -> None:
        speed_steps = self.profile.num_speed_steps
        power_cpu_normal = self.profile.get_power_levels(PowerComponent.CPU_ACTIVE, speed_steps)

        for uid_stats in session.period.uids.values():
            app = self.compute_app_usage(uid_stats, power_cpu_normal, session.average_cost_per_byte)
            if app is None:
                continue
            if self.resolver is not None:
                self.resolver.quick_resolve(app)
            session.add(app)

    def compute_app_usage(self, uid_stats: UidStats, power_cpu_normal: np.ndarray,
                          average_cost_per_byte: float) -> Optional[AppSipper]:
        """Power of one uid; None when it drew nothing"""
        power = 0.0
        highest_drain = 0.0
        package_with_highest_drain = None
        cpu_time = 0
        cpu_fg_time = 0

        for process_name, proc in uid_stats.processes.items():
            cpu_fg_time += proc.foreground_time * CPU_TICK_MS
            proc_cpu_time = (proc.user_time + proc.system_time) * CPU_TICK_MS
            process_power = self.process_cpu_power(proc, proc_cpu_time, power_cpu_normal)

            cpu_time += proc_cpu_time
            power += process_power
            if highest_drain < process_power:
                highest_drain = process_power
                package_with_highest_drain = process_name

        if cpu_fg_time > cpu_time:
            # Counters are not always gathered in step
            logger.debug(f"uid {uid_stats.uid}: cpu time {cpu_time}ms behind "
                         f"foreground time {cpu_fg_time}ms")
            cpu_time = cpu_fg_time

        power /= POWER_NORMALIZATION

        # Data traffic
        power += (uid_stats.tcp_bytes_received + uid_stats.tcp_bytes_sent) * average_cost_per_byte

        sensor_power, gps_time = self.sensor_power(uid_stats)
        power += sensor_power

        if power == 0:
            return None

        return AppSipper(
            value=power,
            name=package_with_highest_drain,
            uid=uid_stats.uid,
            cpu_time_ms=cpu_time,
            cpu_fg_time_ms=cpu_fg_time,
            gps_time_ms=gps_time,
            tcp_bytes_sent=uid_stats.tcp_bytes_sent,
            tcp_bytes_received=uid_stats.tcp_bytes_received,
            representative_process=package_with_highest_drain,
        )

    @staticmethod
    def process_cpu_power(proc: ProcessStats, cpu_time_ms: int,
                          power_cpu_normal: np.ndarray) -> float:
        """
        CPU power of one process, before normalization.

        Each frequency step is weighted by the share of time the process
        spent at it. A process with no step times contributes nothing.
        """
        step_times = np.array([proc.time_at_speed_step(step)
                               for step in range(power_cpu_normal.size)], dtype=np.float64)
        total_time_at_speeds = step_times.sum()
        if total_time_at_speeds == 0:
            total_time_at_speeds = 1
        ratios = step_times / total_time_at_speeds
        return float(np.dot(ratios, power_cpu_normal) * cpu_time_ms)

    def sensor_power(self, uid_stats: UidStats) -> Tuple[float, int]:
        """(power, gps on-time in ms) for every sensor a uid held"""
        power = 0.0
        gps_time = 0
        for handle, sensor in uid_stats.sensors.items():
            sensor_time = sensor.total_time_us // US_PER_MS
            if handle == GPS_SENSOR_HANDLE:
                multiplier = self.profile.get_average_power(PowerComponent.GPS_ON)
                gps_time = sensor_time
            else:
                sensor_data = self.sensor_registry.get_default_sensor(handle)
                if sensor_data is None:
                    logger.debug(f"uid {uid_stats.uid}: unknown sensor {handle}, counted as 0mA")
                    multiplier = 0.0
                else:
                    multiplier = sensor_data.power_ma
            power += (multiplier * sensor_time) / POWER_NORMALIZATION
        return power, gps_time

    def average_data_cost(self, period: StatsPeriod) -> float:
        """
        Blended cost of one byte of traffic, weighted by the observed split
        between mobile and wifi bytes. Zero when nothing was transferred.
        """
        wifi_power = self.profile.get_average_power(PowerComponent.WIFI_ACTIVE) / SECONDS_PER_HOUR
        mobile_power = self.profile.get_average_power(PowerComponent.RADIO_ACTIVE) / SECONDS_PER_HOUR

        mobile_data = period.mobile_bytes
        wifi_data = max(0, period.total_bytes - mobile_data)
        radio_data_uptime_ms = period.radio_data_uptime_us // US_PER_MS
        if radio_data_uptime_ms != 0:
            mobile_bps = mobile_data * BITS_PER_BYTE * 1000 / radio_data_uptime_ms
        else:
            mobile_bps = MOBILE_BPS

        mobile_cost_per_byte = mobile_power / (mobile_bps / BITS_PER_BYTE) if mobile_bps else 0.0
        wifi_cost_per_byte = wifi_power / (WIFI_BPS / BITS_PER_BYTE)

        total_data = mobile_data + wifi_data
        if total_data == 0:
            return 0.0
        return (mobile_cost_per_byte * mobile_data + wifi_cost_per_byte * wifi_data) / total_data

    # ------------------------------------------------------------------------
    # Hardware subsystems
    # ------------------------------------------------------------------------

    def process_misc_usage(self, session: AggregationSession) -> None:
        period = session.period
        session.add(self.phone_usage(period))
        session.add(self.screen_usage(period))
        session.add(self.wifi_usage(period))
        session.add(self.bluetooth_usage(period))
        # Cellular idle is not subtracted from idle
        session.add(self.idle_usage(period))
        session.add(self.radio_usage(period))

    def phone_usage(self, period: StatsPeriod) -> PhoneSipper:
        phone_on_time_ms = period.phone_on_time_us // US_PER_MS
        power = (self.profile.get_average_power(PowerComponent.RADIO_ACTIVE)
                 * phone_on_time_ms / POWER_NORMALIZATION)
        return PhoneSipper(value=power, usage_time_ms=phone_on_time_ms)

    def screen_usage(self, period: StatsPeriod) -> ScreenSipper:
        screen_on_time_ms = period.screen_on_time_us // US_PER_MS
        power = screen_on_time_ms * self.profile.get_average_power(PowerComponent.SCREEN_ON)

        bins = len(period.screen_brightness_times_us)
        if bins:
            screen_full_power = self.profile.get_average_power(PowerComponent.SCREEN_FULL)
            bin_powers = screen_full_power * (np.arange(bins) + 0.5) / bins
            brightness_times_ms = np.array(period.screen_brightness_times_us, dtype=np.int64) // US_PER_MS
            power += float(np.dot(bin_powers, brightness_times_ms))

        power /= POWER_NORMALIZATION
        return ScreenSipper(value=power, usage_time_ms=screen_on_time_ms)

    def wifi_usage(self, period: StatsPeriod) -> WifiSipper:
        # On-time without a running connection is not charged
        running_time_ms = period.wifi_running_time_us // US_PER_MS
        power = (running_time_ms * self.profile.get_average_power(PowerComponent.WIFI_ON)
                 / POWER_NORMALIZATION)
        return WifiSipper(value=power, usage_time_ms=running_time_ms)

    def bluetooth_usage(self, period: StatsPeriod) -> BluetoothSipper:
        bt_on_time_ms = period.bluetooth_on_time_us // US_PER_MS
        power = (bt_on_time_ms * self.profile.get_average_power(PowerComponent.BLUETOOTH_ON)
                 / POWER_NORMALIZATION)
        power += (period.bluetooth_ping_count
                  * self.profile.get_average_power(PowerComponent.BLUETOOTH_AT_CMD)
                  / POWER_NORMALIZATION)
        return BluetoothSipper(value=power, usage_time_ms=bt_on_time_ms)

    def idle_usage(self, period: StatsPeriod) -> IdleSipper:
        idle_time_ms = max(0, period.battery_realtime_us - period.screen_on_time_us) // US_PER_MS
        power = (idle_time_ms * self.profile.get_average_power(PowerComponent.CPU_IDLE)
                 / POWER_NORMALIZATION)
        return IdleSipper(value=power, usage_time_ms=idle_time_ms)

    def radio_usage(self, period: StatsPeriod) -> CellSipper:
        # Signal and scanning time are charged in whole seconds
        strength_times_ms = (np.array(period.phone_signal_strength_times_us, dtype=np.int64)
                             // US_PER_MS)
        bins = strength_times_ms.size
        levels = self.profile.get_power_levels(PowerComponent.RADIO_ON, bins)
        power = float(np.dot(strength_times_ms // 1000, levels)) if bins else 0.0
        signal_time_ms = int(strength_times_ms.sum()) if bins else 0

        scanning_time_ms = period.phone_signal_scanning_time_us // US_PER_MS
        power += scanning_time_ms // 1000 * self.profile.get_average_power(PowerComponent.RADIO_SCANNING)

        no_coverage_percent = 0.0
        if signal_time_ms != 0:
            no_coverage_percent = float(strength_times_ms[0]) * 100.0 / signal_time_ms

        return CellSipper(value=power, usage_time_ms=signal_time_ms,
                          no_coverage_percent=no_coverage_percent)

# ============================================================================
# RANKER
# ============================================================================

class SipperRanker:
    """Orders sippers by drain and keeps the ones worth showing"""

    def __init__(self, min_power: float = MIN_POWER_THRESHOLD,
                 min_percent: float = MIN_PERCENT_OF_TOTAL,
                 max_items: int = MAX_ITEMS_TO_LIST):
        self.min_power = min_power
        self.min_percent = min_percent
        self.max_items = max_items

    def rank(self, sippers: Iterable[Sipper], total_power: float, max_power: float) -> List[Sipper]:
        """
        Descending by value, dropping entries below the absolute or relative
        threshold, capped at max_items. Retained entries get their
        percent_of_total and percent_of_max filled in.

        The sort is stable, so equal values keep emission order.
        """
        displayed: List[Sipper] = []
        if total_power <= 0 or max_power <= 0:
            return displayed

        for sipper in sorted(sippers, key=lambda s: s.value, reverse=True):
            if len(displayed) >= self.max_items:
                break
            if sipper.value < self.min_power:
                continue
            percent_of_total = (sipper.value / total_power) * 100
            if percent_of_total < self.min_percent:
                continue
            sipper.percent_of_total = percent_of_total
            sipper.percent_of_max = (sipper.value * 100) / max_power
            displayed.append(sipper)

        return displayed

# ============================================================================
# IDENTITY LOOKUP
# ============================================================================

@dataclass(frozen=True)
class ApplicationInfo:
    """What the package manager knows about one installed package"""
    package_name: str
    label: Optional[str] = None
    icon: Optional[str] = None
    shared_user_label: Optional[str] = None


class IdentityLookup:
    """Maps uids to installed packages and their labels/icons"""

    default_icon = DEFAULT_ACTIVITY_ICON

    def get_packages_for_uid(self, uid: int) -> Optional[List[str]]:
        raise NotImplementedError

    def get_application_info(self, package_name: str) -> ApplicationInfo:
        """Raises PackageNotFoundError for unknown packages"""
        raise NotImplementedError

    def get_shared_user_label(self, package_name: str) -> Optional[str]:
        """Label of the shared user id the package runs under, if it declares one"""
        return self.get_application_info(package_name).shared_user_label


class StaticIdentityLookup(IdentityLookup):
    """In-memory package table"""

    def __init__(self, packages_by_uid: Optional[Dict[int, List[str]]] = None,
                 applications: Optional[Iterable[ApplicationInfo]] = None):
        self.packages_by_uid = dict(packages_by_uid or {})
        self.applications = {app.package_name: app for app in (applications or [])}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StaticIdentityLookup':
        """
        {'uids': {'10001': ['com.example']},
         'packages': {'com.example': {'label': ..., 'icon': ..., 'shared_user_label': ...}}}
        """
        packages_by_uid = {int(uid): list(pkgs) for uid, pkgs in data.get('uids', {}).items()}
        applications = [
            ApplicationInfo(package_name=name, label=info.get('label'), icon=info.get('icon'),
                            shared_user_label=info.get('shared_user_label'))
            for name, info in data.get('packages', {}).items()
        ]
        return cls(packages_by_uid, applications)

    def get_packages_for_uid(self, uid: int) -> Optional[List[str]]:
        packages = self.packages_by_uid.get(uid)
        return list(packages) if packages else None

    def get_application_info(self, package_name: str) -> ApplicationInfo:
        info = self.applications.get(package_name)
        if info is None:
            raise PackageNotFoundError(package_name)
        return info

# ============================================================================
# METADATA CACHE
# ============================================================================

class MetadataCache:
    """uid -> resolved identity. Entries are never evicted."""

    def __init__(self):
        self._entries: Dict[str, UidDetail] = {}
        self.lock = threading.Lock()

    def get(self, key: str) -> Optional[UidDetail]:
        with self.lock:
            return self._entries.get(key)

    def put(self, key: str, detail: UidDetail) -> None:
        with self.lock:
            self._entries[key] = detail

    def __contains__(self, key: str) -> bool:
        with self.lock:
            return key in self._entries

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

# ============================================================================
# METADATA RESOLVER
# ============================================================================

class MetadataResolver:
    """
    Resolves app names and icons off the display thread.

    A single worker thread drains a FIFO queue. Every access to the queue,
    the abort flag, the worker handle and the state goes through one
    condition variable. Identity lookups run outside the lock. Each result
    is written to the cache before its MetadataUpdate is posted, so the
    display thread always finds the entry once it has seen the message.

    STATES:
    - IDLE:     no worker thread
    - RUNNING:  worker took an entry and is resolving it
    - DRAINING: queue empty, worker waits up to idle_timeout for more work
    - STOPPING: abort set while a worker is alive; it exits at its next check
    """

    def __init__(self, lookup: IdentityLookup,
                 cache: Optional[MetadataCache] = None,
                 updates: Optional['queue.Queue[MetadataUpdate]'] = None,
                 idle_timeout: float = RESOLVER_IDLE_TIMEOUT,
                 thread_nice: Optional[int] = RESOLVER_THREAD_NICE):
        self.lookup = lookup
        self.cache = cache if cache is not None else MetadataCache()
        self.updates: 'queue.Queue[MetadataUpdate]' = updates if updates is not None else queue.Queue()
        self.idle_timeout = idle_timeout
        self.thread_nice = thread_nice

        self._condition = threading.Condition()
        self._queue: Deque[AppSipper] = deque()
        self._abort = False
        self._worker: Optional[threading.Thread] = None
        self._state = ResolverState.IDLE

        self.resolved_count = 0
        self.workers_started = 0

    # ------------------------------------------------------------------------
    # Display thread side
    # ------------------------------------------------------------------------

    @property
    def state(self) -> ResolverState:
        with self._condition:
            return self._state

    @property
    def pending(self) -> int:
        with self._condition:
            return len(self._queue)

    @property
    def aborted(self) -> bool:
        with self._condition:
            return self._abort

    def quick_resolve(self, sipper: AppSipper) -> bool:
        """
        Fill in name/icon without the worker when possible: from the cache,
        or with a system label when the uid owns no packages.

        Returns True if the sipper needs no queueing.
        """
        detail = self.cache.get(sipper.key)
        if detail is not None:
            self.apply(sipper, detail)
            return True

        try:
            packages = self.lookup.get_packages_for_uid(sipper.uid)
        except Exception as e:
            logger.error(f"Package lookup failed for uid {sipper.uid}: {e}")
            return False
        if packages:
            return False

        if sipper.uid == KERNEL_UID:
            sipper.name = KERNEL_LABEL
        elif sipper.name == MEDIASERVER_PROCESS:
            sipper.name = MEDIASERVER_LABEL
        elif sipper.name is None:
            sipper.name = str(sipper.uid)
        sipper.icon = SYSTEM_ICON
        return True

    @staticmethod
    def apply(sipper: AppSipper, detail: Any) -> None:
        """Copy a UidDetail or MetadataUpdate onto a sipper"""
        sipper.name = detail.name
        sipper.icon = detail.icon
        sipper.representative_package = detail.package_name

    def submit(self, sippers: Iterable[Sipper]) -> int:
        """
        Replace the pending queue with the app sippers that still lack
        metadata, then start or wake the worker. Returns the queue length.
        """
        pending = []
        for sipper in sippers:
            if not isinstance(sipper, AppSipper) or sipper.is_resolved:
                continue
            detail = self.cache.get(sipper.key)
            if detail is not None:
                self.apply(sipper, detail)
                continue
            pending.append(sipper)

        with self._condition:
            self._queue.clear()
            self._queue.extend(pending)
            if self._queue:
                self._start_worker_locked()
                self._condition.notify_all()
            return len(self._queue)

    def pause(self) -> None:
        """Ask the worker to stop after the entry it is working on"""
        with self._condition:
            self._abort = True
            if self._worker is not None:
                self._state = ResolverState.STOPPING
            self._condition.notify_all()
        logger.debug("Metadata resolver paused")

    def resume(self) -> None:
        """Clear the abort flag; a fresh worker starts if entries remain"""
        with self._condition:
            self._abort = False
            self._start_worker_locked()
            self._condition.notify_all()
        logger.debug("Metadata resolver resumed")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no worker is running. Returns False on timeout."""
        with self._condition:
            return self._condition.wait_for(lambda: self._worker is None, timeout)

    def shutdown(self, timeout: float = RESOLVER_JOIN_TIMEOUT) -> None:
        self.pause()
        with self._condition:
            worker = self._worker
        if worker is not None:
            worker.join(timeout)
            if worker.is_alive():
                logger.warning(f"Metadata worker did not stop within {timeout}s")

    def _start_worker_locked(self) -> None:
        if self._worker is not None or self._abort or not self._queue:
            return
        self._worker = threading.Thread(target=self._run, name=RESOLVER_THREAD_NAME, daemon=True)
        self._state = ResolverState.RUNNING
        self.workers_started += 1
        self._worker.start()
        logger.debug(f"Started metadata worker #{self.workers_started} "
                     f"({len(self._queue)} pending)")

    # ------------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------------

    def _run(self) -> None:
        self._lower_priority()
        while True:
            with self._condition:
                while not self._queue and not self._abort:
                    self._state = ResolverState.DRAINING
                    if self.idle_timeout <= 0 or not self._condition.wait(self.idle_timeout):
                        break
                if not self._queue or self._abort:
                    self._worker = None
                    self._state = ResolverState.IDLE
                    self._condition.notify_all()
                    return
                sipper = self._queue.popleft()
                self._state = ResolverState.RUNNING
            self._process(sipper)

    def _lower_priority(self) -> None:
        if self.thread_nice is None:
            return
        try:
            os.setpriority(os.PRIO_PROCESS, threading.get_native_id(), self.thread_nice)
        except (AttributeError, OSError) as e:
            logger.debug(f"Could not lower metadata worker priority: {e}")

    def _process(self, sipper: AppSipper) -> None:
        try:
            detail = self.cache.get(sipper.key)
            if detail is None:
                detail = self.resolve(sipper)
                self.cache.put(sipper.key, detail)
                self.resolved_count += 1
            self.updates.put_nowait(MetadataUpdate(
                uid=sipper.uid,
                name=detail.name,
                icon=detail.icon,
                package_name=detail.package_name,
            ))
        except Exception as e:
            logger.error(f"Metadata resolution failed for uid {sipper.uid}: {e}")

    def resolve(self, sipper: AppSipper) -> UidDetail:
        """
        Pick a label and icon for a uid.

        Icon: the representative process's package when it has one,
        otherwise the first package with an icon.
        Name: the common label when every package agrees, otherwise the
        shared user label, otherwise the representative package's label,
        otherwise the icon package's label. Unknown packages are skipped;
        when nothing resolves the uid itself is the label.
        """
        uid = sipper.uid
        default_icon = self.lookup.default_icon
        packages = self.lookup.get_packages_for_uid(uid)
        if not packages:
            return UidDetail(name=str(uid), icon=default_icon)

        infos: Dict[str, ApplicationInfo] = {}
        for package_name in packages:
            try:
                infos[package_name] = self.lookup.get_application_info(package_name)
            except PackageNotFoundError:
                logger.debug(f"uid {uid}: package {package_name} not found, skipping")

        if not infos:
            return UidDetail(name=str(uid), icon=default_icon)

        labels = {name: (info.label or name) for name, info in infos.items()}
        preferred = sipper.representative_process if sipper.representative_process in infos else None

        if preferred is not None and infos[preferred].icon:
            icon_package = preferred
        else:
            icon_package = next((name for name, info in infos.items() if info.icon), None)
        icon = infos[icon_package].icon if icon_package else default_icon

        distinct_labels = set(labels.values())
        if len(distinct_labels) == 1:
            return UidDetail(name=distinct_labels.pop(), icon=icon, package_name=icon_package)

        shared = self._shared_user_label(uid, infos)
        if shared is not None:
            shared_label, shared_package = shared
            if infos[shared_package].icon:
                icon_package = shared_package
                icon = infos[shared_package].icon
            return UidDetail(name=shared_label, icon=icon, package_name=icon_package)

        label_package = preferred or icon_package or next(iter(infos))
        return UidDetail(name=labels[label_package], icon=icon, package_name=icon_package)

    def _shared_user_label(self, uid: int,
                           infos: Dict[str, ApplicationInfo]) -> Optional[Tuple[str, str]]:
        for package_name in infos:
            try:
                label = self.lookup.get_shared_user_label(package_name)
            except PackageNotFoundError:
                logger.debug(f"uid {uid}: no shared user info for {package_name}")
                continue
            if label:
                return label, package_name
        return None

# ============================================================================
# POWER USAGE SUMMARY
# ============================================================================

class PowerUsageSummary:
    """
    Main coordinator: owns the snapshot, the aggregation results and the
    displayed subset. All methods are meant to be called from one display
    thread; metadata arrives later through process_pending_updates().
    """

    def __init__(self, profile: PowerProfile, stats_source: StatsSource,
                 lookup: IdentityLookup,
                 sensor_registry: Optional[SensorRegistry] = None,
                 stats_type: StatsType = StatsType.UNPLUGGED,
                 resolver: Optional[MetadataResolver] = None,
                 ranker: Optional[SipperRanker] = None):
        self.profile = profile
        self.stats_source = stats_source
        self.resolver = resolver or MetadataResolver(lookup)
        self.aggregator = UsageAggregator(profile, sensor_registry, resolver=self.resolver)
        self.ranker = ranker or SipperRanker()

        # Data storage
        self.stats: Optional[StatsSnapshot] = None
        self.stats_type = stats_type
        self.usage_list: List[Sipper] = []
        self.displayed: List[Sipper] = []
        self.total_power = 0.0
        self.max_power = 0.0
        self.stats_period_us = 0

        # State
        self.active = False
        self.refresh_count = 0
        self.last_refresh = 0.0

        # Callback mechanism for the display layer
        self.update_callbacks: List[Callable] = []

        logger.info(f"Power usage summary initialized ({stats_type.name} stats, "
                    f"{profile.num_speed_steps} CPU speed steps)")

    # ------------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------------

    def resume(self) -> bool:
        """Screen became active"""
        self.active = True
        self.resolver.resume()
        return self.refresh()

    def pause(self) -> None:
        """Screen became inactive: stop the worker and drop undelivered updates"""
        self.active = False
        self.resolver.pause()
        dropped = self._drain_updates()
        if dropped:
            logger.debug(f"Dropped {len(dropped)} pending metadata updates")

    def shutdown(self) -> None:
        self.active = False
        self.resolver.shutdown()
        self._drain_updates()
        logger.info("Power usage summary stopped")

    # ------------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------------

    def load(self) -> bool:
        """Fetch and decode a fresh snapshot. False (logged) on failure."""
        try:
            blob = self.stats_source.get_statistics()
            self.stats = StatsSnapshot.from_blob(blob)
        except StatsUnavailableError as e:
            logger.error(f"Statistics unavailable: {e}")
            return False
        logger.info(f"Loaded statistics snapshot ({len(self.stats.periods)} periods)")
        return True

    def refresh(self) -> bool:
        """
        Recompute the sipper list from the current snapshot.

        If no snapshot can be obtained the previous lists are left as they
        were and False is returned.
        """
        if self.stats is None and not self.load():
            logger.warning("Refresh skipped: no statistics snapshot")
            return False

        session = self.aggregator.aggregate(self.stats, self.stats_type)

        self.usage_list = session.sippers
        self.total_power = session.total_power
        self.max_power = session.max_power
        self.stats_period_us = session.battery_realtime_us
        self.displayed = self.ranker.rank(self.usage_list, self.total_power, self.max_power)
        self.refresh_count += 1
        self.last_refresh = time.time()

        queued = self.resolver.submit(self.displayed)
        logger.info(f"Refreshed: {len(self.usage_list)} sippers, {len(self.displayed)} displayed, "
                    f"{queued} awaiting metadata")
        return True

    def force_reload(self) -> bool:
        """Discard the cached snapshot, then refresh"""
        self.stats = None
        return self.refresh()

    def toggle_stats_type(self) -> bool:
        """Switch between cumulative and since-unplugged counters"""
        self.stats_type = self.stats_type.toggled
        logger.info(f"Statistics mode: {self.stats_type.name}")
        return self.refresh()

    # ------------------------------------------------------------------------
    # Metadata updates (display thread)
    # ------------------------------------------------------------------------

    def process_pending_updates(self) -> int:
        """
        Apply every metadata update the worker has posted so far, in order.
        Returns how many matched a sipper of the current list.
        """
        applied = 0
        for update in self._drain_updates():
            sipper = self.find_sipper(update.key)
            if not isinstance(sipper, AppSipper):
                logger.debug(f"Metadata update for uid {update.uid} has no current entry")
                continue
            MetadataResolver.apply(sipper, update)
            applied += 1
            if sipper in self.displayed:
                self._notify(update, sipper)
        return applied

    def find_sipper(self, key: str) -> Optional[Sipper]:
        for sipper in self.usage_list:
            if sipper.key == key:
                return sipper
        return None

    def _drain_updates(self) -> List[MetadataUpdate]:
        updates = []
        while True:
            try:
                updates.append(self.resolver.updates.get_nowait())
            except queue.Empty:
                return updates

    def _notify(self, update: MetadataUpdate, sipper: Sipper) -> None:
        for callback in self.update_callbacks[:]:
            try:
                callback(update, sipper)
            except Exception as e:
                logger.error(f"Update callback error in {callback}: {e}")

    def register_update_callback(self, callback: Callable):
        """
        Register a callback invoked for each metadata update that lands on a
        displayed entry.

        Args:
            callback: Callable taking (update, sipper)
        """
        if callback not in self.update_callbacks:
            self.update_callbacks.append(callback)
            logger.info(f"Registered update callback: {getattr(callback, '__name__', callback)}")

            if len(self.update_callbacks) > MAX_UPDATE_CALLBACKS:
                logger.warning(f"Update callbacks exceeded {MAX_UPDATE_CALLBACKS} - removing oldest")
                self.update_callbacks.pop(0)

    def unregister_update_callback(self, callback: Callable):
        if callback in self.update_callbacks:
            self.update_callbacks.remove(callback)
            logger.info(f"Unregistered update callback: {getattr(callback, '__name__', callback)}")

    def clear_update_callbacks(self):
        self.update_callbacks.clear()

    # ------------------------------------------------------------------------
    # Readouts
    # ------------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        """Get basic summary statistics"""
        return {
            'stats_type': self.stats_type.name,
            'stats_period_ms': self.stats_period_us // US_PER_MS,
            'sippers': len(self.usage_list),
            'displayed': len(self.displayed),
            'total_power': self.total_power,
            'max_power': self.max_power,
            'total_uah': (self.total_power * 1000) / SECONDS_PER_HOUR,
            'active': self.active,
            'refresh_count': self.refresh_count,
            'last_refresh': self.last_refresh,
            'cached_uids': len(self.resolver.cache),
            'pending_metadata': self.resolver.pending,
            'resolver_state': self.resolver.state.name,
        }

# ============================================================================
# FACTORY
# ============================================================================

def create_power_usage_summary(profile_path, stats_path,
                               lookup: Optional[IdentityLookup] = None,
                               sensor_registry: Optional[SensorRegistry] = None,
                               stats_type: StatsType = StatsType.UNPLUGGED) -> PowerUsageSummary:
    """Create a summary reading its profile and statistics blob from files"""
    profile = PowerProfile.from_json(profile_path)
    source = FileStatsSource(Path(stats_path))
    return PowerUsageSummary(profile, source, lookup or StaticIdentityLookup(),
                             sensor_registry=sensor_registry, stats_type=stats_type)
