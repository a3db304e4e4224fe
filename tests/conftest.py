"""Shared fixtures for the fuel gauge tests."""

import threading

import pytest

from battery_stats import ProcessStats, SensorStats, StatsPeriod, StatsSnapshot, UidStats
from fuel_gauge import ApplicationInfo, MetadataResolver, StaticIdentityLookup
from power_profile import PowerProfile
from shared_types import StatsType

SECOND_US = 1000 * 1000


@pytest.fixture
def profile():
    return PowerProfile.from_dict({
        'cpu.active': [100.0, 200.0],
        'cpu.idle': 2.0,
        'screen.on': 10.0,
        'screen.full': 50.0,
        'wifi.on': 4.0,
        'wifi.active': 3600.0,
        'bluetooth.on': 2.0,
        'bluetooth.at': 10.0,
        'radio.active': 3600.0,
        'radio.on': [10.0, 5.0],
        'radio.scanning': 20.0,
        'gps.on': 50.0,
    })


def make_uid(uid, processes=(), sensors=(), sent=0, received=0):
    """processes: (name, user_ticks, system_ticks, fg_ticks, step_times)"""
    return UidStats(
        uid=uid,
        processes={name: ProcessStats(name, user, system, fg, list(steps))
                   for name, user, system, fg, steps in processes},
        sensors={handle: SensorStats(handle, time_us) for handle, time_us in sensors},
        tcp_bytes_sent=sent,
        tcp_bytes_received=received,
    )


def make_period(uids=(), **fields):
    fields.setdefault('screen_brightness_times_us', [0, 0])
    fields.setdefault('phone_signal_strength_times_us', [0, 0])
    return StatsPeriod(uids={u.uid: u for u in uids}, **fields)


def make_snapshot(uids=(), which=StatsType.UNPLUGGED, **fields):
    return StatsSnapshot(periods={which: make_period(uids, **fields)})


def cpu_uid(uid, name, ticks, steps=(1, 0)):
    """A uid with a single process burning `ticks` 10ms ticks of CPU"""
    return make_uid(uid, processes=[(name, ticks, 0, 0, steps)])


class CountingLookup(StaticIdentityLookup):
    """StaticIdentityLookup that records application lookups and can block on one package"""

    def __init__(self, packages_by_uid=None, applications=None, block_on=None):
        super().__init__(packages_by_uid, applications)
        self.calls = []
        self.lock = threading.Lock()
        self.block_on = block_on
        self.entered = threading.Event()
        self.release = threading.Event()

    def get_application_info(self, package_name):
        with self.lock:
            self.calls.append(package_name)
        if package_name == self.block_on:
            self.entered.set()
            self.release.wait(5.0)
        return super().get_application_info(package_name)


@pytest.fixture
def lookup():
    return CountingLookup(
        packages_by_uid={
            10001: ['com.example.alpha'],
            10002: ['com.example.beta'],
            10003: ['com.example.gamma'],
        },
        applications=[
            ApplicationInfo('com.example.alpha', label='Alpha', icon='ic_alpha'),
            ApplicationInfo('com.example.beta', label='Beta', icon='ic_beta'),
            ApplicationInfo('com.example.gamma', label='Gamma', icon='ic_gamma'),
        ],
    )


@pytest.fixture
def resolver(lookup):
    resolver = MetadataResolver(lookup, idle_timeout=0, thread_nice=None)
    yield resolver
    resolver.shutdown(timeout=2.0)
