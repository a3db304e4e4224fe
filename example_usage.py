#!/usr/bin/env python3
"""
🔋🐧🔋 Fuel Gauge - Usage Example
==============================
Copyright (c) 2025 PNGN-Tec LLC

Demonstrates a full refresh cycle:
- Aggregation of app + subsystem drain from a statistics blob
- Ranked, thresholded display list
- Names/icons arriving asynchronously from the metadata worker
"""

import logging
import time

from battery_stats import CallableStatsSource, StatsSnapshot
from fuel_gauge import PowerUsageSummary, StaticIdentityLookup
from power_profile import PowerProfile

PROFILE = {
    'cpu.speeds': [300000, 1200000],
    'cpu.active': [100.0, 200.0],
    'cpu.idle': 2.0,
    'screen.on': 80.0,
    'screen.full': 300.0,
    'wifi.on': 3.0,
    'wifi.active': 120.0,
    'bluetooth.on': 1.0,
    'bluetooth.at': 0.5,
    'radio.active': 180.0,
    'radio.on': [5.0, 4.0, 3.5, 3.0, 2.5],
    'radio.scanning': 70.0,
    'gps.on': 50.0,
}

HOUR_US = 3600 * 1000 * 1000

STATS = {
    'unplugged': {
        'battery_realtime_us': 4 * HOUR_US,
        'screen_on_time_us': HOUR_US,
        'screen_brightness_times_us': [0, HOUR_US // 2, HOUR_US // 2, 0, 0],
        'phone_on_time_us': 600 * 1000 * 1000,
        'wifi_running_time_us': 2 * HOUR_US,
        'bluetooth_on_time_us': HOUR_US,
        'phone_signal_strength_times_us': [HOUR_US // 10, HOUR_US, 2 * HOUR_US, HOUR_US // 2, 0],
        'total_tcp_bytes_received': 50_000_000,
        'mobile_tcp_bytes_received': 10_000_000,
        'uids': [
            {'uid': 0, 'processes': [{'name': 'kernel', 'user_time': 30000,
                                      'system_time': 60000, 'speed_step_times': [900, 100]}]},
            {'uid': 10042, 'tcp_bytes_received': 40_000_000,
             'processes': [{'name': 'com.example.maps', 'user_time': 120000, 'system_time': 20000,
                            'foreground_time': 100000, 'speed_step_times': [300, 700]}],
             'sensors': [{'handle': -10000, 'total_time_us': HOUR_US}]},
            {'uid': 10077,
             'processes': [{'name': 'com.example.mail', 'user_time': 40000, 'system_time': 5000,
                            'speed_step_times': [800, 200]},
                           {'name': 'com.example.mail:sync', 'user_time': 10000,
                            'speed_step_times': [1, 0]}]},
        ],
    },
}

PACKAGES = {
    'uids': {'10042': ['com.example.maps'], '10077': ['com.example.mail', 'com.example.calendar']},
    'packages': {
        'com.example.maps': {'label': 'Maps', 'icon': 'ic_maps'},
        'com.example.mail': {'label': 'Mail', 'icon': 'ic_mail', 'shared_user_label': 'Sync Suite'},
        'com.example.calendar': {'label': 'Calendar', 'icon': 'ic_calendar'},
    },
}


def show(summary: PowerUsageSummary):
    for sipper in summary.displayed:
        print(f"  {sipper.name or '…':<16} {sipper.value:10.1f}  "
              f"{sipper.percent_of_total:5.1f}% of total  [{sipper.icon or '-'}]")


def main():
    logging.basicConfig(level=logging.INFO, format='%(name)s: %(message)s')

    print("🔋 Initializing fuel gauge...")
    source = CallableStatsSource(lambda: StatsSnapshot.from_dict(STATS).to_blob())
    summary = PowerUsageSummary(
        PowerProfile.from_dict(PROFILE),
        source,
        StaticIdentityLookup.from_dict(PACKAGES),
    )

    try:
        summary.resume()
        print("\n📊 First pass (names may still be loading):")
        show(summary)

        summary.resolver.wait_idle(timeout=5.0)
        applied = summary.process_pending_updates()
        print(f"\n✅ Applied {applied} metadata updates:")
        show(summary)

        for sipper in summary.displayed:
            details = ', '.join(f"{k}={v:g}" for k, v in sipper.usage_details().items())
            print(f"  {sipper.name}: {details}")

        time.sleep(0.1)
    finally:
        summary.shutdown()

    stats = summary.get_statistics()
    print("\n📊 Statistics:")
    print(f"   Sippers: {stats['sippers']} ({stats['displayed']} displayed)")
    print(f"   Total: {stats['total_power']:.1f} ({stats['total_uah']:.0f} µAh)")
    print(f"   Cached uids: {stats['cached_uids']}")


if __name__ == "__main__":
    main()
