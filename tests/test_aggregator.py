import pytest

from battery_stats import Sensor, SensorRegistry
from conftest import SECOND_US, cpu_uid, make_period, make_snapshot, make_uid
from fuel_gauge import UsageAggregator
from power_profile import PowerProfile
from shared_types import AppSipper, CellSipper, DrainType, StatsType


def app_sippers(session):
    return [s for s in session.sippers if isinstance(s, AppSipper)]


def test_cpu_power_weighted_by_speed_steps(profile):
    # 40 ticks = 400ms split 30:10 across steps drawing 100mA / 200mA
    snapshot = make_snapshot([make_uid(10001, processes=[('alpha', 30, 10, 0, [30, 10])])])

    session = UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED)

    [app] = app_sippers(session)
    assert app.value == pytest.approx(50.0)
    assert app.cpu_time_ms == 400


def test_cpu_power_matches_weighted_sum_over_processes(profile):
    procs = [('a', 12, 3, 0, [5, 15]), ('b', 7, 0, 0, [9, 1])]
    snapshot = make_snapshot([make_uid(10001, processes=procs)])

    session = UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED)

    expected = 0.0
    for _, user, system, _, (s0, s1) in procs:
        cpu_ms = (user + system) * 10
        total = s0 + s1
        expected += (s0 / total * cpu_ms * 100.0) + (s1 / total * cpu_ms * 200.0)
    [app] = app_sippers(session)
    assert app.value == pytest.approx(expected / 1000)


def test_zero_step_time_contributes_nothing(profile):
    snapshot = make_snapshot([make_uid(10001, processes=[('idle', 50, 50, 0, [0, 0])])])

    session = UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED)

    assert app_sippers(session) == []


def test_highest_drain_process_is_representative(profile):
    snapshot = make_snapshot([make_uid(10001, processes=[
        ('com.example.alpha', 10, 0, 0, [1, 0]),
        ('com.example.alpha:remote', 10, 0, 0, [0, 1]),
    ])])

    [app] = app_sippers(UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED))

    assert app.representative_process == 'com.example.alpha:remote'
    assert app.name == 'com.example.alpha:remote'


def test_cpu_time_catches_up_with_foreground_time(profile):
    snapshot = make_snapshot([make_uid(10001, processes=[('alpha', 10, 0, 25, [1, 0])])])

    [app] = app_sippers(UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED))

    assert app.cpu_fg_time_ms == 250
    assert app.cpu_time_ms == 250
    # power still comes from user + system time
    assert app.value == pytest.approx(100 * 100.0 / 1000)


def test_average_data_cost_zero_bytes_is_zero(profile):
    assert UsageAggregator(profile).average_data_cost(make_period()) == 0


def test_average_data_cost_blends_mobile_and_wifi(profile):
    # 1mA-hour per second draw on both radios; mobile falls back to 200kbps, wifi 1Mbps
    period = make_period(mobile_tcp_bytes_received=100, total_tcp_bytes_received=200)

    cost = UsageAggregator(profile).average_data_cost(period)

    mobile = 1.0 / (200000 / 8)
    wifi = 1.0 / (1000000 / 8)
    assert cost == pytest.approx((mobile * 100 + wifi * 100) / 200)


def test_average_data_cost_uses_observed_mobile_rate(profile):
    period = make_period(mobile_tcp_bytes_sent=1000, total_tcp_bytes_sent=1000,
                         radio_data_uptime_us=SECOND_US)

    # 1000 bytes in 1s = 8000bps
    assert UsageAggregator(profile).average_data_cost(period) == pytest.approx(1.0 / 1000)


def test_average_data_cost_radio_up_without_mobile_bytes(profile):
    period = make_period(total_tcp_bytes_sent=500, radio_data_uptime_us=SECOND_US)

    assert UsageAggregator(profile).average_data_cost(period) == pytest.approx(1.0 / 125000)


def test_network_traffic_is_charged_to_the_uid(profile):
    snapshot = make_snapshot([make_uid(10001, sent=60000, received=40000)],
                             mobile_tcp_bytes_received=100000, total_tcp_bytes_received=100000)

    [app] = app_sippers(UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED))

    assert app.value == pytest.approx(100000 / 25000)
    assert app.usage_details()['data_sent'] == 60000


def test_sensor_power(profile):
    registry = SensorRegistry([Sensor(1, 'accelerometer', 3.0)])
    snapshot = make_snapshot([make_uid(10001, sensors=[
        (-10000, 20 * SECOND_US),   # gps: 50mA
        (1, 10 * SECOND_US),        # accelerometer: 3mA
        (99, 10 * SECOND_US),       # unknown sensor
    ])])

    [app] = app_sippers(UsageAggregator(profile, registry).aggregate(snapshot, StatsType.UNPLUGGED))

    assert app.gps_time_ms == 20000
    assert app.value == pytest.approx((50.0 * 20000 + 3.0 * 10000) / 1000)


def test_zero_power_uid_emits_nothing(profile):
    snapshot = make_snapshot([make_uid(10001), cpu_uid(10002, 'beta', 100)])

    session = UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED)

    assert [s.uid for s in app_sippers(session)] == [10002]


def test_screen_power_weighted_by_brightness(profile):
    snapshot = make_snapshot(screen_on_time_us=3000 * 1000,
                             screen_brightness_times_us=[1000 * 1000, 2000 * 1000])

    screen = UsageAggregator(profile).screen_usage(snapshot.period(StatsType.UNPLUGGED))

    assert screen.value == pytest.approx(117.5)
    assert screen.usage_time_ms == 3000


def test_phone_wifi_bluetooth_idle(profile):
    period = make_period(
        battery_realtime_us=100 * SECOND_US,
        screen_on_time_us=40 * SECOND_US,
        phone_on_time_us=2 * SECOND_US,
        wifi_on_time_us=50 * SECOND_US,
        wifi_running_time_us=30 * SECOND_US,
        bluetooth_on_time_us=10 * SECOND_US,
        bluetooth_ping_count=7,
    )
    aggregator = UsageAggregator(profile)

    assert aggregator.phone_usage(period).value == pytest.approx(2000 * 3600.0 / 1000)
    wifi = aggregator.wifi_usage(period)
    assert wifi.value == pytest.approx(30000 * 4.0 / 1000)
    assert wifi.usage_time_ms == 30000
    assert aggregator.bluetooth_usage(period).value == pytest.approx(10000 * 2.0 / 1000 + 7 * 10.0 / 1000)
    idle = aggregator.idle_usage(period)
    assert idle.usage_time_ms == 60000
    assert idle.value == pytest.approx(60000 * 2.0 / 1000)


def test_cell_power_and_no_coverage(profile):
    period = make_period(phone_signal_strength_times_us=[3 * SECOND_US, 9 * SECOND_US],
                         phone_signal_scanning_time_us=2 * SECOND_US)

    cell = UsageAggregator(profile).radio_usage(period)

    assert cell.value == pytest.approx(3 * 10.0 + 9 * 5.0 + 2 * 20.0)
    assert cell.usage_time_ms == 12000
    assert cell.no_coverage_percent == pytest.approx(25.0)
    assert cell.usage_details() == {'on_time': 12000, 'no_coverage': pytest.approx(25.0)}


def test_cell_power_counts_whole_seconds(profile):
    period = make_period(phone_signal_strength_times_us=[999 * 1000, 1999 * 1000],
                         phone_signal_scanning_time_us=1500 * 1000)

    cell = UsageAggregator(profile).radio_usage(period)

    assert cell.value == pytest.approx(0 * 10.0 + 1 * 5.0 + 1 * 20.0)
    assert cell.usage_time_ms == 2998


def test_cell_without_signal_time_has_no_coverage_zero(profile):
    cell = UsageAggregator(profile).radio_usage(make_period())

    assert cell.value == 0
    assert cell.no_coverage_percent == 0


def test_subsystems_always_emitted_in_fixed_order(profile):
    session = UsageAggregator(profile).aggregate(make_snapshot(), StatsType.UNPLUGGED)

    assert [s.drain_type for s in session.sippers] == [
        DrainType.PHONE, DrainType.SCREEN, DrainType.WIFI,
        DrainType.BLUETOOTH, DrainType.IDLE, DrainType.CELL,
    ]
    assert all(s.value == 0 for s in session.sippers)
    assert session.total_power == 0
    assert isinstance(session.sippers[-1], CellSipper)


def test_totals_cover_every_emitted_sipper(profile):
    snapshot = make_snapshot([cpu_uid(10001, 'alpha', 100), cpu_uid(10002, 'beta', 300)],
                             battery_realtime_us=100 * SECOND_US,
                             screen_on_time_us=50 * SECOND_US)

    session = UsageAggregator(profile).aggregate(snapshot, StatsType.UNPLUGGED)

    values = [s.value for s in session.sippers]
    assert session.total_power == pytest.approx(sum(values))
    assert session.max_power == max(values)
    assert len({(s.drain_type, s.key) for s in session.sippers}) == len(session.sippers)


def test_stats_type_selects_counter_set():
    profile = PowerProfile.from_dict({'cpu.active': [100.0]})
    snapshot = make_snapshot([cpu_uid(10001, 'alpha', 100)], which=StatsType.TOTAL)

    aggregator = UsageAggregator(profile)

    assert len(app_sippers(aggregator.aggregate(snapshot, StatsType.TOTAL))) == 1
    assert app_sippers(aggregator.aggregate(snapshot, StatsType.UNPLUGGED)) == []
