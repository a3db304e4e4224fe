#!/usr/bin/env python3
"""
🔋🐧🔋 Fuel Gauge Configuration
============================
Copyright (c) 2025 PNGN-Tec LLC

Tuning constants for battery power attribution. Every other module imports
its thresholds, unit conversions and profile keys from here.
"""

# ============================================================================
# DISPLAY FILTERING
# ============================================================================

MIN_POWER_THRESHOLD = 5                 # units - sippers below this are hidden
MIN_PERCENT_OF_TOTAL = 1.0              # % - sippers below this are hidden
MAX_ITEMS_TO_LIST = 10                  # displayed entries cap

# ============================================================================
# UNIT CONVERSIONS
# ============================================================================

CPU_TICK_MS = 10                        # process user/system/fg times are 10ms ticks
US_PER_MS = 1000                        # stats timers are microseconds
POWER_NORMALIZATION = 1000              # mA x ms collapsed to display units
SECONDS_PER_HOUR = 3600
BITS_PER_BYTE = 8

# ============================================================================
# NETWORK COST MODEL
# ============================================================================

WIFI_BPS = 1000000                      # fixed wifi throughput estimate
MOBILE_BPS = 200000                     # fallback when radio uptime is unknown

# ============================================================================
# HISTOGRAM BINS (Android BatteryStats defaults)
# ============================================================================

NUM_SCREEN_BRIGHTNESS_BINS = 5
NUM_SIGNAL_STRENGTH_BINS = 5

# ============================================================================
# SENSORS
# ============================================================================

GPS_SENSOR_HANDLE = -10000              # BatteryStats.Uid.Sensor.GPS

# ============================================================================
# STATS TYPES (keys inside the stats blob)
# ============================================================================

STATS_KEY_TOTAL = 'total'
STATS_KEY_UNPLUGGED = 'unplugged'

# ============================================================================
# METADATA RESOLUTION
# ============================================================================

RESOLVER_THREAD_NAME = 'BatteryUsage Icon Loader'
RESOLVER_THREAD_NICE = 19               # lowest scheduling priority on Linux
RESOLVER_IDLE_TIMEOUT = 2.0             # seconds a drained worker lingers
RESOLVER_JOIN_TIMEOUT = 5.0             # seconds to wait on shutdown

KERNEL_UID = 0
KERNEL_LABEL = 'Kernel'
MEDIASERVER_PROCESS = 'mediaserver'
MEDIASERVER_LABEL = 'Media server'
SYSTEM_ICON = 'ic_power_system'
DEFAULT_ACTIVITY_ICON = 'sym_def_app_icon'

# ============================================================================
# SUBSYSTEM LABELS AND ICONS
# ============================================================================

SUBSYSTEM_LABELS = {
    'PHONE': 'Voice calls',
    'SCREEN': 'Display',
    'WIFI': 'Wi-Fi',
    'BLUETOOTH': 'Bluetooth',
    'IDLE': 'Phone idle',
    'CELL': 'Cell standby',
}

SUBSYSTEM_ICONS = {
    'PHONE': 'ic_settings_voice_calls',
    'SCREEN': 'ic_settings_display',
    'WIFI': 'ic_settings_wifi',
    'BLUETOOTH': 'ic_settings_bluetooth',
    'IDLE': 'ic_settings_phone_idle',
    'CELL': 'ic_settings_cell_standby',
}

# ============================================================================
# CALLBACKS
# ============================================================================

MAX_UPDATE_CALLBACKS = 10
