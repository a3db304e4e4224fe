#!/usr/bin/env python3
"""
🐧 Fuel Gauge Type Definitions
=============================
Copyright (c) 2025 PNGN-Tec LLC

Shared type system for power attribution. Enums, exceptions and the Sipper
variants used across the fuel gauge modules.
"""

from dataclasses import dataclass
from typing import ClassVar, Dict, Optional
from enum import Enum, auto

from config import SUBSYSTEM_ICONS, SUBSYSTEM_LABELS

# ============================================================================
# ENUMS
# ============================================================================

class DrainType(Enum):
    """Category a power consumer belongs to"""
    APP = auto()
    PHONE = auto()
    SCREEN = auto()
    WIFI = auto()
    BLUETOOTH = auto()
    IDLE = auto()
    CELL = auto()

class StatsType(Enum):
    """Which counter set of the snapshot to read"""
    TOTAL = auto()
    UNPLUGGED = auto()

    @property
    def toggled(self) -> 'StatsType':
        """The other statistics mode"""
        return StatsType.UNPLUGGED if self is StatsType.TOTAL else StatsType.TOTAL

class ResolverState(Enum):
    """Lifecycle of the metadata worker"""
    IDLE = auto()
    RUNNING = auto()
    DRAINING = auto()
    STOPPING = auto()

# ============================================================================
# EXCEPTIONS
# ============================================================================

class StatsUnavailableError(Exception):
    """The statistics snapshot could not be obtained or decoded"""

class PackageNotFoundError(LookupError):
    """Identity lookup does not know the requested package"""

# ============================================================================
# SIPPERS
# ============================================================================

@dataclass
class Sipper:
    """
    One power consumer.

    Attributes:
        value: Estimated draw in normalized units (mA x ms / 1000)
        name: Display label, None until resolved for apps
        icon: Icon identifier, None until resolved for apps
        percent_of_total: value / total power x 100, set by the ranker
        percent_of_max: value / max power x 100, set by the ranker
    """
    drain_type: ClassVar[DrainType]

    value: float = 0.0
    name: Optional[str] = None
    icon: Optional[str] = None
    percent_of_total: float = 0.0
    percent_of_max: float = 0.0

    @property
    def key(self) -> str:
        """Key the display layer files this entry under"""
        return self.drain_type.name

    def usage_details(self) -> Dict[str, float]:
        """Breakdown shown when drilling into this entry"""
        return {}

@dataclass
class AppSipper(Sipper):
    """Application consumer, one per uid"""
    drain_type: ClassVar[DrainType] = DrainType.APP

    uid: int = 0
    cpu_time_ms: int = 0
    cpu_fg_time_ms: int = 0
    gps_time_ms: int = 0
    tcp_bytes_sent: int = 0
    tcp_bytes_received: int = 0
    representative_process: Optional[str] = None  # highest CPU drain
    representative_package: Optional[str] = None  # set once resolved

    @property
    def key(self) -> str:
        return str(self.uid)

    @property
    def is_resolved(self) -> bool:
        """Check if name and icon are both known"""
        return self.name is not None and self.icon is not None

    def usage_details(self) -> Dict[str, float]:
        return {
            'cpu': self.cpu_time_ms,
            'cpu_foreground': self.cpu_fg_time_ms,
            'gps': self.gps_time_ms,
            'data_sent': self.tcp_bytes_sent,
            'data_received': self.tcp_bytes_received,
        }

@dataclass
class UsageSipper(Sipper):
    """Hardware subsystem with an on-time"""
    usage_time_ms: int = 0

    def __post_init__(self):
        if self.name is None:
            self.name = SUBSYSTEM_LABELS.get(self.drain_type.name)
        if self.icon is None:
            self.icon = SUBSYSTEM_ICONS.get(self.drain_type.name)

    def usage_details(self) -> Dict[str, float]:
        return {'on_time': self.usage_time_ms}

@dataclass
class PhoneSipper(UsageSipper):
    drain_type: ClassVar[DrainType] = DrainType.PHONE

@dataclass
class ScreenSipper(UsageSipper):
    drain_type: ClassVar[DrainType] = DrainType.SCREEN

@dataclass
class WifiSipper(UsageSipper):
    drain_type: ClassVar[DrainType] = DrainType.WIFI

@dataclass
class BluetoothSipper(UsageSipper):
    drain_type: ClassVar[DrainType] = DrainType.BLUETOOTH

@dataclass
class IdleSipper(UsageSipper):
    drain_type: ClassVar[DrainType] = DrainType.IDLE

@dataclass
class CellSipper(UsageSipper):
    """Cell standby; also reports time spent without coverage"""
    drain_type: ClassVar[DrainType] = DrainType.CELL

    no_coverage_percent: float = 0.0

    def usage_details(self) -> Dict[str, float]:
        return {
            'on_time': self.usage_time_ms,
            'no_coverage': self.no_coverage_percent,
        }

# ============================================================================
# METADATA
# ============================================================================

@dataclass(frozen=True)
class UidDetail:
    """Resolved identity of a uid, cached for the life of the screen"""
    name: str
    icon: Optional[str]
    package_name: Optional[str] = None

@dataclass(frozen=True)
class MetadataUpdate:
    """Message from the resolver worker to the display thread"""
    uid: int
    name: str
    icon: Optional[str]
    package_name: Optional[str] = None

    @property
    def key(self) -> str:
        return str(self.uid)

# ============================================================================
# EXPORT ALL PUBLIC TYPES
# ============================================================================

__all__ = [
    # Enums
    'DrainType',
    'StatsType',
    'ResolverState',

    # Exceptions
    'StatsUnavailableError',
    'PackageNotFoundError',

    # Sippers
    'Sipper',
    'AppSipper',
    'UsageSipper',
    'PhoneSipper',
    'ScreenSipper',
    'WifiSipper',
    'BluetoothSipper',
    'IdleSipper',
    'CellSipper',

    # Metadata
    'UidDetail',
    'MetadataUpdate',
]
