"""
Constants for Lap Telemetry Analysis

This module defines unit conversion factors and physical constants used
throughout the parsing, conditioning and alignment pipeline.
"""

# Speed conversions
MPS_TO_MPH = 2.23694
MPS_TO_KPH = 3.6
MPH_TO_MPS = 0.44704
KNOTS_TO_MPS = 0.514444

# Physics
GRAVITY = 9.80665  # m/s^2
EARTH_RADIUS_M = 6371000.0

# Native accelerometer channels above this magnitude are assumed to be m/s^2
NATIVE_G_UNIT_THRESHOLD = 5.0
MAX_ABS_G = 5.0

MS_PER_DAY = 86400000.0

# Canonical derived channel names
LAT_G_FIELD = "Lat G"
LON_G_FIELD = "Lon G"
