"""
Lap Telemetry Analysis

This package ingests GPS/telemetry logs from racing data-loggers (MoTeC,
VBOX, Dove, Alfano, NMEA), normalizes them into one canonical sample stream,
segments the stream into laps and sectors by start/finish and sector line
crossings, and aligns laps by travelled distance to compute pace deltas.

This module re-exports the public functions of the individual modules.
"""

# Import errors
from .errors import (
    LaptraceError,
    FormatError,
    FormatDetectionFailure,
    MalformedData,
    NoValidSamples,
)

# Import configuration
from .config import (
    ProcessingConfig,
    DEFAULT_CONFIG,
    load_config,
)

# Import data model
from .models import (
    Sample,
    FieldMapping,
    Bounds,
    ParsedFile,
    GeoPoint,
    CourseLine,
    CourseDefinition,
    SectorTimes,
    Lap,
    AlignmentResult,
    OptimalLap,
    BrakingZone,
)

# Import data loading functions
from .data_loading import (
    NormalizerKind,
    detect_format,
    parse_log,
    load_log_file,
)

# Import conditioning functions
from .conditioning import (
    calculate_accelerations,
    apply_gforce_calculations,
    smoothing_window_size,
    smooth_values,
    smooth_channel,
    detect_speed_glitches,
    repair_speed_glitches,
    repair_sample_speeds,
)

# Import braking zone detection
from .braking import (
    BrakingZoneConfig,
    DEFAULT_BRAKING_CONFIG,
    compute_braking_g_series,
    detect_braking_zones,
)

# Import lap analysis functions
from .lap_analysis import (
    detect_laps,
    lap_samples,
    find_fastest_lap,
    calculate_optimal_lap,
    format_lap_time,
    format_sector_time,
)

# Import alignment functions
from .alignment import (
    calculate_distance_array,
    project_to_plane,
    compute_reference_data,
    interpolate_at_distance,
    calculate_pace,
    calculate_reference_speed,
    align_channel,
    align_laps,
    build_lap_delta_traces,
)

# Import telemetry functions
from .telemetry import (
    samples_to_frame,
    lap_frame,
    laps_to_frame,
    build_telemetry_records,
    telemetry_to_geojson,
)

# Import export functions
from .export import (
    export_lap_csv,
)

# Import session builder functions
from .session import (
    analyze_log,
    build_payload,
    build_session_payload,
)

__version__ = "0.1.0"

__all__ = [
    # Errors
    "LaptraceError",
    "FormatError",
    "FormatDetectionFailure",
    "MalformedData",
    "NoValidSamples",
    # Configuration
    "ProcessingConfig",
    "DEFAULT_CONFIG",
    "load_config",
    # Data model
    "Sample",
    "FieldMapping",
    "Bounds",
    "ParsedFile",
    "GeoPoint",
    "CourseLine",
    "CourseDefinition",
    "SectorTimes",
    "Lap",
    "AlignmentResult",
    "OptimalLap",
    "BrakingZone",
    # Data loading
    "NormalizerKind",
    "detect_format",
    "parse_log",
    "load_log_file",
    # Conditioning
    "calculate_accelerations",
    "apply_gforce_calculations",
    "smoothing_window_size",
    "smooth_values",
    "smooth_channel",
    "detect_speed_glitches",
    "repair_speed_glitches",
    "repair_sample_speeds",
    "BrakingZoneConfig",
    "DEFAULT_BRAKING_CONFIG",
    "compute_braking_g_series",
    "detect_braking_zones",
    # Lap analysis
    "detect_laps",
    "lap_samples",
    "find_fastest_lap",
    "calculate_optimal_lap",
    "format_lap_time",
    "format_sector_time",
    # Alignment
    "calculate_distance_array",
    "project_to_plane",
    "compute_reference_data",
    "interpolate_at_distance",
    "calculate_pace",
    "calculate_reference_speed",
    "align_channel",
    "align_laps",
    "build_lap_delta_traces",
    # Telemetry
    "samples_to_frame",
    "lap_frame",
    "laps_to_frame",
    "build_telemetry_records",
    "telemetry_to_geojson",
    # Export
    "export_lap_csv",
    # Session builder
    "analyze_log",
    "build_payload",
    "build_session_payload",
]
