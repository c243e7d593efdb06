"""
Data Loading and Format Dispatch for Lap Telemetry Analysis

This module recognizes which logger produced a file and routes it to the
matching normalizer. Detection runs over a closed set of formats in a fixed
priority order: the first normalizer that claims the content parses it.
"""

import enum
import logging
from pathlib import Path
from typing import Optional

from . import alfano_parser
from . import dove_parser
from . import motec_csv
from . import motec_ld
from . import nmea_parser
from . import vbo_parser
from .config import ProcessingConfig
from .errors import FormatDetectionFailure
from .models import ParsedFile
from .parser_utils import Content

logger = logging.getLogger(__name__)


class NormalizerKind(enum.Enum):
    """Supported log formats, declared in detection priority order."""

    MOTEC_BINARY = "motec_ld"
    VBO = "vbo"
    ENHANCED_CSV = "dove_csv"
    MOTEC_CSV = "motec_csv"
    ALFANO_CSV = "alfano_csv"
    NMEA = "nmea"

    @property
    def module(self):
        return _MODULES[self]

    @property
    def format_name(self) -> str:
        return self.module.FORMAT_NAME


_MODULES = {
    NormalizerKind.MOTEC_BINARY: motec_ld,
    NormalizerKind.VBO: vbo_parser,
    NormalizerKind.ENHANCED_CSV: dove_parser,
    NormalizerKind.MOTEC_CSV: motec_csv,
    NormalizerKind.ALFANO_CSV: alfano_parser,
    NormalizerKind.NMEA: nmea_parser,
}


def detect_format(content: Content) -> NormalizerKind:
    """
    Identify the format of a log.

    Args:
        content: Raw bytes or text of the log.

    Returns:
        The first NormalizerKind, in priority order, whose detector accepts
        the content.

    Raises:
        FormatDetectionFailure: If no normalizer recognizes the content.
    """
    for kind in NormalizerKind:
        if kind.module.detect(content):
            logger.debug("Detected %s content", kind.format_name)
            return kind
    raise FormatDetectionFailure("Unrecognized log format")


def parse_log(content: Content, kind: Optional[NormalizerKind] = None,
              config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """
    Parse a log into the canonical sample stream.

    Args:
        content: Raw bytes or text of the log.
        kind: Force a format instead of detecting it.
        config: Processing thresholds. Defaults apply when None.

    Returns:
        ParsedFile for the log.

    Raises:
        FormatError: If the format is not recognized, the data is malformed
            or no sample survives filtering.
    """
    if kind is None:
        kind = detect_format(content)
    parsed = kind.module.parse(content, config)
    logger.info("Parsed %s: %d samples over %.1fs", kind.format_name, len(parsed.samples),
                parsed.duration / 1000.0)
    return parsed


def load_log_file(path: Path, kind: Optional[NormalizerKind] = None,
                  config: Optional[ProcessingConfig] = None) -> ParsedFile:
    """Read a log file from disk and parse it."""
    path = Path(path)
    with path.open("rb") as handle:
        content = handle.read()
    return parse_log(content, kind=kind, config=config)
