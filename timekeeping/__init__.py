"""Time-entry lifecycle accounting: durations, transitions, live ticking and bulk actions."""

from timekeeping.logging_config import install_trace_level

__version__ = "0.3.0"

install_trace_level()
