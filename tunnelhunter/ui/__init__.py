"""Console status display."""

from .status import StatusReporter, render_line
