"""notemap: pinned-note projects on maps and boards, with file-based import and merge."""

__version__ = "0.1.0"
