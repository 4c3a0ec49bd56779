"""Script-to-video generator: timed scenes, AI stills, crossfaded render."""

__version__ = "0.1.0"
