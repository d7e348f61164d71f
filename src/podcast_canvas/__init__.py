"""podcast canvas: branching podcast scripts on an auto-laid-out canvas."""

__version__ = "0.1.0"
