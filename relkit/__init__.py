"""relkit: release packaging and publishing pipeline."""

__version__ = "0.3.0"
