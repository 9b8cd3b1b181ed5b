"""Demo e-commerce service that exists to emit metrics, traces and logs."""

__version__ = "1.0.0"
