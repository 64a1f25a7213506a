"""stackplan — environment-aware Kubernetes topology composer."""

__version__ = "0.1.0"
