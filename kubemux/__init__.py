"""kubemux: shared Kubernetes informers with one upstream watch per resource kind."""

__version__ = "0.1.0"
