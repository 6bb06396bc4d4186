"""kubemux command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubemux`` script).
"""

from kubemux.cli.main import cli

__all__ = ["cli"]
