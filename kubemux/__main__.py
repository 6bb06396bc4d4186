"""Entry point for `python -m kubemux`.

Usage:
    python -m kubemux watch pods -n default
    python -m kubemux resources
"""

from __future__ import annotations

from kubemux.cli import cli

cli()
