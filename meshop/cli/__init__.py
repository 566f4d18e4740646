"""meshop command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``meshop`` script).
"""

from meshop.cli.main import cli

__all__ = ["cli"]
