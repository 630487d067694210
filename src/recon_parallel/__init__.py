"""Batch FreeSurfer reconstruction via GNU parallel.

The top-level executable is:

- run_recon_all.py (also installed as the ``recon-parallel`` console script)
"""

__all__ = [
    "cli",
    "config",
    "env",
    "logging_utils",
    "manifest",
    "report",
    "runner",
    "subjects",
    "templating",
]

__version__ = "0.1.0"
