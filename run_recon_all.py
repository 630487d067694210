#!/usr/bin/env python3
"""Run FreeSurfer recon-all across a subject list with GNU parallel."""

from __future__ import annotations

from recon_parallel.cli import main


if __name__ == "__main__":
    main()
