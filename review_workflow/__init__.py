"""Review workflow: scan a codebase, triage findings, resolve them batch by batch."""

__version__ = "0.1.0"
