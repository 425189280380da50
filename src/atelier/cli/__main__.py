"""CLI entry point for atelier.cli module.

Enables execution via: python -m atelier.cli (same as python -m atelier.cli.reap_jobs)
"""

from atelier.cli.reap_jobs import main

if __name__ == "__main__":
    raise SystemExit(main())
