"""
Marginalia entry point.
"""
from __future__ import annotations

from marginalia.app import MarginaliaApplication


def main() -> int:
    app = MarginaliaApplication()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
