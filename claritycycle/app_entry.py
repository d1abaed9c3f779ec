from __future__ import annotations

import sys
from pathlib import Path

try:
    from claritycycle.cli import main as cli_main
except ModuleNotFoundError:
    # Fallback for direct script execution: python claritycycle/app_entry.py
    project_root = Path(__file__).resolve().parents[1]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))
    from claritycycle.cli import main as cli_main


def main() -> int:
    # Default behavior is to serve the API.
    if len(sys.argv) > 1:
        return cli_main(sys.argv[1:])
    return cli_main(["serve"])


if __name__ == "__main__":
    raise SystemExit(main())
