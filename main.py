from __future__ import annotations

from subtrack.api.server import main

if __name__ == "__main__":
    main()
