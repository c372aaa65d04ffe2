#!/usr/bin/env python3
"""Run the Observability Query Server."""

import os
import sys

# Add the src directory to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from obs_query_server.server import main  # noqa: E402


if __name__ == "__main__":
    config_file = sys.argv[1] if len(sys.argv) > 1 else None
    if config_file:
        print(f"Using config: {config_file}")
    main(config_file)
