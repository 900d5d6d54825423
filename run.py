#!/usr/bin/env python3
"""
dBank Ledger Entry Point

Starts the FastAPI server with the ledger engine. The ledger snapshot is
restored at startup and written back at shutdown.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dbank.api import run_server
from dbank.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("🏦 Starting dBank Ledger...")
    print(f"💾 Snapshot file: {config.snapshot_path}")
    print(f"🌐 API available at: http://localhost:{config.api_port}")
    print(f"📚 Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(debug=False)
    except KeyboardInterrupt:
        print("\n👋 Shutting down dBank Ledger...")
    except Exception as e:
        print(f"❌ Error starting server: {e}")
        sys.exit(1)
