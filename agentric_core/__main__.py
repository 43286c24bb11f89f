"""
AgentricAI Orchestration Core - Entry Point

Allows the package to be executed directly using 'python -m agentric_core'.
"""

import sys

from .server import main

if __name__ == "__main__":
    sys.exit(main())
