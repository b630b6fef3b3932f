"""
Companion Engine — Entry Point.

Single entry point: `python main.py` runs the engine headless.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from companion.runner import main

if __name__ == "__main__":
    main()
