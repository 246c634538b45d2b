"""Run one backup from environment configuration: ``python -m d1backup``."""

from __future__ import annotations

import asyncio
import logging
import os
import sys

from d1backup import Config, D1BackupError, run_backup

logger = logging.getLogger("d1backup")


def main() -> int:
    logging.basicConfig(
        level=logging.DEBUG if os.getenv("DEBUG") else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        report = asyncio.run(run_backup(Config()))
    except D1BackupError as exc:
        logger.error("Error: %s", exc)
        if exc.hint:
            logger.error("Hint: %s", exc.hint)
        return 1
    logger.info("Backup written to %s", report.key)
    return 0


if __name__ == "__main__":
    sys.exit(main())
