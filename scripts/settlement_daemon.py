# scripts/settlement_daemon.py
from __future__ import annotations

import logging

from app.workers.settlement_worker import run_forever
from settings import settings


logger = logging.getLogger("settlement_daemon")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    logger.info(
        "Settlement daemon starting; interval=%ss batch=%s policy=%s",
        settings.SWEEP_POLL_SECONDS,
        settings.SWEEP_BATCH_SIZE,
        settings.SETTLEMENT_FAILURE_POLICY,
    )
    try:
        run_forever()
    except KeyboardInterrupt:
        logger.info("Settlement daemon exiting")
        raise
    except Exception:
        logger.exception("Settlement daemon failed")
        raise


if __name__ == "__main__":
    main()
