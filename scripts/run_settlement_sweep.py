from __future__ import annotations

import argparse
import logging

from app.reconcile.coordinator import default_coordinator
from app.workers.settlement_worker import require_shared_store


def main() -> None:
    parser = argparse.ArgumentParser(description="Settle synced offline IOUs once.")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    require_shared_store()
    outcomes = default_coordinator().settle_synced(limit=max(1, args.limit))

    print(
        "counts:",
        f"processed={len(outcomes)}",
        f"settled={sum(1 for o in outcomes if o.settled)}",
        f"retryable={sum(1 for o in outcomes if not o.settled and o.retryable)}",
        f"rejected={sum(1 for o in outcomes if not o.settled and o.retryable is False)}",
    )
    for o in outcomes:
        if not o.settled:
            print(f"iou={o.iou_id} status={o.status} error={o.error}")


if __name__ == "__main__":
    main()
