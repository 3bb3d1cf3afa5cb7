"""Run one subscription charge batch synchronously and print the result as JSON."""

import json
import logging

from app.core import database
from app.core.config import settings
from app.services.batch_runner import BatchRunner


def run() -> dict:
    db = database.SessionLocal()
    try:
        result = BatchRunner(db).run_batch()
    finally:
        db.close()
    return {
        "processed": result.processed,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "skipped": result.skipped,
        "errors": [{"subscription_id": str(sid), "error": err} for sid, err in result.errors],
    }


if __name__ == "__main__":
    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    print(json.dumps(run(), indent=2))
