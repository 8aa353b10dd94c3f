"""
Recompute every creator's tier from fresh social metrics.

Same work as the daily refresh_creator_tiers Celery task, for one-off runs after a
scoring change or a provider outage.

Usage:
    python scripts/recalculate_tiers.py
"""
import asyncio
import json
import sys
from pathlib import Path

# make the reach package importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from reach.core.config import settings
from reach.core.logging import get_logger, setup_logging
from reach.db.database import get_task_session
from reach.domain.services.creator_tier_service import CreatorTierService

logger = get_logger(__name__)


async def recalculate() -> dict[str, int]:
    async with get_task_session() as db:
        summary = await CreatorTierService(db).refresh_all()
    return summary.to_dict()


def main() -> None:
    setup_logging(level="INFO", json_format=not settings.DEBUG, app_name="reach-recalculate-tiers")
    summary = asyncio.run(recalculate())
    print(json.dumps(summary, indent=2))
    if summary["accounts_failed"]:
        logger.warning("Some accounts could not be refreshed", extra_data=summary)


if __name__ == "__main__":
    main()
