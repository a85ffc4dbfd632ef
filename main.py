import logging
import asyncio
import argparse

from init import get_session, init_tables
from mlm_engine import HierarchyService
import config

logger = logging.getLogger(__name__)


# region Maintenance

async def rebuild_paths(session_factory):
    session = session_factory()
    try:
        result = await HierarchyService(session).rebuildAllPaths()
    finally:
        session.close()

    logger.info(
        f"Hierarchy rebuild finished: checked={result['checked']}, "
        f"updated={result['updated']}, errors={len(result['errors'])}"
    )
    for error in result['errors']:
        logger.warning(f"Hierarchy rebuild: {error}")
    return result

# endregion


def run(argv=None):
    parser = argparse.ArgumentParser(description="Referral engine maintenance")
    parser.add_argument("command", choices=["init-db", "rebuild-paths"])
    parser.add_argument("--database-url", default=None)
    args = parser.parse_args(argv)

    session_factory, engine = get_session(args.database_url)
    init_tables(engine)
    logger.info("Database tables ready")

    if args.command == "init-db":
        return 0

    result = asyncio.run(rebuild_paths(session_factory))
    return 0 if result["success"] else 1


if __name__ == '__main__':
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO))
    raise SystemExit(run())
