"""
Polsim — Engine process entrypoint.

Central coordination entrypoint that:
1. Opens the SQL store and creates missing tables
2. Wires the reputation, policy, campaign, election and immigration services
3. Starts the turn scheduler for every active auto-advancing session
4. Keeps the process alive with a periodic heartbeat

Usage:
    python -m polsim.orchestrator
"""

from __future__ import annotations

import asyncio
import logging
import random
import sys

import structlog

from polsim.config import settings

logger = logging.getLogger(__name__)

HEARTBEAT_SECONDS = 60


def configure_logging() -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if settings.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


async def main() -> None:
    """Main engine loop."""
    configure_logging()
    log = structlog.get_logger()

    log.info(
        "polsim.orchestrator.starting",
        narrative_model=settings.narrative_model,
        turn_length_hours=settings.turn_length_hours,
    )

    # Phase 1: Storage
    from polsim.storage.service import SqlStore

    store = SqlStore(settings.database_url)
    store.initialize()
    log.info("polsim.orchestrator.store_ready")

    # Phase 2: Services
    from polsim.elections.service import ElectionService
    from polsim.elections.voting import NPCVoteSimulator
    from polsim.governance.campaigns import CampaignManager
    from polsim.governance.policies import PolicyLifecycleManager
    from polsim.reputation.service import ReputationService
    from polsim.simulation.immigration import ImmigrationService

    rng = random.Random()
    reputation = ReputationService(store, rng=rng)
    policies = PolicyLifecycleManager(store, reputation_service=reputation)
    campaigns = CampaignManager(store, store, reputation, rng=rng)
    elections = ElectionService(
        store, store, simulator=NPCVoteSimulator(rng), reputation_service=reputation
    )
    immigration = ImmigrationService(store, store)

    narrative = None
    if settings.openai_api_key or settings.anthropic_api_key:
        from polsim.narrative.client import NarrativeClient

        narrative = NarrativeClient()
        log.info("polsim.orchestrator.narrative_enabled", model=narrative.model)

    log.info("polsim.orchestrator.services_ready")

    # Phase 3: Turn clock
    from polsim.simulation.scheduler import TurnScheduler
    from polsim.simulation.turns import TurnOrchestrator

    turns = TurnOrchestrator(
        store, reputation, policies, campaigns, elections, immigration, narrative=narrative
    )
    scheduler = TurnScheduler(turns)
    scheduled = await scheduler.initialize_all_sessions()
    log.info("polsim.orchestrator.running", sessions_scheduled=scheduled)

    try:
        while True:
            sessions = await store.list_sessions()
            log.debug(
                "polsim.orchestrator.heartbeat",
                sessions=len(sessions),
                timers=sum(scheduler.is_scheduled(s.id) for s in sessions),
            )
            await asyncio.sleep(HEARTBEAT_SECONDS)

    except (KeyboardInterrupt, asyncio.CancelledError):
        log.info("polsim.orchestrator.shutdown")
    except Exception as e:
        log.exception("polsim.orchestrator.fatal_error", error=str(e))
        await scheduler.shutdown()
        sys.exit(1)
    await scheduler.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
