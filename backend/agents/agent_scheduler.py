"""
Agent Scheduler
Runs registered agents periodically on an APScheduler AsyncIOScheduler.
Each run is a single attempt; a failed cycle is simply picked up by the next tick.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from infrastructure.errors import UnregisteredAgentError

from .agent_engine import AgentEngine
from .models import ExecutionResult

logger = logging.getLogger("AgentScheduler")


class AgentScheduler:
    """
    One interval job per agent (job id "agent_<id>").
    max_instances=1 keeps ticks of the same agent from overlapping.
    """

    def __init__(self, engine: AgentEngine, interval_seconds: Optional[int] = None):
        self.engine = engine
        self.interval_seconds = interval_seconds or engine.config.engine.scheduler_interval_seconds
        self.scheduler = AsyncIOScheduler()

    @staticmethod
    def job_id(agent_id: str) -> str:
        return f"agent_{agent_id}"

    def schedule_agent(self, agent_id: str, interval_seconds: Optional[int] = None) -> None:
        agent_id = str(agent_id)
        self.scheduler.add_job(
            self.run_agent,
            IntervalTrigger(seconds=interval_seconds or self.interval_seconds),
            args=[agent_id],
            id=self.job_id(agent_id),
            name=f"Run agent {agent_id}",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(f"⏰ Agent {agent_id} scheduled every {interval_seconds or self.interval_seconds}s")

    def unschedule_agent(self, agent_id: str) -> bool:
        job = self.scheduler.get_job(self.job_id(agent_id))
        if job is None:
            return False
        job.remove()
        logger.info(f"⏰ Agent {agent_id} unscheduled")
        return True

    def scheduled_agents(self) -> List[str]:
        prefix = "agent_"
        return [job.id[len(prefix):] for job in self.scheduler.get_jobs() if job.id.startswith(prefix)]

    async def run_agent(self, agent_id: str) -> Optional[ExecutionResult]:
        try:
            result = await self.engine.execute_agent(agent_id)
        except UnregisteredAgentError as e:
            logger.error(f"❌ {e.message}, removing its job")
            self.unschedule_agent(agent_id)
            return None

        if result.error:
            logger.warning(f"⚠️ Agent {agent_id} cycle ended with error: {result.error}")
        return result

    async def run_all(self, agent_ids: Optional[List[str]] = None) -> Dict[str, Optional[ExecutionResult]]:
        """Run several agents concurrently; defaults to every registered agent"""
        agent_ids = [str(a) for a in (agent_ids if agent_ids is not None else self.engine.list_agents())]
        results = await asyncio.gather(*(self.run_agent(agent_id) for agent_id in agent_ids))
        return dict(zip(agent_ids, results))

    def start(self):
        """
        Start the scheduler
        """
        self.scheduler.start()
        logger.info("⏰ Agent scheduler started")

    def stop(self):
        """
        Stop the scheduler
        """
        self.scheduler.shutdown(wait=False)
        logger.info("⏰ Agent scheduler stopped")
