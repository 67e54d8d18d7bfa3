"""
Agent Scheduler Tests
Job registration and concurrent agent runs

Run: python -m pytest tests/test_agent_scheduler.py -v
"""

from unittest.mock import AsyncMock

import pytest

from agents.agent_scheduler import AgentScheduler
from agents.models import AgentConfig, ExecutionResult
from infrastructure.errors import UnregisteredAgentError


class TestJobs:
    def test_schedule_and_unschedule(self, engine):
        scheduler = AgentScheduler(engine, interval_seconds=60)
        scheduler.schedule_agent("1")
        scheduler.schedule_agent("2")
        scheduler.schedule_agent("1")

        assert sorted(scheduler.scheduled_agents()) == ["1", "2"]
        assert scheduler.unschedule_agent("1")
        assert not scheduler.unschedule_agent("1")
        assert scheduler.scheduled_agents() == ["2"]

    def test_interval_defaults_to_config(self, engine, core_config):
        assert AgentScheduler(engine).interval_seconds == core_config.engine.scheduler_interval_seconds

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        scheduler = AgentScheduler(engine)
        scheduler.start()
        assert scheduler.scheduler.running
        scheduler.stop()


class TestRuns:
    @pytest.mark.asyncio
    async def test_run_all_executes_every_registered_agent(self, engine):
        engine.register_agent("1", AgentConfig(goal="a"))
        engine.register_agent("2", AgentConfig(goal="b"))

        results = await AgentScheduler(engine).run_all()

        assert set(results) == {"1", "2"}
        assert all(r.executed and r.action == "none" for r in results.values())
        assert len(engine.get_agent_memory("1").observations) == 1
        assert len(engine.get_agent_memory("2").observations) == 1

    @pytest.mark.asyncio
    async def test_unregistered_agent_is_unscheduled(self, engine):
        scheduler = AgentScheduler(engine)
        scheduler.schedule_agent("ghost")

        assert await scheduler.run_agent("ghost") is None
        assert scheduler.scheduled_agents() == []

    @pytest.mark.asyncio
    async def test_failed_cycle_is_returned_not_raised(self):
        engine = AsyncMock()
        engine.config.engine.scheduler_interval_seconds = 300
        engine.execute_agent.return_value = ExecutionResult(
            action="none", params={}, reasoning="Error occurred during execution",
            confidence=0, executed=False, error="rpc down",
        )

        result = await AgentScheduler(engine).run_agent("1")

        assert result.error == "rpc down"
        engine.execute_agent.assert_awaited_once_with("1")

    @pytest.mark.asyncio
    async def test_only_unregistered_error_escapes_engine(self):
        engine = AsyncMock()
        engine.config.engine.scheduler_interval_seconds = 300
        engine.execute_agent.side_effect = UnregisteredAgentError("9")

        assert await AgentScheduler(engine).run_agent("9") is None
