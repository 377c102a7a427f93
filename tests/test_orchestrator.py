from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from engine.errors import ErrorKind
from engine.models import AcquisitionRequest, ExtractionOutcome, Operation
from engine.orchestrator import StrategyOrchestrator, plan_strategies, run_strategies
from input.platform_router import Platform


class _Strategy:
    def __init__(self, name: str, outcome: ExtractionOutcome | None = None, error: Exception | None = None) -> None:
        self.name = name
        self.outcome = outcome
        self.error = error
        self.calls = 0

    async def execute(self, request):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.outcome


def _request(platform: Platform = Platform.INSTAGRAM, operation: Operation = Operation.VIDEO) -> AcquisitionRequest:
    return AcquisitionRequest(
        url="https://www.instagram.com/reel/Cxyz123AbC/",
        operation=operation,
        platform=platform,
        session_token="mg_orch",
    )


@pytest.mark.parametrize("operation", [Operation.VIDEO, Operation.METADATA])
def test_instagram_video_and_metadata_try_direct_api_first(operation: Operation) -> None:
    assert plan_strategies(Platform.INSTAGRAM, operation) == ("direct_api", "ytdlp")


@pytest.mark.parametrize("operation", [Operation.AUDIO, Operation.TRANSCRIPT, Operation.THUMBNAIL])
def test_instagram_other_operations_use_external_tool(operation: Operation) -> None:
    assert plan_strategies(Platform.INSTAGRAM, operation) == ("ytdlp",)


@pytest.mark.parametrize("platform", [p for p in Platform if p is not Platform.INSTAGRAM])
@pytest.mark.parametrize("operation", list(Operation))
def test_other_platforms_use_external_tool(platform: Platform, operation: Operation) -> None:
    assert plan_strategies(platform, operation) == ("ytdlp",)


def test_first_success_wins_and_earlier_errors_are_discarded() -> None:
    first = _Strategy("a", ExtractionOutcome.failed("a", ErrorKind.BOT_DETECTION, "bot check"))
    second = _Strategy("b", ExtractionOutcome(success=True, strategy="b", artifact_path=Path("/tmp/x.mp4")))
    third = _Strategy("c", ExtractionOutcome(success=True, strategy="c"))

    outcome = asyncio.run(run_strategies([first, second, third], _request()))

    assert outcome.success
    assert outcome.strategy == "b"
    assert outcome.error is None
    assert third.calls == 0


def test_all_failures_return_last_with_attempts() -> None:
    first = _Strategy("a", ExtractionOutcome.failed("a", ErrorKind.AUTH_REQUIRED, "login"))
    second = _Strategy("b", ExtractionOutcome.failed("b", ErrorKind.NOT_FOUND, "gone"))

    outcome = asyncio.run(run_strategies([first, second], _request()))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.NOT_FOUND
    assert outcome.error == "gone"
    assert [(a.strategy, a.kind) for a in outcome.attempts] == [
        ("a", ErrorKind.AUTH_REQUIRED),
        ("b", ErrorKind.NOT_FOUND),
    ]


def test_raising_strategy_becomes_upstream_other() -> None:
    broken = _Strategy("a", error=KeyError("boom"))
    fallback = _Strategy("b", ExtractionOutcome.failed("b", ErrorKind.TIMEOUT, "slow"))

    outcome = asyncio.run(run_strategies([broken, fallback], _request()))

    assert outcome.error_kind is ErrorKind.TIMEOUT
    assert outcome.attempts[0].kind is ErrorKind.UPSTREAM_OTHER
    assert fallback.calls == 1


def test_orchestrator_runs_planned_strategies_in_order() -> None:
    order: list[str] = []

    class _Recording(_Strategy):
        async def execute(self, request):
            order.append(self.name)
            return await super().execute(request)

    direct = _Recording("direct_api", ExtractionOutcome.failed("direct_api", ErrorKind.NOT_FOUND, "no node"))
    external = _Recording("ytdlp", ExtractionOutcome(success=True, strategy="ytdlp"))
    orchestrator = StrategyOrchestrator({"ytdlp": external, "direct_api": direct})

    outcome = asyncio.run(orchestrator.acquire(_request()))

    assert outcome.strategy == "ytdlp"
    assert order == ["direct_api", "ytdlp"]


def test_orchestrator_without_strategies_fails_cleanly() -> None:
    outcome = asyncio.run(StrategyOrchestrator({}).acquire(_request(Platform.YOUTUBE)))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.INVALID_INPUT
