"""Strategy selection and ordered fallback across extraction strategies."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Protocol, Sequence, assert_never

from engine.direct_api import STRATEGY_NAME as DIRECT_API
from engine.errors import ErrorKind
from engine.json_utils import log_event
from engine.models import AcquisitionRequest, AttemptRecord, ExtractionOutcome, Operation
from engine.ytdlp_strategy import STRATEGY_NAME as EXTERNAL_TOOL
from input.platform_router import Platform

logger = logging.getLogger(__name__)

_DIRECT_API_OPERATIONS = (Operation.VIDEO, Operation.METADATA)


class Strategy(Protocol):
    name: str

    async def execute(self, request: AcquisitionRequest) -> ExtractionOutcome: ...


def plan_strategies(platform: Platform, operation: Operation) -> tuple[str, ...]:
    """Return strategy names to try, in order, for ``platform`` and ``operation``."""
    match platform:
        case Platform.INSTAGRAM:
            if operation in _DIRECT_API_OPERATIONS:
                return (DIRECT_API, EXTERNAL_TOOL)
            return (EXTERNAL_TOOL,)
        case Platform.YOUTUBE | Platform.TIKTOK | Platform.FACEBOOK | Platform.LINKEDIN | Platform.UNKNOWN:
            return (EXTERNAL_TOOL,)
        case _:
            assert_never(platform)


async def run_strategies(strategies: Sequence[Strategy], request: AcquisitionRequest) -> ExtractionOutcome:
    """Try ``strategies`` in order and return the first success.

    When every strategy fails the last failure is returned with all earlier
    failures recorded in ``attempts``. Exceptions escaping a strategy are
    reported as ``UpstreamOther``; this coroutine never raises.
    """
    attempts: list[AttemptRecord] = []
    last_failure: ExtractionOutcome | None = None
    for strategy in strategies:
        try:
            outcome = await strategy.execute(request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("strategy raised strategy=%s session=%s", strategy.name, request.session_token)
            outcome = ExtractionOutcome.failed(strategy.name, ErrorKind.UPSTREAM_OTHER, str(exc) or repr(exc))

        if outcome.success:
            log_event(
                logging.INFO,
                "STRATEGY_SUCCEEDED",
                session=request.session_token,
                strategy=strategy.name,
                operation=request.operation.value,
                failed_before=len(attempts),
            )
            return outcome

        kind = outcome.error_kind or ErrorKind.UPSTREAM_OTHER
        attempts.append(AttemptRecord(strategy=strategy.name, kind=kind, message=outcome.error or ""))
        last_failure = outcome
        log_event(
            logging.WARNING,
            "STRATEGY_FAILED",
            session=request.session_token,
            strategy=strategy.name,
            operation=request.operation.value,
            kind=kind.value,
            error=outcome.error,
        )

    if last_failure is None:
        return ExtractionOutcome.failed("", ErrorKind.INVALID_INPUT, "no extraction strategy available")
    return last_failure.with_attempts(attempts)


class StrategyOrchestrator:
    """Binds strategy names from ``plan_strategies`` to strategy instances."""

    def __init__(self, strategies: Mapping[str, Strategy]) -> None:
        self._strategies = dict(strategies)

    def plan(self, platform: Platform, operation: Operation) -> list[Strategy]:
        planned = []
        for name in plan_strategies(platform, operation):
            strategy = self._strategies.get(name)
            if strategy is None:
                logger.warning("strategy not registered name=%s", name)
                continue
            planned.append(strategy)
        return planned

    async def acquire(self, request: AcquisitionRequest) -> ExtractionOutcome:
        return await run_strategies(self.plan(request.platform, request.operation), request)
