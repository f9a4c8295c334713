from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, List, Optional

import structlog
from sqlalchemy.ext.asyncio import async_sessionmaker

from launchtest.config import get_settings
from launchtest.core import database
from launchtest.models.decision import Decision, DecisionConfidence, DecisionStatus
from launchtest.models.schemas import (
    CreateDecisionInput,
    DecisionAnalysisResult,
    UpdateDecisionInput,
)
from launchtest.services.decisions.analysis import RawCounts, analyze_variants
from launchtest.services.decisions.repository import (
    DecisionRepository,
    SqlAlchemyDecisionRepository,
)
from launchtest.services.statistics.thresholds import parse_decision_config

logger = structlog.get_logger()


class DecisionService:
    """Persistence-facing side of the decision engine.

    The statistics run synchronously in ``analyze_variants``; this class only
    turns an analysis into a decision record and delegates storage to the
    injected repository.
    """

    def __init__(self, repository: DecisionRepository):
        self.repository = repository

    def _snapshot(self, analysis: DecisionAnalysisResult) -> dict:
        payload = analysis.model_dump(mode="json")
        return {
            "confidence": DecisionConfidence(analysis.confidence.value),
            "winner_json": payload["winner_info"] or {},
            "ranking_json": payload["ranking"],
            "stats_json": payload["stats"],
            "rationale": analysis.rationale,
        }

    async def create_decision(
        self,
        run_id: str,
        analysis: DecisionAnalysisResult,
        user_id: Optional[str] = None,
        finalize: bool = False,
    ) -> Decision:
        data = CreateDecisionInput(
            run_id=run_id,
            status=DecisionStatus.FINAL if finalize else DecisionStatus.DRAFT,
            decided_at=datetime.now(timezone.utc) if finalize else None,
            created_by_user_id=user_id,
            **self._snapshot(analysis),
        )

        decision = await self.repository.create(data)

        logger.info(
            "decision_created",
            decision_id=decision.id,
            run_id=run_id,
            status=data.status.value,
            confidence=data.confidence.value,
        )
        return decision

    async def update_decision(
        self,
        decision_id: str,
        analysis: DecisionAnalysisResult,
        finalize: bool = False,
    ) -> Optional[Decision]:
        data = UpdateDecisionInput(
            status=DecisionStatus.FINAL if finalize else DecisionStatus.DRAFT,
            decided_at=datetime.now(timezone.utc) if finalize else None,
            **self._snapshot(analysis),
        )

        decision = await self.repository.update(decision_id, data)

        if decision is None:
            logger.warning("decision_not_found", decision_id=decision_id)
        else:
            logger.info(
                "decision_updated",
                decision_id=decision_id,
                status=data.status.value,
                confidence=data.confidence.value,
            )
        return decision

    async def get_latest_decision(self, run_id: str) -> Optional[Decision]:
        return await self.repository.find_latest_by_run_id(run_id)

    async def get_final_decision(self, run_id: str) -> Optional[Decision]:
        return await self.repository.find_final_by_run_id(run_id)

    async def finalize_decision(self, decision_id: str) -> Optional[Decision]:
        decision = await self.repository.mark_final(decision_id)
        if decision is not None:
            logger.info("decision_finalized", decision_id=decision_id, run_id=decision.run_id)
        return decision

    async def has_final_decision(self, run_id: str) -> bool:
        return await self.repository.has_final_decision(run_id)

    async def get_decision_history(
        self, run_id: str, limit: int = 50, offset: int = 0
    ) -> List[Decision]:
        return await self.repository.find_by_run_id(run_id, limit=limit, offset=offset)

    async def analyze_and_record(
        self,
        run_id: str,
        raw_counts: Iterable[RawCounts],
        raw_config: Any = None,
        user_id: Optional[str] = None,
    ) -> Decision:
        """Analyze the run's current counts and store the result as a draft decision."""
        settings = get_settings()

        analysis = analyze_variants(
            raw_counts,
            parse_decision_config(raw_config),
            simulations=settings.BAYES_SIMULATIONS,
            seed=settings.BAYES_SEED,
        )

        return await self.create_decision(run_id, analysis, user_id=user_id)


@asynccontextmanager
async def decision_service_scope(
    session_maker: Optional[async_sessionmaker] = None,
) -> AsyncIterator[DecisionService]:
    """Yield a ``DecisionService`` backed by one database session.

    The session closes when the block exits; ``session_maker`` defaults to the
    configured ``database.async_session_maker``.
    """
    async with (session_maker or database.async_session_maker)() as session:
        yield DecisionService(SqlAlchemyDecisionRepository(session))
