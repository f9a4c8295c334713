import abc
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from launchtest.models.decision import Decision, DecisionStatus
from launchtest.models.schemas import CreateDecisionInput, UpdateDecisionInput


class DecisionFinalizedError(Exception):
    """Raised when a write targets a decision that has already been finalized."""

    def __init__(self, decision_id: str):
        super().__init__(f"Decision {decision_id} is final and cannot be modified")
        self.decision_id = decision_id


class DecisionRepository(abc.ABC):
    """Storage for decision records, injected into ``DecisionService``."""

    @abc.abstractmethod
    async def create(self, data: CreateDecisionInput) -> Decision: ...

    @abc.abstractmethod
    async def get(self, decision_id: str) -> Optional[Decision]: ...

    @abc.abstractmethod
    async def update(self, decision_id: str, data: UpdateDecisionInput) -> Optional[Decision]:
        """Apply non-None fields. Raises ``DecisionFinalizedError`` for final decisions."""

    @abc.abstractmethod
    async def find_by_run_id(
        self, run_id: str, limit: int = 50, offset: int = 0
    ) -> List[Decision]: ...

    @abc.abstractmethod
    async def find_latest_by_run_id(self, run_id: str) -> Optional[Decision]: ...

    @abc.abstractmethod
    async def find_final_by_run_id(self, run_id: str) -> Optional[Decision]: ...

    @abc.abstractmethod
    async def mark_final(
        self, decision_id: str, decided_at: Optional[datetime] = None
    ) -> Optional[Decision]: ...

    @abc.abstractmethod
    async def count_by_run_id(self, run_id: str) -> int: ...

    @abc.abstractmethod
    async def has_final_decision(self, run_id: str) -> bool: ...


class SqlAlchemyDecisionRepository(DecisionRepository):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, data: CreateDecisionInput) -> Decision:
        decision = Decision(
            id=str(uuid.uuid4()),
            run_id=data.run_id,
            status=data.status,
            confidence=data.confidence,
            winner_json=data.winner_json,
            ranking_json=data.ranking_json,
            stats_json=data.stats_json,
            rationale=data.rationale,
            decided_at=data.decided_at,
            created_by_user_id=data.created_by_user_id,
            created_at=datetime.now(timezone.utc),
        )

        self.db.add(decision)
        await self.db.commit()
        await self.db.refresh(decision)

        return decision

    async def get(self, decision_id: str) -> Optional[Decision]:
        result = await self.db.execute(select(Decision).where(Decision.id == decision_id))
        return result.scalar_one_or_none()

    async def update(self, decision_id: str, data: UpdateDecisionInput) -> Optional[Decision]:
        decision = await self.get(decision_id)
        if not decision:
            return None

        if decision.status == DecisionStatus.FINAL:
            raise DecisionFinalizedError(decision_id)

        for field, value in data.model_dump(exclude_none=True).items():
            setattr(decision, field, value)

        await self.db.commit()
        await self.db.refresh(decision)

        return decision

    async def find_by_run_id(
        self, run_id: str, limit: int = 50, offset: int = 0
    ) -> List[Decision]:
        result = await self.db.execute(
            select(Decision)
            .where(Decision.run_id == run_id)
            .order_by(Decision.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def find_latest_by_run_id(self, run_id: str) -> Optional[Decision]:
        result = await self.db.execute(
            select(Decision)
            .where(Decision.run_id == run_id)
            .order_by(Decision.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def find_final_by_run_id(self, run_id: str) -> Optional[Decision]:
        result = await self.db.execute(
            select(Decision)
            .where(Decision.run_id == run_id, Decision.status == DecisionStatus.FINAL)
            .order_by(Decision.decided_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_final(
        self, decision_id: str, decided_at: Optional[datetime] = None
    ) -> Optional[Decision]:
        decision = await self.get(decision_id)
        if not decision:
            return None

        # Finalizing twice keeps the first decision time
        if decision.status == DecisionStatus.FINAL:
            return decision

        decision.status = DecisionStatus.FINAL
        decision.decided_at = decided_at or datetime.now(timezone.utc)

        await self.db.commit()
        await self.db.refresh(decision)

        return decision

    async def count_by_run_id(self, run_id: str) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Decision).where(Decision.run_id == run_id)
        )
        return result.scalar_one()

    async def has_final_decision(self, run_id: str) -> bool:
        result = await self.db.execute(
            select(func.count())
            .select_from(Decision)
            .where(Decision.run_id == run_id, Decision.status == DecisionStatus.FINAL)
        )
        return result.scalar_one() > 0
