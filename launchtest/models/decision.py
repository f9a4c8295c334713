import enum

from sqlalchemy import JSON, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Index, String, Text
from sqlalchemy.sql import func

from launchtest.core.database import Base


class DecisionStatus(str, enum.Enum):
    """Draft decisions may be rewritten; final decisions are write-once."""

    DRAFT = "draft"
    FINAL = "final"


class DecisionConfidence(str, enum.Enum):
    INSUFFICIENT = "insufficient"
    DIRECTIONAL = "directional"
    CONFIDENT = "confident"


class Decision(Base):
    """
    A recorded outcome of the decision engine for one launch test run.

    Stores the confidence tier, winner, ranking and statistics snapshot
    produced by an analysis so the run report can be rendered later.
    """

    __tablename__ = "decisions"

    id = Column(String, primary_key=True)
    run_id = Column(String, nullable=False)

    status = Column(SQLEnum(DecisionStatus), nullable=False, default=DecisionStatus.DRAFT)
    confidence = Column(SQLEnum(DecisionConfidence), nullable=False)

    # Analysis snapshot
    winner_json = Column(JSON)  # WinnerInfo, or {} when there is no winner
    ranking_json = Column(JSON)  # List of ranking entries
    stats_json = Column(JSON)  # Aggregate, Wilson and Bayes details plus thresholds used
    rationale = Column(Text)

    decided_at = Column(DateTime(timezone=True))  # Set when finalized
    created_by_user_id = Column(String)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("ix_decisions_run_id_created_at", "run_id", "created_at"),)
