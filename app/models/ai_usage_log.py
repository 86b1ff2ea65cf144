"""
AIUsageLog Model
One row per language-model call, for cost tracking
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.sql import func
from app.database import Base, JSONType


class AIUsageLog(Base):
    __tablename__ = "ai_usage_logs"

    id = Column(Integer, primary_key=True)

    feature = Column(String(50), nullable=False, index=True)  # e.g. 'knowledge_entry'
    model = Column(String(100), nullable=False)

    prompt_tokens = Column(Integer, nullable=False, default=0)
    completion_tokens = Column(Integer, nullable=False, default=0)
    total_tokens = Column(Integer, nullable=False, default=0)
    estimated_cost_usd = Column(Numeric(10, 6), nullable=False, default=0)

    metadata_ = Column("metadata", JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AIUsageLog(feature='{self.feature}', model='{self.model}', tokens={self.total_tokens})>"
