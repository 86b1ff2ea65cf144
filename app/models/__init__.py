"""
Database Models
"""

from app.models.correction import Correction
from app.models.accuracy_stat import AccuracyStat
from app.models.knowledge import KnowledgeCandidate, KnowledgeEntry
from app.models.dd_report import DDReport
from app.models.prompt_template import PromptTemplate
from app.models.ai_usage_log import AIUsageLog

__all__ = [
    "Correction",
    "AccuracyStat",
    "KnowledgeCandidate",
    "KnowledgeEntry",
    "DDReport",
    "PromptTemplate",
    "AIUsageLog",
]
