"""
Prompt Lookup
Loads the active version of a database-managed prompt template
"""

from sqlalchemy.orm import Session
from sqlalchemy import and_
import structlog

from app.models.prompt_template import PromptTemplate

logger = structlog.get_logger(__name__)


def get_active_prompt(db: Session, task_type: str, name: str) -> PromptTemplate | None:
    """
    Get currently active prompt template.

    Args:
        db: SQLAlchemy database session
        task_type: e.g., 'knowledge'
        name: Human-readable prompt name, e.g. 'reference_entry'

    Returns:
        Active PromptTemplate or None if no active version

    Example:
        prompt = get_active_prompt(db, 'knowledge', 'reference_entry')
        system_prompt = prompt.system_prompt if prompt else DEFAULT_SYSTEM_PROMPT
    """
    prompt = db.query(PromptTemplate).filter(
        and_(
            PromptTemplate.task_type == task_type,
            PromptTemplate.name == name,
            PromptTemplate.is_active.is_(True)
        )
    ).order_by(PromptTemplate.version.desc()).first()

    if not prompt:
        logger.debug("no_active_prompt", task_type=task_type, name=name)
        return None

    logger.debug(
        "active_prompt_loaded",
        task_type=task_type,
        name=name,
        version=prompt.version,
        prompt_id=prompt.id
    )

    return prompt


__all__ = ["get_active_prompt"]
