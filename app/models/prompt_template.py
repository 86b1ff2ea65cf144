"""
PromptTemplate Model
Stores versioned prompt templates with task-type organization
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, Float, DateTime, CheckConstraint, Index
from sqlalchemy.sql import func, text
from app.database import Base


class PromptTemplate(Base):
    """
    Immutable versioned prompt template.

    Services look up the active version for their (task_type, name) and fall
    back to a built-in prompt when none is active. Used today by the
    reference synthesizer (task_type 'knowledge', name 'reference_entry').

    Version immutability:
    Once created, prompt content (system_prompt, user_prompt_template, model config)
    cannot be modified. New versions are created via copy-on-edit.
    """
    __tablename__ = "prompt_templates"

    # Primary Key
    id = Column(Integer, primary_key=True, index=True)

    # Organization
    task_type = Column(String(50), nullable=False, index=True)  # 'knowledge', 'report_notes'
    name = Column(String(100), nullable=False)
    version = Column(Integer, nullable=False)  # Incremented per (task_type, name)

    # Template content (immutable after creation)
    system_prompt = Column(Text, nullable=True)
    user_prompt_template = Column(Text, nullable=False)  # Jinja2 template

    # Activation state (only one active per task_type + name)
    is_active = Column(Boolean, default=False, nullable=False)

    # Metadata
    created_by = Column(String(100), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    description = Column(Text, nullable=True)

    # Model configuration
    model_name = Column(String(50), nullable=True)  # NULL = settings.anthropic_model
    temperature = Column(Float, default=0.2)
    max_tokens = Column(Integer, default=2048)

    __table_args__ = (
        CheckConstraint('version > 0', name='version_positive'),
        # Partial index for fast active prompt lookup
        Index('idx_prompt_templates_active', 'task_type', 'name', postgresql_where=text('is_active = TRUE')),
    )

    def __repr__(self):
        active_status = "ACTIVE" if self.is_active else "inactive"
        return f"<PromptTemplate({self.task_type}.{self.name} v{self.version} [{active_status}])>"
