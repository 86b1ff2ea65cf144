"""
Tests for the prompt seeding script
"""

from app.models import PromptTemplate
from app.services.prompt_manager import get_active_prompt
from scripts.seed_prompts import seed_prompts


def test_seeds_reference_entry_prompt(db_session):
    assert seed_prompts(db_session) == (1, 0)

    prompt = get_active_prompt(db_session, "knowledge", "reference_entry")
    assert prompt.version == 1
    assert "{{ agency }}" in prompt.user_prompt_template


def test_seeding_is_idempotent(db_session):
    seed_prompts(db_session)

    assert seed_prompts(db_session) == (0, 1)
    assert db_session.query(PromptTemplate).count() == 1
