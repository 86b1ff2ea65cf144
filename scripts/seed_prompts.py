#!/usr/bin/env python
"""
Seed Initial Prompts

Copies the built-in reference-entry prompt into prompt_templates as version 1
so it can be edited (copy-on-edit) without a deploy.

Usage:
    DATABASE_URL=postgresql://... python scripts/seed_prompts.py

Idempotent: skips prompts that already exist (checks task_type + name + version).
"""

from typing import Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from app.models.prompt_template import PromptTemplate
from app.services.knowledge_synthesizer import (
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_USER_TEMPLATE,
    PROMPT_NAME,
    PROMPT_TASK_TYPE,
)

PROMPTS_TO_SEED = [
    {
        'task_type': PROMPT_TASK_TYPE,
        'name': PROMPT_NAME,
        'version': 1,
        'system_prompt': DEFAULT_SYSTEM_PROMPT,
        'user_prompt_template': DEFAULT_USER_TEMPLATE,
        'is_active': True,
        'created_by': 'system_migration',
        'description': 'Built-in reference entry prompt from knowledge_synthesizer.py',
        'model_name': None,
        'temperature': 0.2,
        'max_tokens': 2048
    },
]


def seed_prompts(db: Session) -> Tuple[int, int]:
    """
    Insert any missing seed prompts.

    Returns:
        (seeded_count, skipped_count)
    """
    seeded_count = 0
    skipped_count = 0

    try:
        for prompt_data in PROMPTS_TO_SEED:
            existing = db.query(PromptTemplate).filter(
                and_(
                    PromptTemplate.task_type == prompt_data['task_type'],
                    PromptTemplate.name == prompt_data['name'],
                    PromptTemplate.version == prompt_data['version']
                )
            ).first()

            if existing:
                print(
                    f"Skipping {prompt_data['task_type']}.{prompt_data['name']} "
                    f"v{prompt_data['version']} - already exists"
                )
                skipped_count += 1
                continue

            db.add(PromptTemplate(**prompt_data))
            print(f"Seeded {prompt_data['task_type']}.{prompt_data['name']} v{prompt_data['version']} (active)")
            seeded_count += 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    return seeded_count, skipped_count


def main():
    from app import database

    database.init_db()
    if database.SessionLocal is None:
        raise SystemExit("DATABASE_URL is not set")

    db = database.SessionLocal()
    try:
        seeded, skipped = seed_prompts(db)
        print(f"Prompt seeding complete: {seeded} seeded, {skipped} skipped")
    finally:
        db.close()


if __name__ == '__main__':
    main()
