#!/usr/bin/env python3
"""
Script to export saved cover letters to PDF files on disk.

Usage:
    python export_letters.py --user-id abc123 --out ./exports                  # Export every letter of a user
    python export_letters.py --user-id abc123 --letter-id 7 --out ./exports    # Export one letter
"""

import asyncio
import argparse
import sys
from pathlib import Path

# Add parent directory to path to import app modules
sys.path.insert(0, str(Path(__file__).parent))

from sqlalchemy import select
from letter_studio.db import get_db_context
from letter_studio.models_db import CoverLetter, User
from letter_studio.pdf_generator import Ok, export_cover_letter_pdf, save_pdf
from letter_studio.schemas import LetterContent, UserProfile
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def export_letters(user_id: str, out_dir: Path, letter_id: int = None) -> int:
    """Export the user's letters into ``out_dir``. Returns the number of files written."""
    async with get_db_context() as db:
        user = await db.get(User, user_id)
        if not user:
            logger.error(f"User {user_id} not found")
            return 0

        query = select(CoverLetter).where(CoverLetter.user_id == user_id)
        if letter_id is not None:
            query = query.where(CoverLetter.id == letter_id)
        result = await db.execute(query.order_by(CoverLetter.id))
        letters = result.scalars().all()

    if not letters:
        logger.warning("No cover letters matched")
        return 0

    profile = UserProfile.from_user(user)
    written = 0
    for record in letters:
        content = LetterContent.model_validate(record.content or {})
        outcome = export_cover_letter_pdf(record.name, content, profile=profile)
        if isinstance(outcome, Ok):
            path = save_pdf(outcome.artifact, out_dir)
            logger.info(f"✅ {record.name} -> {path} ({outcome.artifact.render_path})")
            written += 1
        else:
            logger.error(f"❌ {record.name}: {outcome.reason}")

    return written


async def main():
    parser = argparse.ArgumentParser(description='Export saved cover letters as PDF files')
    parser.add_argument('--user-id', type=str, required=True, help='Owner of the letters')
    parser.add_argument('--letter-id', type=int, help='Export a single letter')
    parser.add_argument('--out', type=Path, default=Path('exports'), help='Output directory')

    args = parser.parse_args()

    written = await export_letters(args.user_id, args.out, args.letter_id)
    logger.info(f"Exported {written} cover letter(s) to {args.out}")


if __name__ == "__main__":
    asyncio.run(main())
