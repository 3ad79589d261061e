#!/usr/bin/env python3
"""Load a JSON export of pre-migration accounts into the legacy table.

Usage: import_legacy_accounts.py export.json

The export is a list of objects shaped like::

    {"username": "old_name", "password": {"hmac": "sha256", "iterations": 10000,
     "salt": "<base64>", "digest": "<base64>"}, "verified": false,
     "playtime_seconds": 0, "games": 0, "achievements": []}
"""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import TypeAdapter, ValidationError

from bastion.core.config import get_settings
from bastion.core.security import SessionTokenDeriver
from bastion.db.session import create_engine, create_schema, create_session_factory
from bastion.schemas.account import LegacyAccountExport
from bastion.services.store import SqlAccountStore

logger = logging.getLogger("import_legacy_accounts")


async def import_accounts(path: Path) -> int:
    settings = get_settings()
    try:
        entries = TypeAdapter(list[LegacyAccountExport]).validate_python(json.loads(path.read_text("utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.error("Could not read %s: %s", path, exc)
        return 1

    engine = create_engine(settings.database_url)
    try:
        await create_schema(engine)
        store = SqlAccountStore(create_session_factory(engine), SessionTokenDeriver(settings.session_token_hash))
        for entry in entries:
            await store.save_legacy(entry.to_record())
    finally:
        await engine.dispose()

    logger.info("Imported %d legacy account(s) from %s", len(entries), path)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if len(sys.argv) != 2:
        print(__doc__)
        sys.exit(2)
    sys.exit(asyncio.run(import_accounts(Path(sys.argv[1]))))
