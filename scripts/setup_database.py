#!/usr/bin/env python3
"""
Database setup and validation script
"""

import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from hebrew_birthdays import config
from hebrew_birthdays.config import (
    BATCH_UPDATE_RPC,
    BIRTHDAYS_TABLE,
    HEBREW_COLUMNS,
    RATE_LIMITS_TABLE,
    REQUIRED_ENV_VARS,
    TENANT_MEMBERS_TABLE,
)
from hebrew_birthdays.core.hebcal_client import HebcalClient
from hebrew_birthdays.database.supabase_client import SupabaseClient

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SCHEMA_FILE = Path(__file__).parent.parent / "sql" / "hebrew_birthday_sync.sql"


def main():
    """Validate environment, tables, columns, the batch RPC and Hebcal reachability"""
    logger.info("Setting up database connection...")

    missing = [name for name in REQUIRED_ENV_VARS if not getattr(config, name, None)]
    if missing:
        logger.error(f"❌ Missing environment variables: {', '.join(missing)}")
        sys.exit(1)

    try:
        supabase = SupabaseClient()
        supabase.ping()
        logger.info("✅ Database connection successful")

        for table in [BIRTHDAYS_TABLE, RATE_LIMITS_TABLE, TENANT_MEMBERS_TABLE]:
            try:
                supabase.client.table(table).select('*').limit(1).execute()
                logger.info(f"✅ Table '{table}' exists and accessible")
            except Exception as e:
                logger.error(f"❌ Table '{table}' not accessible: {e}")
                logger.error(f"Please run {SCHEMA_FILE.name} in the Supabase SQL editor")
                sys.exit(1)

        try:
            supabase.client.table(BIRTHDAYS_TABLE).select(','.join(HEBREW_COLUMNS)).limit(1).execute()
            logger.info("✅ Hebrew date columns present on '%s'", BIRTHDAYS_TABLE)
        except Exception as e:
            logger.error(f"❌ Hebrew date columns missing on '{BIRTHDAYS_TABLE}': {e}")
            sys.exit(1)

        try:
            # An empty batch touches nothing but proves the function exists
            supabase.client.rpc(BATCH_UPDATE_RPC, {'updates': []}).execute()
            logger.info(f"✅ RPC '{BATCH_UPDATE_RPC}' callable")
        except Exception as e:
            logger.error(f"❌ RPC '{BATCH_UPDATE_RPC}' not callable: {e}")
            sys.exit(1)

        if HebcalClient().test_connection():
            logger.info("✅ Hebcal converter reachable")
        else:
            logger.warning("⚠️ Hebcal converter not reachable; syncs will fail until it is")

        logger.info("✅ Database setup validation completed successfully")

    except Exception as e:
        logger.error(f"❌ Database setup failed: {e}")
        logger.error("Please check your Supabase credentials and connection")
        sys.exit(1)


if __name__ == "__main__":
    main()
