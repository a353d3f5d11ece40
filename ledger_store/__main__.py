"""
Inspect a ledger store from the command line

Loads the configured snapshot under the instance lock, prints account
balances and any cached balances that disagree with the transfer log,
then releases the lock. Fatal load errors exit with their error code.
"""

import asyncio
import json
import sys

from .config import get_config
from .errors import FatalLedgerError
from .logging_config import setup_logging
from .store import LedgerStore


async def summarize() -> dict:
    async with await LedgerStore.open() as store:
        return {
            "accounts": [
                {"id": account.id, "name": account.name, "balance": account.balance}
                for account in store.list_accounts()
            ],
            "transfers": len(store.transfers()),
            "mismatches": {
                account_id: {"cached": cached, "replayed": replayed}
                for account_id, (cached, replayed) in store.reconcile().items()
            },
        }


def main() -> int:
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    try:
        summary = asyncio.run(summarize())
    except FatalLedgerError as e:
        logger.critical(str(e))
        return e.exit_code
    print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
