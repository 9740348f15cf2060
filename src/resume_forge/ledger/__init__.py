"""Token ledger: admission debits and idempotent purchase credits."""
