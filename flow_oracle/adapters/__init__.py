"""Price source and ledger adapters"""
