"""Sync infrastructure.

Modules:
    orchestrator - Staged sync state machine (full, retry, background)
    identity     - Wallet encryption key session
    state_store  - Last-sync date persistence
    remote       - Remote store contract
"""
