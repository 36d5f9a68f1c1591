"""Pool engine: grid lifecycle, digit lock, claims, payouts and winners.

Each state-changing operation runs in a single transaction and commits
before any notification is sent.
"""
