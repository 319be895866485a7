"""Sport attendance package.

Feature modules (codes, ledger, sessions, checkin, progress) hold the
check-in and integrity-ledger logic; a thin Flask controller layer exposes
them over JSON, backed by MySQL or an in-memory store.
"""
