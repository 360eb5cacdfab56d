# backend/secattest/__init__.py
"""
Security training attestation engine.

The workflow lives in secattest/apps/*:

- workflow    -> session / module transition tables
- training    -> sessions, modules, scoring, workflow services
- evidence    -> immutable, content-hashed attestation records
- compliance  -> delivery of evidence to external compliance providers
- audit       -> append-only audit trail
"""

__version__ = "1.0.0"
