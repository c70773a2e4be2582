"""
Persistence subsystem.

Components:
- json_state.py: atomic JSON documents with timestamped backup rotation
- guard.py: single-writer guard around every save sequence
- remote_sync.py: optional replication hook (GitHub contents API)
"""
