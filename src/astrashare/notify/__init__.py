"""
Completion notifications.

Components:
- gate.py: at-most-once notification decision + bounded notified set
- notified_store.py: SQLite key-value store for state that survives restarts
- console_notifier.py: console implementation of the Notifier port
"""
