"""
Market scan subsystem.

Components:
- sse.py: event-stream frame decoder
- scan_models.py: ScanMatch, ScanProgress, ScanPattern
- scan_session.py: one cancellable streaming scan
"""
