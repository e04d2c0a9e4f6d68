"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, ProgressEntry, StatusSnapshot)
- task_registry.py: in-memory registry, the single source of truth for task state
- task_poller.py: self-terminating poller for non-terminal tasks
- task_detail.py: on-demand progress/report fetch for the open task
- task_api.py: submit/delete/history/select entry points used by the UI
- live_analysis.py: one foreground analysis streamed over server-sent events
"""
