"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskView, TaskSelector)
- task_store.py: canonical task arena + per-assignee index, persisted as JSON
- registry.py: departments, managers, bot config
- search.py: fuzzy scoring over the deduplicated task set
- reminders.py: polling scheduler for reminder/overdue notices
- timeparse.py: due-date and duration parsing
- export.py: JSON/CSV export of task records
"""
