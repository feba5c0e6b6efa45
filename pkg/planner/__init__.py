# Project planner: boards, tasks, activity log, and project membership
#
# Components:
#   schema.py    - Data model (Board, Column, Task, Activity, Project, User)
#   errors.py    - Error taxonomy (NotFound, InvalidCode, AlreadyExists, ...)
#   store.py     - Persistence backends (in-memory and SQLite)
#   activity.py  - Activity recorder (append-only audit entries)
#   board.py     - Board mutation API (tasks, comments, subtasks, attachments)
#   registry.py  - Projects, invite codes, and membership roles
#   users.py     - User directory and login sessions
#   config.py    - YAML configuration and backend selection
