# Taskboard: personal kanban board backed by a local key-value store
#
# Components:
#   storage.py   - Key-value substrates (memory, SQLite) and the JSON adapter
#   sync.py      - Sync signal pub/sub and the SQLite file watcher
#   identity.py  - User registration and credential checks
#   sessions.py  - Concurrent login sessions and their tokens
#   board.py     - Per-user board of columns and tasks
#   theme.py     - Global light/dark preference
#   client.py    - One execution context (current session, reload on sync)
#   config.py    - YAML configuration
#   cli.py       - Command-line front-end
