"""pkctl commands package.

Structure:
    commands/
    ├── __init__.py          # This file
    ├── common.py            # Shared options, engine and session gate wiring
    ├── agent.py             # lock, lockall, unlock, status
    ├── secrets.py           # create, update, delete, get, list, dir, env
    └── keys.py              # password
"""
