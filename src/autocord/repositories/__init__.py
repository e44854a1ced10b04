"""
Typed repositories over the StateStore families.

- **rules_repo.py**: Rule records and per-rule fire counters.
- **variables_repo.py**: Per-user and per-guild template variables.
- **filter_repo.py**: Per-channel and guild-wide content filters.
"""
