"""
Configuration management for Autocord.

- **app_configuration.py**: YAML configuration loader guarded by fcntl file
  locks. Exposes the database location, transient-message delay, default
  timeout length, automation firing policy and filter notice truncation.
  Falls back to defaults on missing or malformed config files.
"""
