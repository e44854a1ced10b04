"""Autocord: a rule-driven automation engine for Discord guilds."""
