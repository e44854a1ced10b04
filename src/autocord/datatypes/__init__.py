"""
Plain data types shared across Autocord.

- **discord_datatypes.py**: Snowflake wrappers used at the py-cord boundary.
- **rule_datatypes.py**: Rule, trigger variants, ConditionSet, action variants.
- **event_datatypes.py**: Normalized inbound events and their payloads.
- **execution_datatypes.py**: ExecutionContext and ExecutionReport.
- **filter_datatypes.py**: Content filters, violations and ViolationLog records.
"""
