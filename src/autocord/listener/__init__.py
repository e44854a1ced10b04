"""
Py-cord Cogs feeding gateway events into the rule engine.

- **events_listener.py**: Translates messages, member joins/leaves and
  reaction changes into InboundEvents and hands them to the RuleEngine.
"""
