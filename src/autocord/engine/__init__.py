"""
Automation engine.

- **errors.py**: Error taxonomy shared by every layer.
- **platform_sink.py**: Interface the engine uses to act on the chat platform.
- **template_resolver.py**: ``{placeholder}`` substitution.
- **trigger_matcher.py**: Selects candidate rules for an inbound event.
- **condition_evaluator.py**: Permission and cooldown gates.
- **action_executor.py**: Runs a rule's actions with per-action isolation.
- **content_filter.py**: Moderation-style message filters and the violation log.
- **rule_engine.py**: Pipeline orchestration per inbound event.
- **rule_admin.py**: CRUD and preview entry points for administrators.
"""
