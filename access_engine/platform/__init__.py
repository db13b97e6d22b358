"""
Platform services: roles, explicit school context, audit events and
best-effort side effects.
"""
