"""
Issues Bounded Context
======================

The issue aggregate and everything that mutates it: status transitions,
assignment, escalation, comments and the audit trail.
"""
