"""
SLA Bounded Context
===================

SLA timing for issues: the per-priority policy, the breach clock, the
working-hours calendar, policy hot-reload and the background monitor that
notifies on (and optionally escalates) breached issues.
"""
