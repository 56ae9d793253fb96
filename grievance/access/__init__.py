"""
Access Bounded Context
======================

Who may see and do what: the permission model, the comment visibility
guard and principal resolution from bearer tokens.
"""
