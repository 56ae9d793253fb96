"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Access, Issues, SLA).

Architecture Pattern: Modular Monolith
- Each module (access, issues, sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add issue lifecycle or SLA rules to the shared kernel.
"""
