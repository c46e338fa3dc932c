"""Tasks module -- automatic and manual action item assignment.

Provides the TaskAssignmentEngine: owner-hint auto-assignment, manual and
bulk assignment, status transitions and per-user task queries.
"""
