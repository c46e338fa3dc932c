"""Notifications module -- typed per-user notifications and team fan-out.

Provides the tagged-union notification schemas and the
NotificationOrchestrator (create, query, invitations, settle-all fan-out).
"""
