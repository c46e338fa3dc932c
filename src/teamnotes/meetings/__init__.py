"""Meetings module -- meeting schemas, speaker extraction and transcript processing.

Provides the Meeting and ActionItem models, the transcript speaker
extractor, and the team-aware processor that turns an uploaded transcript
into a persisted meeting with assigned action items.
"""
