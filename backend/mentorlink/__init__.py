# backend/mentorlink/__init__.py
"""MentorLink real-time messaging backend."""

__version__ = "1.0.0"
