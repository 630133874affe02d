"""Backup, validation and duplicate management for job-application records."""

__version__ = "0.3.0"
