"""Scheduled lawn camera snapshots, archive backfill and timelapse assembly."""

__version__ = "1.0.0"
