"""Backup automation services.

This package provides:
- Retention tier planning over the remote listing
- Archive production (database dump + encrypted 7z archive)
- Remote rotation of a tier in the object store
- Email notifications
- Orchestration of a single backup run
"""
