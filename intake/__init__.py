"""
Recruitment Intake
Applicant registration, department applications and a Google Sheets mirror.

Architecture:
- MongoDB: source of truth (users, applications, sync checkpoints, cache)
- Google Sheets: reviewer-facing copy, synced both ways on an interval
- FastAPI: registration, submission and admin export endpoints
"""

__version__ = "1.0.0"
