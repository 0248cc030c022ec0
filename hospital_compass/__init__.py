"""
HealthCare Compass: hospital search and treatment cost comparison.

The package aggregates a CSV of hospital encounters into per-hospital
statistics and serves them, together with email/password accounts, from a
Flask application built by ``create_app``.
"""

from .web import create_app

__all__ = ["create_app"]
