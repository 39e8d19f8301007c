"""Shared Flask extensions for the application."""
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy database instance shared across the app. This is the system of
# record; only the gateways issue queries against it.
db = SQLAlchemy()
