"""
AgileTrack Pro
SQLAlchemy models package.

The shared ``db`` handle is bound to the app in ``create_app``; its session
is scoped to the application context, so every request gets its own
unit of work.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
