"""
ConsultFlow — SQLAlchemy extension instance.

Every model module imports ``db`` from here so that the application factory
can bind a single engine/session to all tables:

    from consultflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
