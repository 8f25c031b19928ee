"""
Aedera Scenario Platform
SQLAlchemy extension instance shared by every model module.

Usage:
    from aedera.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
