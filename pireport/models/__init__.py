"""
PI Change Report
SQLAlchemy extension instance shared by all models.

Usage:
    from pireport.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
