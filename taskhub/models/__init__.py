"""
TaskHub models package.

``db`` is the single Flask-SQLAlchemy handle shared by every model module.
Importing the submodules registers their tables on ``db.metadata`` so that
``db.create_all()`` and Alembic autogenerate see the full schema.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
