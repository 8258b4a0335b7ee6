"""
Hubo
Shared Flask-SQLAlchemy instance.

Model modules import ``db`` from here; ``create_app`` binds it to the app.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
