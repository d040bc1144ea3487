"""
extensions.py - Flask Extensions
Extensions are created here and bound to the application in app.py with init_app(),
so models and blueprints can import them without circular imports.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_bcrypt import Bcrypt

# ORM session and model base for grades, strand assessments, rosters and subjects
db = SQLAlchemy()

# Schema migrations (flask db init / migrate / upgrade)
migrate = Migrate()

# Staff session management; the logged-in user becomes the grading actor
login_manager = LoginManager()

# Password hashing for staff accounts
bcrypt = Bcrypt()
