"""
app.py - Application Factory
Entry point for the grading workflow Flask application.
Uses the Application Factory pattern for modularity and testing.
"""

import logging

from flask import Flask, jsonify
from config import config
from extensions import db, migrate, login_manager, bcrypt


def create_app(config_name='development'):
    """
    Application Factory Function

    Args:
        config_name (str): Configuration to use ('development', 'production', 'testing')

    Returns:
        Flask: Configured Flask application instance
    """
    # Initialize Flask app
    app = Flask(__name__)

    # Load configuration from config.py based on environment
    config_class = config[config_name]
    app.config.from_object(config_class)
    config_class.init_app(app)

    configure_logging(app)

    # Initialize extensions with the app
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    bcrypt.init_app(app)

    # User loader callback for Flask-Login
    @login_manager.user_loader
    def load_user(user_id):
        """Load user by ID for Flask-Login session management"""
        from models import User
        return db.session.get(User, int(user_id))

    # API clients get a 401 instead of a redirect to a login page
    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({
            'success': False,
            'error': {'title': 'Login Required', 'message': 'Please log in to access this page.'}
        }), 401

    # Register blueprints (routes)
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands (flask create-principal, flask seed-demo)
    from commands import register_commands
    register_commands(app)

    # Import models so Flask-Migrate can detect them
    with app.app_context():
        import models  # noqa: F401

    return app


def configure_logging(app):
    """
    Root logger level and format from LOG_LEVEL / LOG_FORMAT
    """
    level = getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO)
    logging.basicConfig(level=level, format=app.config['LOG_FORMAT'])
    logging.getLogger().setLevel(level)
    app.logger.setLevel(level)


def register_blueprints(app):
    """
    Register all application blueprints (modular route handlers)
    """
    # Import blueprints
    from blueprints.auth.routes import auth_bp
    from blueprints.grading.routes import grading_bp

    # Register with URL prefixes
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(grading_bp, url_prefix='/grading')

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})


def register_error_handlers(app):
    """
    Register JSON error handlers for common HTTP errors
    """
    def error_response(status_code, title, message):
        return jsonify({
            'success': False,
            'error': {'title': title, 'message': message}
        }), status_code

    @app.errorhandler(404)
    def not_found(error):
        return error_response(404, 'Not Found', 'The requested resource was not found.')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_response(405, 'Method Not Allowed', 'This method is not allowed for the requested URL.')

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()  # Rollback any failed database transactions
        return error_response(500, 'Server Error', 'An unexpected error occurred. Please try again.')


# Run the application
if __name__ == '__main__':
    # Create app instance (always use development config)
    app = create_app('development')

    # Run the development server
    app.run(
        host='0.0.0.0',  # Allow external connections
        port=5000,
        debug=True  # Always debug mode during development
    )
