import os
import logging
from flask import Flask, jsonify, send_from_directory
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_migrate import Migrate
from itsdangerous import URLSafeTimedSerializer
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Initialize extensions
db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
s = URLSafeTimedSerializer(os.getenv('SECRET_KEY', 'a_default_secret_key_for_development'))

# Domain constants
MEAL_TYPES = ('breakfast', 'lunch', 'dinner', 'snack')
INVENTORY_LOCATIONS = ('fridge', 'freezer', 'pantry')
ITEM_CATEGORIES = ('Produce', 'Dairy', 'Meat & Seafood', 'Bakery', 'Frozen',
                   'Pantry', 'Beverages', 'Snacks', 'Other')

def create_app(test_config=None):
    """Create and configure an instance of the Flask application."""
    app = Flask(__name__)

    # --- CONFIGURATION ---
    app.config['SECRET_KEY'] = os.getenv('SECRET_KEY', 'a_default_secret_key_for_development')

    database_url = os.getenv("DATABASE_URL")
    if database_url and database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    app.config['SQLALCHEMY_DATABASE_URI'] = database_url or 'sqlite:///mealprep.db'
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['UPLOAD_FOLDER'] = os.getenv('UPLOAD_FOLDER', os.path.join(app.instance_path, 'uploads'))
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024

    app.config['GOOGLE_API_KEY'] = os.getenv('GOOGLE_API_KEY')
    app.config['GEMINI_MODEL'] = os.getenv('GEMINI_MODEL', 'gemini-2.5-pro')
    app.config['AI_TIMEOUT'] = int(os.getenv('AI_TIMEOUT', 60))
    app.config['UNSPLASH_ACCESS_KEY'] = os.getenv('UNSPLASH_ACCESS_KEY')
    app.config['MAX_HOUSEHOLD_MEMBERS'] = int(os.getenv('MAX_HOUSEHOLD_MEMBERS', 6))
    app.config['LOG_LEVEL'] = os.getenv('LOG_LEVEL', 'INFO')

    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO))

    # --- INITIALIZE EXTENSIONS ---
    db.init_app(app)
    bcrypt.init_app(app)
    login_manager.init_app(app)
    migrate.init_app(app, db)

    from .ai import configure_ai
    configure_ai(app)

    # --- BLUEPRINTS ---
    with app.app_context():
        # Import models here to avoid circular imports
        from . import models

        @login_manager.user_loader
        def load_user(user_id):
            return db.session.get(models.User, int(user_id))

        @login_manager.unauthorized_handler
        def unauthorized():
            return jsonify({'error': 'Unauthorized'}), 401

        from .errors import register_error_handlers
        register_error_handlers(app)

        # Import and register blueprints
        from .auth import auth as auth_blueprint
        app.register_blueprint(auth_blueprint, url_prefix='/auth')

        from .recipes import recipes as recipes_blueprint
        app.register_blueprint(recipes_blueprint, url_prefix='/api/recipes')

        from .planner import planner as planner_blueprint
        app.register_blueprint(planner_blueprint, url_prefix='/api/meal-plans')

        from .shopping import shopping as shopping_blueprint
        app.register_blueprint(shopping_blueprint, url_prefix='/api/shopping-lists')

        from .inventory import inventory as inventory_blueprint
        app.register_blueprint(inventory_blueprint, url_prefix='/api')

        from .household import household as household_blueprint
        app.register_blueprint(household_blueprint, url_prefix='/api')

        from .commands import init_db_command, expire_invitations_command
        app.cli.add_command(init_db_command)
        app.cli.add_command(expire_invitations_command)

        @app.route('/uploads/<path:filename>')
        def uploaded_file(filename):
            return send_from_directory(app.config['UPLOAD_FOLDER'], filename)

        return app
