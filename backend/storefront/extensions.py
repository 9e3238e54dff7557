# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

# Constructed once per process and bound to the app in create_app().
db = SQLAlchemy()
migrate = Migrate()
