# Overview: Flask extension instances for database, migrations, and notification signals.

from blinker import Namespace
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

# Signals published by the notification bus (one per event name)
order_signals = Namespace()
