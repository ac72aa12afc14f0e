from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_caching import Cache
from flask_socketio import SocketIO

# Схема таблиц для локального бэкенда и список допустимых колонок для обоих
db = SQLAlchemy()
migrate = Migrate()

# Серверные сессии и счётчики неудачных входов
cache = Cache()

# Уведомления о новых комментариях к тикетам
socketio = SocketIO(cors_allowed_origins="*")
