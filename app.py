import logging

from flask import Flask
from config import Config
from extensions import db, migrate, cache, socketio
from core.dispatcher import init_front_controller
from core.session import CacheSessionStore, MemorySessionStore
from routes.web import build_router
import models.ticket  # noqa: F401
import models.user  # noqa: F401


def create_session_store(app):
    if app.config["SESSION_STORE"] == "memory":
        return MemorySessionStore()
    return CacheSessionStore(cache)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)
    if app.config["DATA_BACKEND"] == "rest" and (not app.config.get("SUPABASE_URL") or not app.config.get("SUPABASE_ANON_KEY")):
        raise RuntimeError("SUPABASE_URL или SUPABASE_ANON_KEY не заданы в окружении")

    logging.basicConfig(level=logging.DEBUG if app.config["APP_DEBUG"] else logging.INFO)

    # Инициализация расширений
    db.init_app(app)
    migrate.init_app(app, db)
    cache.init_app(app)
    socketio.init_app(app)

    # Все запросы проходят через единый фронт-контроллер
    init_front_controller(app, build_router(), create_session_store(app))

    return app


if __name__ == "__main__":
    app = create_app()
    socketio.run(app, host="0.0.0.0", port=8080, debug=app.config["APP_DEBUG"])
