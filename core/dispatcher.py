"""Front controller.

Every request goes through one Flask view that matches the path against
the ``Router``, gates non-public routes on the session and hands the
handler a ``RequestContext`` holding the per-request session, security
helper and data client.
"""
import traceback
from urllib.parse import urlparse

from flask import abort, g, redirect, render_template, request
from werkzeug.exceptions import HTTPException

from core.data_client import create_data_client
from core.router import normalize_path
from core.security import Security
from core.session import SESSION_KEY_PREFIX, Session

DISPATCH_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


class RequestContext:
    def __init__(self, request, session, security, db, config):
        self.request = request
        self.session = session
        self.security = security
        self.db = db
        self.config = config

    @property
    def user(self):
        return self.session.get_user()

    @property
    def is_admin(self):
        return self.session.is_admin()


def safe_referrer():
    """Path of the referring page when it is on this host, else ``/``."""
    referrer = request.referrer
    if not referrer:
        return "/"
    parsed = urlparse(referrer)
    if parsed.netloc and parsed.netloc != request.host:
        return "/"
    path = parsed.path or "/"
    return f"{path}?{parsed.query}" if parsed.query else path


def init_front_controller(app, router, store):
    cookie_name = app.config["SESSION_COOKIE_NAME"]
    csrf_field = app.config["CSRF_TOKEN_NAME"]

    @app.before_request
    def open_session():
        session = Session(
            store,
            request.cookies.get(cookie_name),
            timeout=app.config["SESSION_TIMEOUT"],
        ).start()
        client = create_data_client(app.config, access_token=session.get("access_token"))
        session.auth_client = client
        security = Security(
            session,
            store,
            max_attempts=app.config["LOGIN_ATTEMPTS_LIMIT"],
            lockout_time=app.config["LOGIN_LOCKOUT_TIME"],
        )
        g.ctx = RequestContext(request, session, security, client, app.config)

    @app.after_request
    def save_session(response):
        ctx = g.get("ctx")
        if ctx is None:
            return response

        session = ctx.session
        if session.data:
            session.save()
            response.set_cookie(
                cookie_name,
                session.sid,
                httponly=True,
                samesite="Strict",
                secure=request.is_secure,
            )
        else:
            store.delete(SESSION_KEY_PREFIX + session.sid)
            if request.cookies.get(cookie_name):
                response.delete_cookie(cookie_name, httponly=True, samesite="Strict", secure=request.is_secure)
        return response

    def dispatch(path=""):
        ctx = g.ctx
        # HEAD обслуживается GET-маршрутами
        method = "GET" if request.method == "HEAD" else request.method
        found = router.match(method, request.path)
        if found is None:
            abort(404)
        route, params = found

        if not route.public and not ctx.session.is_logged_in():
            if method == "GET":
                path = normalize_path(request.path)
                query = request.query_string.decode("utf-8")
                ctx.session.set("redirect_after_login", f"{path}?{query}" if query else path)
            return redirect("/login")

        if method != "GET" and not ctx.security.verify_csrf_token(request.form.get(csrf_field, "")):
            ctx.session.set_flash("error", "Invalid security token. Please try again.")
            return redirect(safe_referrer())

        return route.handler(ctx, params)

    app.add_url_rule("/", "dispatch", dispatch, defaults={"path": ""}, methods=DISPATCH_METHODS)
    app.add_url_rule("/<path:path>", "dispatch", dispatch, methods=DISPATCH_METHODS)

    @app.errorhandler(404)
    def not_found(e):
        return render_template("errors/404.html", title="Page Not Found", app_name=app.config["APP_NAME"]), 404

    @app.errorhandler(Exception)
    def application_error(e):
        if isinstance(e, HTTPException):
            return e

        app.logger.exception("Application error: %s", e)
        context = {"title": "Something went wrong", "app_name": app.config["APP_NAME"]}
        if app.config.get("APP_DEBUG"):
            context["error"] = str(e)
            context["trace"] = traceback.format_exc()
        return render_template("errors/500.html", **context), 500
