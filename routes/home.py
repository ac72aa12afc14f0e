from flask import redirect

from routes.base import render


def index(ctx, params):
    if ctx.session.is_logged_in():
        return redirect('/dashboard')
    return render(ctx, 'home/index.html', title=f"Welcome to {ctx.config['APP_NAME']}")
