from flask import redirect

from core.data_client import DataClientError
from forms.auth_forms import LoginForm, RegisterForm
from routes.base import bind, form_data, render, validation_failed


def show_login(ctx, params):
    if ctx.session.is_logged_in():
        return redirect('/dashboard')
    form = bind(LoginForm, ctx.session.get_form_data())
    return render(ctx, 'auth/login.html', title='Login', form=form)


def login(ctx, params):
    data = form_data(ctx)
    form = bind(LoginForm, data)
    if not form.validate():
        return validation_failed(ctx, form.errors, data, '/login')

    identifier = form.email.data
    if not ctx.security.check_rate_limit(identifier):
        ctx.session.set_flash('error', 'Too many login attempts. Please try again later.')
        return redirect('/login')

    try:
        identity = ctx.db.sign_in(identifier, form.password.data)
    except DataClientError:
        ctx.session.set_flash('error', 'Login is temporarily unavailable. Please try again later.')
        return redirect('/login')

    if identity is None:
        ctx.security.record_failed_attempt(identifier)
        ctx.session.set_form_data({'email': identifier})
        ctx.session.set_flash('error', 'Invalid email or password.')
        return redirect('/login')

    redirect_after_login = ctx.session.get('redirect_after_login') or '/dashboard'
    ctx.session.remove('redirect_after_login')
    ctx.session.login(identity)
    # Бэкенд может вернуть email в другом регистре, чем ввёл пользователь
    ctx.security.clear_rate_limit(identifier)

    name = identity.get('display_name') or identity.get('username') or identity['email']
    ctx.session.set_flash('success', f'Welcome back, {name}!')
    return redirect(redirect_after_login)


def show_register(ctx, params):
    if ctx.session.is_logged_in():
        return redirect('/dashboard')
    form = bind(RegisterForm, ctx.session.get_form_data())
    return render(ctx, 'auth/register.html', title='Register', form=form)


def register(ctx, params):
    data = form_data(ctx)
    form = bind(RegisterForm, data)
    if not form.validate():
        return validation_failed(ctx, form.errors, data, '/register')

    try:
        identity = ctx.db.sign_up(
            form.email.data,
            form.password.data,
            display_name=form.display_name.data or '',
            username=form.username.data or None,
        )
    except DataClientError as e:
        ctx.session.set_form_data({k: v for k, v in data.items() if 'password' not in k})
        ctx.session.set_flash('error', f'Registration failed. {e}')
        return redirect('/register')

    # Хостинг с подтверждением почты не выдаёт токены при регистрации
    if ctx.config['DATA_BACKEND'] == 'rest' and not identity.get('access_token'):
        ctx.session.set_flash('success', 'Registration successful! Please check your email to confirm your account.')
        return redirect('/login')

    ctx.session.login(identity)
    name = identity.get('display_name') or identity['email']
    ctx.session.set_flash('success', f"Welcome to {ctx.config['APP_NAME']}, {name}!")
    return redirect('/dashboard')


def logout(ctx, params):
    ctx.session.logout()
    ctx.session.set_flash('success', 'You have been logged out successfully.')
    return redirect('/')
