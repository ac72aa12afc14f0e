from flask import redirect

from core.data_client import DataClientError
from forms.auth_forms import ProfileForm
from routes.base import bind, form_data, render, validation_failed


def show(ctx, params):
    user = ctx.user
    form = bind(ProfileForm, ctx.session.get_form_data(), defaults={'display_name': user.get('display_name')})
    return render(ctx, 'profile.html', title='My Profile', form=form)


def update(ctx, params):
    data = form_data(ctx)
    form = bind(ProfileForm, data)
    if not form.validate():
        return validation_failed(ctx, form.errors, data, '/profile')

    user = ctx.user
    new_password = form.new_password.data or None
    if new_password:
        try:
            verified = ctx.db.sign_in(user['email'], form.current_password.data)
        except DataClientError:
            verified = None
        if verified is None:
            return validation_failed(ctx, {'current_password': ['Current password is incorrect']}, data, '/profile')

    try:
        ctx.db.update_user(user, display_name=form.display_name.data, password=new_password)
    except DataClientError:
        ctx.session.set_flash('error', 'Could not update your profile. Please try again.')
        return redirect('/profile')

    ctx.session.set('display_name', form.display_name.data)
    ctx.session.set_flash('success', 'Profile updated successfully!')
    return redirect('/profile')
