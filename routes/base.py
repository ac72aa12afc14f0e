"""Helpers shared by the request handlers."""
import math

from flask import jsonify, redirect, render_template
from werkzeug.datastructures import MultiDict

# Не экранируются и не попадают в эхо формы
SECRET_FIELDS = ("password", "confirm_password", "current_password", "new_password")


def render(ctx, template, **context):
    return render_template(
        template,
        app_name=ctx.config["APP_NAME"],
        app_version=ctx.config["APP_VERSION"],
        user=ctx.session.get_user(),
        csrf_token=ctx.security.generate_csrf_token(),
        csrf_token_name=ctx.config["CSRF_TOKEN_NAME"],
        flash_messages=ctx.session.get_all_flashes(),
        **context
    )


def json_response(data, status=200):
    return jsonify(data), status


def form_data(ctx):
    """Sanitized POST fields without the CSRF token; passwords are passed through untouched."""
    raw = ctx.request.form.to_dict()
    raw.pop(ctx.config["CSRF_TOKEN_NAME"], None)
    passwords = {name: raw.pop(name) for name in SECRET_FIELDS if name in raw}
    data = ctx.security.sanitize_input(raw)
    data.update(passwords)
    return data


def bind(form_class, data, defaults=None):
    """Form filled from submitted (or echoed) fields, falling back to ``defaults``."""
    if data:
        return form_class(formdata=MultiDict(data))
    return form_class(data=defaults)


def validation_failed(ctx, errors, data, target):
    ctx.session.set_flash("error", "Please correct the following errors:")
    ctx.session.set_form_data({key: value for key, value in data.items() if key not in SECRET_FIELDS})
    for field, messages in errors.items():
        message = messages[0] if isinstance(messages, (list, tuple)) else messages
        ctx.session.set_flash(f"error_{field}", message)
    return redirect(target)


def pagination_params(ctx, default_limit):
    args = ctx.request.args
    try:
        page = max(1, int(args.get("page", 1)))
    except ValueError:
        page = 1
    try:
        limit = int(args.get("per_page") or args.get("limit") or default_limit)
    except ValueError:
        limit = default_limit
    limit = max(1, min(ctx.config["MAX_PER_PAGE"], limit))
    return {"page": page, "limit": limit, "offset": (page - 1) * limit}


def calculate_pagination(total, page, limit):
    total = total or 0
    total_pages = math.ceil(total / limit) if total > 0 else 0
    return {
        "current_page": page,
        "total_pages": total_pages,
        "total_items": total,
        "items_per_page": limit,
        "has_previous": page > 1,
        "has_next": page < total_pages,
        "previous_page": page - 1 if page > 1 else None,
        "next_page": page + 1 if page < total_pages else None,
    }
