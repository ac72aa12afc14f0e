import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

from flask import redirect

from core.data_client import DataClientError, Search
from extensions import socketio
from forms.ticket_forms import CommentForm, EditTicketForm, TicketForm
from models.ticket import FINAL_STATUSES, TICKET_PRIORITIES, TICKET_STATUSES
from routes.base import (bind, calculate_pagination, form_data, pagination_params, render,
                         validation_failed)

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = ("title", "description")


def load_ticket(ctx, params, action):
    """Ticket the current user may act on, or ``(None, redirect)``."""
    try:
        ticket_id = int(params.get('id', ''))
    except ValueError:
        ticket_id = None

    ticket = ctx.db.fetch_one('tickets', {'id': ticket_id}) if ticket_id is not None else None
    if ticket is None:
        ctx.session.set_flash('error', 'Ticket not found.')
        return None, redirect('/tickets')

    if not ctx.is_admin and ticket.get('user_email') != ctx.user['email']:
        ctx.session.set_flash('error', f'You do not have permission to {action} this ticket.')
        return None, redirect('/tickets')

    return ticket, None


def index(ctx, params):
    args = ctx.request.args
    pagination = pagination_params(ctx, ctx.config['TICKETS_PER_PAGE'])

    # Неизвестные значения фильтров просто игнорируются
    filters = {}
    if args.get('status') in TICKET_STATUSES:
        filters['status'] = args['status']
    if args.get('priority') in TICKET_PRIORITIES:
        filters['priority'] = args['priority']

    # В ссылках пагинации остаются введённые значения, в запросе к данным экранированные
    query = dict(filters)
    category = args.get('category', '').strip()
    if category:
        query['category'] = category
        filters['category'] = ctx.security.sanitize_input(category)

    # Поиск по подстроке в заголовке и описании
    search = None
    search_term = args.get('search', '').strip()
    if search_term:
        query['search'] = search_term
        search = Search(ctx.security.sanitize_input(search_term), SEARCH_COLUMNS)

    if not ctx.is_admin:
        filters['user_email'] = ctx.user['email']

    tickets, total = ctx.db.fetch_page(
        'tickets',
        filters,
        order_by='created_at',
        ascending=False,
        limit=pagination['limit'],
        offset=pagination['offset'],
        search=search,
    )

    def page_url(page):
        return '/tickets?' + urlencode(dict(query, page=page, per_page=pagination['limit']))

    return render(
        ctx,
        'tickets/index.html',
        title='Tickets',
        tickets=tickets,
        filters=query,
        pagination=calculate_pagination(total, pagination['page'], pagination['limit']),
        page_url=page_url,
        statuses=TICKET_STATUSES,
        priorities=TICKET_PRIORITIES,
    )


def create(ctx, params):
    form = bind(TicketForm, ctx.session.get_form_data(), defaults={'priority': 'medium'})
    return render(ctx, 'tickets/create.html', title='Create New Ticket', form=form, priorities=TICKET_PRIORITIES)


def store(ctx, params):
    data = form_data(ctx)
    form = bind(TicketForm, data)
    if not form.validate():
        return validation_failed(ctx, form.errors, data, '/tickets/create')

    user = ctx.user
    try:
        ticket = ctx.db.insert('tickets', {
            'title': form.title.data,
            'description': form.description.data,
            'priority': form.priority.data,
            'category': form.category.data,
            'status': 'open',
            'user_email': user['email'],
            'created_by': str(user['id']),
        })
    except DataClientError:
        ctx.session.set_form_data(data)
        ctx.session.set_flash('error', 'Could not create the ticket. Please try again.')
        return redirect('/tickets/create')

    ctx.session.set_flash('success', 'Ticket created successfully!')
    return redirect(f"/tickets/{ticket['id']}" if ticket else '/tickets')


def show(ctx, params):
    ticket, failure = load_ticket(ctx, params, 'view')
    if failure:
        return failure

    comments = ctx.db.fetch_all('ticket_comments', {'ticket_id': ticket['id']}, order_by='created_at', ascending=True)
    # Внутренние заметки видят администраторы и сам автор
    if not ctx.is_admin:
        email = ctx.user['email']
        comments = [c for c in comments if not c.get('is_internal') or c.get('user_email') == email]

    form = bind(CommentForm, ctx.session.get_form_data())
    return render(
        ctx,
        'tickets/show.html',
        title=f"Ticket #{ticket['id']}",
        ticket=ticket,
        comments=comments,
        form=form,
    )


def edit(ctx, params):
    ticket, failure = load_ticket(ctx, params, 'edit')
    if failure:
        return failure

    form = bind(EditTicketForm, ctx.session.get_form_data(), defaults=ticket)
    return render(
        ctx,
        'tickets/edit.html',
        title=f"Edit Ticket #{ticket['id']}",
        ticket=ticket,
        form=form,
        statuses=TICKET_STATUSES,
        priorities=TICKET_PRIORITIES,
    )


def update(ctx, params):
    ticket, failure = load_ticket(ctx, params, 'edit')
    if failure:
        return failure

    ticket_id = ticket['id']
    data = form_data(ctx)
    form = bind(EditTicketForm, data)
    if not form.validate():
        return validation_failed(ctx, form.errors, data, f'/tickets/{ticket_id}/edit')

    now = datetime.now(timezone.utc)
    old_status = ticket.get('status')
    new_status = form.status.data
    changes = {
        'title': form.title.data,
        'description': form.description.data,
        'status': new_status,
        'priority': form.priority.data,
        'category': form.category.data,
        'updated_at': now,
    }
    if old_status not in FINAL_STATUSES and new_status in FINAL_STATUSES:
        changes['resolved_at'] = now
    elif old_status in FINAL_STATUSES and new_status not in FINAL_STATUSES:
        changes['resolved_at'] = None

    try:
        ctx.db.update('tickets', {'id': ticket_id}, changes)
    except DataClientError:
        ctx.session.set_form_data(data)
        ctx.session.set_flash('error', 'Could not update the ticket. Please try again.')
        return redirect(f'/tickets/{ticket_id}/edit')

    if old_status != new_status:
        user = ctx.user
        try:
            ctx.db.insert('ticket_comments', {
                'ticket_id': ticket_id,
                'user_email': user['email'],
                'author_name': user.get('display_name') or user['email'],
                'comment': f'Status changed from {old_status} to {new_status}',
                'is_internal': False,
            })
        except DataClientError:
            logger.warning("Could not record status change of ticket %s", ticket_id)

    ctx.session.set_flash('success', 'Ticket updated successfully!')
    return redirect(f'/tickets/{ticket_id}')


def delete(ctx, params):
    ticket, failure = load_ticket(ctx, params, 'delete')
    if failure:
        return failure

    filters = {'id': ticket['id']}
    if not ctx.is_admin:
        filters['user_email'] = ctx.user['email']

    try:
        ctx.db.delete('tickets', filters)
    except DataClientError:
        ctx.session.set_flash('error', 'Could not delete the ticket. Please try again.')
        return redirect('/tickets')

    # Комментарии удаляются только после самого тикета
    try:
        ctx.db.delete('ticket_comments', {'ticket_id': ticket['id']})
    except DataClientError:
        logger.warning("Could not delete comments of ticket %s", ticket['id'])

    ctx.session.set_flash('success', f"Ticket #{ticket['id']} deleted successfully!")
    return redirect('/tickets')


def add_comment(ctx, params):
    ticket, failure = load_ticket(ctx, params, 'comment on')
    if failure:
        return failure

    ticket_id = ticket['id']
    data = form_data(ctx)
    form = bind(CommentForm, data)
    if not form.validate():
        return validation_failed(ctx, form.errors, data, f'/tickets/{ticket_id}')

    user = ctx.user
    author = user.get('display_name') or user['email']
    try:
        comment = ctx.db.insert('ticket_comments', {
            'ticket_id': ticket_id,
            'user_email': user['email'],
            'author_name': author,
            'comment': form.comment.data,
            'is_internal': bool(form.is_internal.data),
        })
        ctx.db.update('tickets', {'id': ticket_id}, {'updated_at': datetime.now(timezone.utc)})
    except DataClientError:
        ctx.session.set_form_data(data)
        ctx.session.set_flash('error', 'Could not add the comment. Please try again.')
        return redirect(f'/tickets/{ticket_id}')

    socketio.emit("new_comment", {
        "ticket_id": ticket_id,
        "author": author,
        "comment_id": comment['id'] if comment else None,
        "is_internal": bool(form.is_internal.data),
    })
    ctx.session.set_flash('success', 'Comment added successfully!')
    return redirect(f'/tickets/{ticket_id}')
