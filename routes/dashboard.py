from models.ticket import TICKET_PRIORITIES, TICKET_STATUSES
from routes.base import json_response, render

HIGH_PRIORITIES = ('high', 'urgent')


def ticket_scope(ctx):
    """Filters limiting counts to what the current user may see."""
    return {} if ctx.is_admin else {'user_email': ctx.user['email']}


def dashboard_stats(ctx):
    scope = ticket_scope(ctx)
    stats = {'total_tickets': ctx.db.count('tickets', scope)}
    for status in TICKET_STATUSES:
        stats[f'{status}_tickets'] = ctx.db.count('tickets', dict(scope, status=status))
    stats['high_priority_tickets'] = sum(
        ctx.db.count('tickets', dict(scope, priority=priority)) for priority in HIGH_PRIORITIES
    )
    stats['my_created_tickets'] = ctx.db.count('tickets', {'user_email': ctx.user['email']})
    return stats


def distribution(ctx, column, values):
    scope = ticket_scope(ctx)
    return {
        'labels': list(values),
        'data': [ctx.db.count('tickets', dict(scope, **{column: value})) for value in values],
    }


def index(ctx, params):
    recent_tickets = ctx.db.fetch_all('tickets', ticket_scope(ctx), order_by='created_at', ascending=False, limit=10)
    return render(
        ctx,
        'dashboard/index.html',
        title='Dashboard',
        stats=dashboard_stats(ctx),
        recent_tickets=recent_tickets,
    )


def chart_data(ctx, params):
    chart_type = ctx.request.args.get('type', 'status')
    if chart_type == 'status':
        return json_response(distribution(ctx, 'status', TICKET_STATUSES))
    if chart_type == 'priority':
        return json_response(distribution(ctx, 'priority', TICKET_PRIORITIES))
    return json_response({'error': f'Unknown chart type: {chart_type}'}, 400)
