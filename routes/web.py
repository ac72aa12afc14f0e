from core.router import Router
from routes import auth, dashboard, home, profile, ticket


def build_router():
    router = Router()

    # Публичные маршруты
    router.get('/', home.index, public=True)
    router.get('/login', auth.show_login, public=True)
    router.post('/login', auth.login, public=True)
    router.get('/register', auth.show_register, public=True)
    router.post('/register', auth.register, public=True)
    router.get('/logout', auth.logout, public=True)

    router.get('/dashboard', dashboard.index)
    router.get('/dashboard/chart-data', dashboard.chart_data)

    router.get('/tickets', ticket.index)
    router.get('/tickets/create', ticket.create)
    router.post('/tickets', ticket.store)
    router.get('/tickets/{id}', ticket.show)
    router.get('/tickets/{id}/edit', ticket.edit)
    router.post('/tickets/{id}/update', ticket.update)
    router.post('/tickets/{id}/delete', ticket.delete)
    router.post('/tickets/{id}/comments', ticket.add_comment)

    router.get('/profile', profile.show)
    router.post('/profile', profile.update)

    return router
