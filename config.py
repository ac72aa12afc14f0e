import os
from dotenv import load_dotenv

load_dotenv()

basedir = os.path.abspath(os.path.dirname(__file__))


def env_flag(name, default='false'):
    return (os.environ.get(name) or default).lower() == 'true'


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'your-secret-key'

    APP_NAME = os.environ.get('APP_NAME') or 'Ticketa'
    APP_VERSION = '1.0.0'
    APP_URL = os.environ.get('APP_URL') or 'http://localhost:8080'
    APP_DEBUG = env_flag('APP_DEBUG')

    # "rest" talks to the hosted backend, "sql" to SQLALCHEMY_DATABASE_URI
    DATA_BACKEND = os.environ.get('DATA_BACKEND') or 'rest'
    SUPABASE_URL = os.environ.get('SUPABASE_URL') or ''
    SUPABASE_ANON_KEY = os.environ.get('SUPABASE_ANON_KEY') or ''
    # Only for maintenance scripts; request handling always uses the anon key or the user's token.
    SUPABASE_SERVICE_ROLE_KEY = os.environ.get('SUPABASE_SERVICE_ROLE_KEY') or ''
    REQUEST_TIMEOUT = int(os.environ.get('REQUEST_TIMEOUT') or 15)

    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(basedir, 'ticketa.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SESSION_STORE = os.environ.get('SESSION_STORE') or 'cache'
    CACHE_TYPE = os.environ.get('CACHE_TYPE') or 'FileSystemCache'
    CACHE_DIR = os.environ.get('CACHE_DIR') or os.path.join(basedir, 'cache', 'sessions')
    CACHE_DEFAULT_TIMEOUT = 3600

    SESSION_COOKIE_NAME = 'ticketa_session'
    SESSION_TIMEOUT = 3600
    CSRF_TOKEN_NAME = '_token'
    LOGIN_ATTEMPTS_LIMIT = 5
    LOGIN_LOCKOUT_TIME = 900

    TICKETS_PER_PAGE = 15
    MAX_PER_PAGE = 100


class TestingConfig(Config):
    TESTING = True
    APP_DEBUG = False
    SECRET_KEY = 'testing'
    DATA_BACKEND = 'sql'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SESSION_STORE = 'cache'
    CACHE_TYPE = 'SimpleCache'
    SUPABASE_URL = 'https://project.supabase.co'
    SUPABASE_ANON_KEY = 'anon-key'
