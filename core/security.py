"""CSRF tokens, login rate limiting, password hashing and input sanitizing."""
import hashlib
import hmac
import re
import secrets
import time

from email_validator import EmailNotValidError, validate_email
from markupsafe import escape
from werkzeug.security import check_password_hash, generate_password_hash

CSRF_SESSION_KEY = "csrf_token"
PASSWORD_HASH_METHOD = "scrypt"


def rate_limit_key(identifier):
    return "rate_limit:" + hashlib.md5(identifier.encode("utf-8")).hexdigest()


def hash_password(password):
    return generate_password_hash(password, method=PASSWORD_HASH_METHOD)


def verify_password(password, password_hash):
    if not password_hash:
        return False
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        # неизвестный формат хеша
        return False


def sanitize_input(data):
    """Trim and HTML-escape every string in a nested structure."""
    if isinstance(data, dict):
        return {key: sanitize_input(value) for key, value in data.items()}
    if isinstance(data, (list, tuple)):
        return type(data)(sanitize_input(value) for value in data)
    if isinstance(data, str):
        return str(escape(data.strip()))
    return data


def is_valid_email(email):
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def validate_password_strength(password):
    errors = []
    if len(password) < 8:
        errors.append('Password must be at least 8 characters long')
    if not re.search(r'[A-Z]', password):
        errors.append('Password must contain at least one uppercase letter')
    if not re.search(r'[a-z]', password):
        errors.append('Password must contain at least one lowercase letter')
    if not re.search(r'[0-9]', password):
        errors.append('Password must contain at least one number')
    return errors


class Security:
    def __init__(self, session, store, max_attempts=5, lockout_time=900, clock=time.time):
        self.session = session
        self.store = store
        self.max_attempts = max_attempts
        self.lockout_time = lockout_time
        self.clock = clock

    def generate_csrf_token(self):
        token = self.session.get(CSRF_SESSION_KEY)
        if not token:
            token = secrets.token_hex(32)
            self.session.set(CSRF_SESSION_KEY, token)
        return token

    def verify_csrf_token(self, token):
        issued = self.session.get(CSRF_SESSION_KEY)
        if not issued or not token or not isinstance(token, str):
            return False
        return hmac.compare_digest(issued.encode("utf-8"), token.encode("utf-8"))

    def _load_counter(self, identifier):
        counter = self.store.get(rate_limit_key(identifier))
        if counter is None:
            counter = {"attempts": 0, "last_attempt": 0, "locked_until": 0}
        return counter

    def _save_counter(self, identifier, counter):
        # Запись живёт дольше окна блокировки, чтобы не пропасть посреди него
        self.store.set(rate_limit_key(identifier), counter, timeout=self.lockout_time * 2)

    def check_rate_limit(self, identifier):
        counter = self._load_counter(identifier)
        now = self.clock()

        if counter["locked_until"] > now:
            return False

        if counter["last_attempt"] + self.lockout_time < now and counter["attempts"]:
            counter["attempts"] = 0
            counter["locked_until"] = 0
            self._save_counter(identifier, counter)

        return counter["attempts"] < self.max_attempts

    def record_failed_attempt(self, identifier):
        counter = self._load_counter(identifier)
        now = self.clock()

        counter["attempts"] += 1
        counter["last_attempt"] = now
        if counter["attempts"] >= self.max_attempts:
            counter["locked_until"] = now + self.lockout_time

        self._save_counter(identifier, counter)
        return counter

    def clear_rate_limit(self, identifier):
        self.store.delete(rate_limit_key(identifier))

    def attempts(self, identifier):
        return self._load_counter(identifier)["attempts"]

    sanitize_input = staticmethod(sanitize_input)
