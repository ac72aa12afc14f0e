"""REST backend: PostgREST tables under /rest/v1 and GoTrue auth under /auth/v1."""
import logging
import re
from datetime import date, datetime

import requests

from core.data_client import DataClient, DataClientError

logger = logging.getLogger(__name__)

CONTENT_RANGE_RE = re.compile(r'^\s*(?:\d+-\d+|\*)/(\d+)\s*$')

# Ответы GoTrue на неверный логин/пароль
INVALID_CREDENTIALS_STATUSES = (400, 401, 422)


def parse_content_range(value):
    """Total from a ``Content-Range: 0-9/57`` (or ``*/57``) header, ``None`` if unusable."""
    if not value:
        return None
    match = CONTENT_RANGE_RE.match(value)
    if not match:
        return None
    return int(match.group(1))


def encode_row(row):
    return {
        key: value.isoformat() if isinstance(value, (datetime, date)) else value
        for key, value in row.items()
    }


def format_value(value):
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return "eq." + ("true" if value else "false")
    return f"eq.{value}"


def search_param(search):
    """``or=(col.ilike."*term*",...)``; quoting keeps commas and parens in the term literal."""
    pattern = "*" + search.term.replace("\\", "\\\\").replace('"', '\\"') + "*"
    return "(" + ",".join(f'{column}.ilike."{pattern}"' for column in search.columns) + ")"


def error_message(resp):
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("msg", "message", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}"


class RestDataClient(DataClient):
    def __init__(self, url, anon_key, access_token=None, timeout=15, debug=False):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token or None
        self.timeout = timeout
        self.debug = debug

    def _headers(self, token=None, **extra):
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token or self.access_token or self.anon_key}",
            "Accept": "application/json",
        }
        headers.update(extra)
        return headers

    def _request(self, method, path, params=None, headers=None, json=None):
        return requests.request(
            method,
            f"{self.url}{path}",
            params=params,
            headers=headers if headers is not None else self._headers(),
            json=json,
            timeout=self.timeout,
        )

    def _log_failure(self, action, error):
        if self.debug:
            logger.error("Supabase %s failed: %s", action, error)
        else:
            logger.warning("Supabase %s failed", action)

    def _filter_params(self, table, filters, search=None):
        filters = filters or {}
        self.check_columns(table, filters.keys())
        params = {column: format_value(value) for column, value in filters.items()}
        if search is not None and search.term:
            self.check_search(table, search)
            params["or"] = search_param(search)
        return params

    @staticmethod
    def _rows(resp):
        try:
            body = resp.json()
        except ValueError:
            return None
        return body if isinstance(body, list) else None

    def fetch_all(self, table, filters=None, order_by=None, ascending=False, limit=None, offset=0, select="*",
                  search=None):
        self.check_select(table, select)
        params = {"select": select}
        params.update(self._filter_params(table, filters, search))
        if order_by:
            self.check_columns(table, [order_by])
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"

        headers = self._headers()
        if limit:
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{offset}-{offset + limit - 1}"

        try:
            resp = self._request("GET", f"/rest/v1/{table}", params=params, headers=headers)
        except requests.RequestException as e:
            self._log_failure(f"fetch {table}", e)
            return []

        if resp.status_code >= 400:
            self._log_failure(f"fetch {table}", error_message(resp))
            return []

        rows = self._rows(resp)
        if rows is None:
            self._log_failure(f"fetch {table}", "response is not a JSON list")
            return []
        return rows[:limit] if limit else rows

    def fetch_page(self, table, filters=None, order_by=None, ascending=False, limit=15, offset=0, search=None):
        params = {"select": "*"}
        params.update(self._filter_params(table, filters, search))
        if order_by:
            self.check_columns(table, [order_by])
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"
        headers = self._headers(**{
            "Range-Unit": "items",
            "Range": f"{offset}-{offset + limit - 1}",
            "Prefer": "count=exact",
        })

        try:
            resp = self._request("GET", f"/rest/v1/{table}", params=params, headers=headers)
        except requests.RequestException as e:
            self._log_failure(f"fetch page of {table}", e)
            return [], 0

        total = parse_content_range(resp.headers.get("Content-Range"))
        # 416: смещение за концом выборки
        if resp.status_code == 416:
            return [], total if total is not None else self.count(table, filters, search)
        if resp.status_code >= 400:
            self._log_failure(f"fetch page of {table}", error_message(resp))
            return [], 0

        rows = (self._rows(resp) or [])[:limit]
        if total is None:
            if len(rows) < limit and (rows or offset == 0):
                total = offset + len(rows)
            else:
                total = self.count(table, filters, search)
        return rows, total

    def count(self, table, filters=None, search=None):
        params = {"select": "*"}
        params.update(self._filter_params(table, filters, search))
        headers = self._headers(**{"Range-Unit": "items", "Range": "0-0", "Prefer": "count=exact"})

        try:
            resp = self._request("GET", f"/rest/v1/{table}", params=params, headers=headers)
        except requests.RequestException as e:
            self._log_failure(f"count {table}", e)
            return 0

        total = parse_content_range(resp.headers.get("Content-Range"))
        if total is not None:
            return total
        if resp.status_code >= 400:
            self._log_failure(f"count {table}", error_message(resp))
            return 0

        rows = self._rows(resp)
        if rows is None:
            return 0
        logger.warning("No usable Content-Range for %s, counting %d returned rows", table, len(rows))
        return len(rows)

    def insert(self, table, row):
        self.check_columns(table, row.keys())
        headers = self._headers(Prefer="return=representation")
        try:
            resp = self._request("POST", f"/rest/v1/{table}", headers=headers, json=encode_row(row))
        except requests.RequestException as e:
            self._log_failure(f"insert into {table}", e)
            raise DataClientError(f"Could not save to {table}") from e

        if resp.status_code >= 400:
            self._log_failure(f"insert into {table}", error_message(resp))
            raise DataClientError(error_message(resp))

        rows = self._rows(resp)
        return rows[0] if rows else None

    def update(self, table, filters, row):
        if not filters:
            raise DataClientError("Refusing to update without filters")
        self.check_columns(table, row.keys())
        params = self._filter_params(table, filters)
        headers = self._headers(Prefer="return=representation")
        try:
            resp = self._request("PATCH", f"/rest/v1/{table}", params=params, headers=headers, json=encode_row(row))
        except requests.RequestException as e:
            self._log_failure(f"update {table}", e)
            raise DataClientError(f"Could not update {table}") from e

        if resp.status_code >= 400:
            self._log_failure(f"update {table}", error_message(resp))
            raise DataClientError(error_message(resp))

        return self._rows(resp) or []

    def delete(self, table, filters):
        if not filters:
            raise DataClientError("Refusing to delete without filters")
        params = self._filter_params(table, filters)
        headers = self._headers(Prefer="return=minimal")
        try:
            resp = self._request("DELETE", f"/rest/v1/{table}", params=params, headers=headers)
        except requests.RequestException as e:
            self._log_failure(f"delete from {table}", e)
            raise DataClientError(f"Could not delete from {table}") from e

        # Удаление несуществующей строки считается успешным
        if resp.status_code == 404:
            return True
        if resp.status_code >= 400:
            self._log_failure(f"delete from {table}", error_message(resp))
            raise DataClientError(error_message(resp))
        return True

    @staticmethod
    def _identity(user, tokens):
        metadata = user.get("user_metadata") or {}
        app_metadata = user.get("app_metadata") or {}
        return {
            "id": user.get("id"),
            "email": user.get("email") or "",
            "username": metadata.get("username") or "",
            "display_name": metadata.get("display_name") or "",
            "role": "admin" if app_metadata.get("role") == "admin" else "user",
            "access_token": tokens.get("access_token") or "",
            "refresh_token": tokens.get("refresh_token") or "",
        }

    def sign_in(self, identifier, password):
        try:
            resp = self._request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "password"},
                headers=self._headers(token=self.anon_key),
                json={"email": identifier, "password": password},
            )
        except requests.RequestException as e:
            self._log_failure("sign in", e)
            raise DataClientError("Authentication service unavailable") from e

        if resp.status_code in INVALID_CREDENTIALS_STATUSES:
            return None
        if resp.status_code >= 400:
            self._log_failure("sign in", error_message(resp))
            raise DataClientError(error_message(resp))

        body = resp.json()
        return self._identity(body.get("user") or {}, body)

    def sign_up(self, email, password, display_name="", username=None):
        payload = {
            "email": email,
            "password": password,
            "data": {"display_name": display_name, "username": username or ""},
        }
        try:
            resp = self._request("POST", "/auth/v1/signup", headers=self._headers(token=self.anon_key), json=payload)
        except requests.RequestException as e:
            self._log_failure("sign up", e)
            raise DataClientError("Authentication service unavailable") from e

        if resp.status_code >= 400:
            self._log_failure("sign up", error_message(resp))
            raise DataClientError(error_message(resp))

        body = resp.json()
        # С включённым подтверждением почты сессия не выдаётся
        return self._identity(body.get("user") or body, body)

    def sign_out(self, access_token):
        try:
            resp = self._request("POST", "/auth/v1/logout", headers=self._headers(token=access_token))
        except requests.RequestException as e:
            raise DataClientError("Authentication service unavailable") from e
        if resp.status_code >= 400:
            raise DataClientError(error_message(resp))

    def update_user(self, identity, display_name=None, password=None):
        payload = {}
        if password:
            payload["password"] = password
        if display_name is not None:
            payload["data"] = {"display_name": display_name}
        if not payload:
            return

        try:
            resp = self._request(
                "PUT", "/auth/v1/user", headers=self._headers(token=identity.get("access_token")), json=payload
            )
        except requests.RequestException as e:
            self._log_failure("update user", e)
            raise DataClientError("Authentication service unavailable") from e

        if resp.status_code >= 400:
            self._log_failure("update user", error_message(resp))
            raise DataClientError(error_message(resp))
