"""SQL backend: SQLAlchemy Core statements with bound parameters on the model tables."""
import logging
from datetime import date, datetime, timezone

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError

from core.data_client import DataClient, DataClientError, table_columns
from core.security import hash_password, verify_password

logger = logging.getLogger(__name__)


def serialize_row(row):
    return {
        key: value.isoformat() if isinstance(value, (datetime, date)) else value
        for key, value in row.items()
    }


def like_pattern(term):
    """``%term%`` with LIKE wildcards in the term escaped by a backslash."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqlDataClient(DataClient):
    def __init__(self, db, debug=False):
        self.db = db
        self.debug = debug

    def _table(self, name):
        table_columns(name)
        return self.db.metadata.tables[name]

    def _where(self, table, stmt, filters, search=None):
        filters = filters or {}
        self.check_columns(table.name, filters.keys())
        for column, value in filters.items():
            if value is None:
                stmt = stmt.where(table.c[column].is_(None))
            else:
                stmt = stmt.where(table.c[column] == value)

        if search is not None and search.term:
            self.check_search(table.name, search)
            pattern = like_pattern(search.term)
            stmt = stmt.where(sa.or_(*(table.c[column].ilike(pattern, escape="\\") for column in search.columns)))
        return stmt

    def _log_failure(self, action, error):
        if self.debug:
            logger.error("Database %s failed: %s", action, error)
        else:
            logger.warning("Database %s failed", action)

    def fetch_all(self, table, filters=None, order_by=None, ascending=False, limit=None, offset=0, select="*",
                  search=None):
        model_table = self._table(table)
        self.check_select(table, select)
        if select == "*":
            stmt = sa.select(model_table)
        else:
            stmt = sa.select(*(model_table.c[name.strip()] for name in select.split(",")))

        stmt = self._where(model_table, stmt, filters, search)
        if order_by:
            self.check_columns(table, [order_by])
            column = model_table.c[order_by]
            stmt = stmt.order_by(column.asc() if ascending else column.desc())
        if limit:
            stmt = stmt.limit(limit)
        if offset:
            stmt = stmt.offset(offset)

        try:
            rows = self.db.session.execute(stmt).mappings().all()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self._log_failure(f"fetch {table}", e)
            return []
        return [serialize_row(dict(row)) for row in rows]

    def count(self, table, filters=None, search=None):
        model_table = self._table(table)
        stmt = self._where(model_table, sa.select(sa.func.count()).select_from(model_table), filters, search)
        try:
            return self.db.session.execute(stmt).scalar() or 0
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self._log_failure(f"count {table}", e)
            return 0

    def insert(self, table, row):
        model_table = self._table(table)
        self.check_columns(table, row.keys())
        try:
            result = self.db.session.execute(sa.insert(model_table).values(**row))
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self._log_failure(f"insert into {table}", e)
            raise DataClientError(f"Could not save to {table}") from e

        primary_key = result.inserted_primary_key[0]
        return self.fetch_one(table, {"id": primary_key})

    def update(self, table, filters, row):
        if not filters:
            raise DataClientError("Refusing to update without filters")
        model_table = self._table(table)
        self.check_columns(table, row.keys())
        stmt = self._where(model_table, sa.update(model_table), filters).values(**row)
        try:
            self.db.session.execute(stmt)
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self._log_failure(f"update {table}", e)
            raise DataClientError(f"Could not update {table}") from e
        return self.fetch_all(table, filters)

    def delete(self, table, filters):
        if not filters:
            raise DataClientError("Refusing to delete without filters")
        model_table = self._table(table)
        stmt = self._where(model_table, sa.delete(model_table), filters)
        try:
            self.db.session.execute(stmt)
            self.db.session.commit()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self._log_failure(f"delete from {table}", e)
            raise DataClientError(f"Could not delete from {table}") from e
        return True

    def _find_user(self, identifier):
        users = self._table("users")
        stmt = sa.select(users).where(
            sa.or_(users.c.username == identifier, users.c.email == identifier),
            users.c.is_active.is_(True),
        )
        try:
            row = self.db.session.execute(stmt).mappings().first()
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self._log_failure("user lookup", e)
            raise DataClientError("Authentication service unavailable") from e
        return dict(row) if row else None

    @staticmethod
    def _identity(user):
        return {
            "id": str(user["id"]),
            "email": user["email"],
            "username": user["username"],
            "display_name": user.get("display_name") or user["username"],
            "role": user.get("role") or "user",
            "access_token": "",
            "refresh_token": "",
        }

    def sign_in(self, identifier, password):
        user = self._find_user(identifier)
        if not user or not verify_password(password, user["password_hash"]):
            return None

        self.update("users", {"id": user["id"]}, {"last_login": datetime.now(timezone.utc)})
        return self._identity(user)

    def sign_up(self, email, password, display_name="", username=None):
        username = username or email.split("@")[0]
        if self.fetch_one("users", {"email": email}):
            raise DataClientError("Email address is already registered")
        if self.fetch_one("users", {"username": username}):
            raise DataClientError("Username is already taken")

        user = self.insert("users", {
            "username": username,
            "email": email,
            "password_hash": hash_password(password),
            "display_name": display_name or username,
            "role": "user",
        })
        return self._identity(user)

    def sign_out(self, access_token):
        # Локальные сессии живут только в хранилище сессий
        return None

    def update_user(self, identity, display_name=None, password=None):
        values = {}
        if display_name is not None:
            values["display_name"] = display_name
        if password:
            values["password_hash"] = hash_password(password)
        if values:
            self.update("users", {"id": int(identity["id"])}, values)
