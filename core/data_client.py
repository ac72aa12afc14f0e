"""Common interface of the persistence backends.

Rows and filters are plain dicts keyed by column name. The allowed tables
and columns come from the SQLAlchemy models, so both backends reject the
same unknown names before any I/O happens.
"""
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from extensions import db

Filter = Dict[str, Any]
Row = Dict[str, Any]


class Search(NamedTuple):
    """Case-insensitive substring match of ``term`` against any of ``columns``."""
    term: str
    columns: Tuple[str, ...]


class DataClientError(Exception):
    """A write or auth call against the backend failed."""


def table_columns(table: str) -> List[str]:
    # Импорт моделей регистрирует таблицы в metadata
    import models.ticket  # noqa: F401
    import models.user  # noqa: F401

    model_table = db.metadata.tables.get(table)
    if model_table is None:
        raise DataClientError(f"Unknown table: {table}")
    return [column.name for column in model_table.columns]


class DataClient:
    """Filter/order/paginate vocabulary shared by the REST and SQL backends."""

    debug = False

    def check_columns(self, table: str, names) -> None:
        allowed = table_columns(table)
        unknown = [name for name in names if name not in allowed]
        if unknown:
            raise DataClientError(f"Unknown column(s) for {table}: {', '.join(sorted(unknown))}")

    def check_search(self, table: str, search: Optional[Search]) -> None:
        if search is not None:
            self.check_columns(table, search.columns)

    def check_select(self, table: str, select: str) -> None:
        if select == "*":
            table_columns(table)
            return
        self.check_columns(table, [name.strip() for name in select.split(",")])

    def fetch_all(self, table: str, filters: Optional[Filter] = None, order_by: Optional[str] = None,
                  ascending: bool = False, limit: Optional[int] = None, offset: int = 0,
                  select: str = "*", search: Optional[Search] = None) -> List[Row]:
        raise NotImplementedError

    def fetch_one(self, table: str, filters: Optional[Filter] = None) -> Optional[Row]:
        rows = self.fetch_all(table, filters, limit=1)
        return rows[0] if rows else None

    def fetch_page(self, table: str, filters: Optional[Filter] = None, order_by: Optional[str] = None,
                   ascending: bool = False, limit: int = 15, offset: int = 0,
                   search: Optional[Search] = None) -> Tuple[List[Row], int]:
        rows = self.fetch_all(table, filters, order_by=order_by, ascending=ascending, limit=limit, offset=offset,
                              search=search)
        return rows, self.count(table, filters, search=search)

    def count(self, table: str, filters: Optional[Filter] = None, search: Optional[Search] = None) -> int:
        raise NotImplementedError

    def insert(self, table: str, row: Row) -> Optional[Row]:
        raise NotImplementedError

    def update(self, table: str, filters: Filter, row: Row) -> List[Row]:
        raise NotImplementedError

    def delete(self, table: str, filters: Filter) -> bool:
        raise NotImplementedError

    def sign_in(self, identifier: str, password: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def sign_up(self, email: str, password: str, display_name: str = "",
                username: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def sign_out(self, access_token: str) -> None:
        raise NotImplementedError

    def update_user(self, identity: Dict[str, Any], display_name: Optional[str] = None,
                    password: Optional[str] = None) -> None:
        raise NotImplementedError


def create_data_client(config, access_token=None) -> DataClient:
    """One client per request; the REST one carries the acting session's token."""
    backend = config.get("DATA_BACKEND", "rest")
    debug = config.get("APP_DEBUG", False)

    if backend == "rest":
        from core.supabase import RestDataClient
        return RestDataClient(
            config["SUPABASE_URL"],
            config["SUPABASE_ANON_KEY"],
            access_token=access_token,
            timeout=config.get("REQUEST_TIMEOUT", 15),
            debug=debug,
        )
    if backend == "sql":
        from core.database import SqlDataClient
        return SqlDataClient(db, debug=debug)

    raise ValueError(f"Unknown DATA_BACKEND: {backend}")
