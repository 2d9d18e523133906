"""
feedesk/db/supabase.py
Supabase client configuration and generic query helpers
"""
from supabase import create_client, Client
from feedesk.core.config import settings
from functools import lru_cache
from typing import Optional, Dict, List, Any, Iterable
import logging

logger = logging.getLogger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"


class DataStoreError(Exception):
    """Raised when the hosted database rejects or fails a request."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


def _wrap(action: str, table: str, error: Exception) -> DataStoreError:
    code = getattr(error, "code", None)
    # PostgREST errors carry the readable text in .message
    detail = getattr(error, "message", None) or str(error)
    logger.error(f"Error {action} {table}: {detail}")
    return DataStoreError(f"Failed {action} {table}: {detail}", code=code)


# ============================================
# CLIENT FACTORY FUNCTIONS
# ============================================

@lru_cache()
def get_supabase_client() -> Client:
    """
    Get Supabase client instance (cached)
    Uses the anon/public key - for regular operations

    Returns:
        Client: Supabase client instance

    Raises:
        DataStoreError: If client creation fails
    """
    try:
        supabase: Client = create_client(
            supabase_url=settings.SUPABASE_URL,
            supabase_key=settings.SUPABASE_KEY
        )
        logger.info("Supabase client created successfully")
        return supabase
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {e}")
        raise DataStoreError(f"Supabase connection failed: {str(e)}")


# ============================================
# HELPER CLASS FOR COMMON QUERIES
# ============================================

class SupabaseQueries:
    """
    Helper class for common Supabase database operations
    Provides simplified methods for CRUD operations
    """

    def __init__(self, client: Client = None):
        """
        Initialize SupabaseQueries

        Args:
            client: Optional Supabase client. If not provided, uses the cached client.
        """
        self.client = client or get_supabase_client()

    @staticmethod
    def _apply_filters(query, filters: Optional[Dict[str, Any]]):
        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)
        return query

    # ============================================
    # CREATE OPERATIONS
    # ============================================

    async def insert_one(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.table(table).insert(data).execute()
        except Exception as e:
            raise _wrap("inserting into", table, e)

        if response.data and len(response.data) > 0:
            logger.info(f"Inserted record into {table}")
            return response.data[0]
        logger.warning(f"Insert into {table} returned no data")
        return None

    async def insert_many(self, table: str, data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Insert multiple records into a table in one request

        Args:
            table: Table name
            data: List of dictionaries containing the data to insert

        Returns:
            list: List of inserted records

        Raises:
            DataStoreError: If bulk insert operation fails

        Example:
            >>> rows = await db.insert_many("fee_records", [
            ...     {"student_id": "uuid-1", "amount": 3000, "month": "May", "year": 2025},
            ...     {"student_id": "uuid-2", "amount": 5000, "month": "May", "year": 2025}
            ... ])
        """
        if not data:
            return []
        try:
            response = self.client.table(table).insert(data).execute()
        except Exception as e:
            raise _wrap("bulk inserting into", table, e)
        logger.info(f"Bulk inserted {len(response.data)} records into {table}")
        return response.data

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def select_all(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None,
        columns: str = "*",
        gte: Optional[Dict[str, Any]] = None,
        lte: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Select all records from a table with optional filters

        Args:
            table: Table name
            filters: Dictionary of column:value equality filters
            order_by: Column name to order results by
            ascending: Sort direction (True for ASC, False for DESC)
            limit: Maximum number of records to return
            columns: PostgREST select string, may embed related tables
            gte: Dictionary of column:lower-bound filters
            lte: Dictionary of column:upper-bound filters

        Returns:
            list: List of records matching the criteria

        Example:
            >>> # Students with their fee records eager-loaded
            >>> students = await db.select_all(
            ...     "students",
            ...     filters={"deleted": False},
            ...     columns="*, fee_records(*)",
            ...     order_by="name"
            ... )
        """
        try:
            query = self.client.table(table).select(columns)
            query = self._apply_filters(query, filters)

            for key, value in (gte or {}).items():
                query = query.gte(key, value)
            for key, value in (lte or {}).items():
                query = query.lte(key, value)

            if order_by:
                query = query.order(order_by, desc=not ascending)

            if limit:
                query = query.limit(limit)

            response = query.execute()
        except Exception as e:
            raise _wrap("selecting from", table, e)

        logger.info(f"Selected {len(response.data)} records from {table}")
        return response.data

    async def select_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        columns: str = "*"
    ) -> List[Dict[str, Any]]:
        """
        Select records whose column value is in the given collection

        Example:
            >>> students = await db.select_in("students", "id", ["uuid-1", "uuid-2"])
        """
        values = list(values)
        if not values:
            return []
        try:
            response = self.client.table(table).select(columns).in_(column, values).execute()
        except Exception as e:
            raise _wrap("selecting from", table, e)
        return response.data

    async def select_by_id(
        self,
        table: str,
        id_column: str,
        id_value: Any,
        columns: str = "*"
    ) -> Optional[Dict[str, Any]]:
        """
        Select a single record by its ID

        Args:
            table: Table name
            id_column: Name of the ID column (e.g., "id")
            id_value: Value of the ID to search for
            columns: PostgREST select string

        Returns:
            dict: The record if found, None otherwise
        """
        try:
            response = self.client.table(table).select(columns).eq(id_column, id_value).execute()
        except Exception as e:
            raise _wrap("selecting by id from", table, e)

        if response.data and len(response.data) > 0:
            logger.info(f"Found record in {table} with {id_column}={id_value}")
            return response.data[0]
        logger.info(f"No record found in {table} with {id_column}={id_value}")
        return None

    async def select_one(
        self,
        table: str,
        filters: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Select a single record matching the filters

        Example:
            >>> student = await db.select_one("students", {"roll_number": "CITY2024001"})
        """
        try:
            query = self._apply_filters(self.client.table(table).select("*"), filters)
            response = query.limit(1).execute()
        except Exception as e:
            raise _wrap("selecting one from", table, e)

        if response.data and len(response.data) > 0:
            return response.data[0]
        return None

    # ============================================
    # UPDATE OPERATIONS
    # ============================================

    async def update_by_id(
        self,
        table: str,
        id_column: str,
        id_value: Any,
        data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Update a record by its ID

        Returns:
            dict: Updated record, None when nothing matched
        """
        try:
            response = self.client.table(table).update(data).eq(id_column, id_value).execute()
        except Exception as e:
            raise _wrap("updating", table, e)

        if response.data and len(response.data) > 0:
            logger.info(f"Updated record in {table} with {id_column}={id_value}")
            return response.data[0]
        logger.warning(f"Update in {table} returned no data")
        return None

    async def update_many(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """
        Update every record matching all the filters

        The filters are part of the UPDATE itself, so they double as a
        compare-and-set guard:

        Example:
            >>> # Only flips the row if nobody marked it paid in the meantime
            >>> updated = await db.update_many(
            ...     "fee_records",
            ...     {"id": "uuid", "status": "pending"},
            ...     {"status": "paid"}
            ... )
        """
        try:
            query = self._apply_filters(self.client.table(table).update(data), filters)
            response = query.execute()
        except Exception as e:
            raise _wrap("updating", table, e)
        logger.info(f"Updated {len(response.data)} records in {table}")
        return response.data

    # ============================================
    # DELETE OPERATIONS
    # ============================================

    async def delete_many(
        self,
        table: str,
        filters: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        """
        Delete every record matching all the filters

        Returns:
            list: List of deleted records
        """
        try:
            query = self._apply_filters(self.client.table(table).delete(), filters)
            response = query.execute()
        except Exception as e:
            raise _wrap("deleting from", table, e)
        logger.info(f"Deleted {len(response.data)} records from {table}")
        return response.data

    # ============================================
    # ADVANCED QUERIES
    # ============================================

    async def count(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Count records in a table

        Example:
            >>> active_students = await db.count("students", {"deleted": False})
        """
        try:
            query = self._apply_filters(self.client.table(table).select("*", count="exact"), filters)
            response = query.limit(0).execute()
        except Exception as e:
            raise _wrap("counting", table, e)

        count = response.count if response.count else 0
        logger.info(f"Counted {count} records in {table}")
        return count

    async def exists(
        self,
        table: str,
        filters: Dict[str, Any]
    ) -> bool:
        """
        Check if a record exists

        Example:
            >>> billed = await db.exists(
            ...     "fee_records",
            ...     {"student_id": "uuid", "month": "May", "year": 2025}
            ... )
        """
        try:
            query = self._apply_filters(self.client.table(table).select("id"), filters)
            response = query.limit(1).execute()
        except Exception as e:
            raise _wrap("checking existence in", table, e)
        return len(response.data) > 0


# ============================================
# CONVENIENCE FUNCTIONS
# ============================================

async def check_connection() -> bool:
    """
    Test Supabase connection

    Returns:
        bool: True if connection successful, False otherwise
    """
    try:
        client = get_supabase_client()
        client.table("courses").select("id").limit(1).execute()
        logger.info("Supabase connection test successful")
        return True
    except Exception as e:
        logger.error(f"Supabase connection test failed: {e}")
        return False


__all__ = [
    'DataStoreError',
    'UNIQUE_VIOLATION',
    'get_supabase_client',
    'SupabaseQueries',
    'check_connection',
]
