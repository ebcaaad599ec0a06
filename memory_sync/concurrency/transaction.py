"""
Per-item transaction boundary.

Each call gets its own SQLite connection, so one item's rollback never
touches another item's writes. The unit of work reports domain failures as
`Err(...)` values; the executor inspects the branch before committing.
"""
import logging
from typing import Callable

from ..database.db import DBManager
from ..database.ops import CatalogOps
from ..exceptions import BatchCancelled, format_one_line
from ..results import Ok, Err, Unmanaged, Result


class TransactionExecutor:
    def __init__(self, db_manager: DBManager):
        self.db_manager = db_manager

    def run_isolated(self, item_id: str, block: Callable[[CatalogOps], Result]) -> Result:
        """
        Runs `block` inside an independent transaction.

        Ok(v)        -> commit, return Ok(v)
        Err(e)       -> rollback, return Err(e)
        cancellation -> rollback, re-raise
        exception    -> rollback, log one line tagged with item_id, return Err(Unmanaged)
        """
        conn = self.db_manager.open_connection()
        try:
            result = block(CatalogOps(conn))

            if isinstance(result, Ok):
                conn.commit()
                return result

            if isinstance(result, Err):
                conn.rollback()
                logging.warning(f"[requestId={item_id}] Rolled back: {result.error}")
                return result

            raise TypeError(f"Unit of work must return Ok or Err, got {type(result).__name__}")

        except (BatchCancelled, KeyboardInterrupt):
            conn.rollback()
            raise
        except Exception as e:
            conn.rollback()
            logging.error(f"[requestId={item_id}] {e} : {format_one_line(e)}")
            return Err(Unmanaged(item_id=item_id, cause=e))
        finally:
            conn.close()
