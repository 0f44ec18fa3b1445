import copy
import os
import threading
from contextlib import contextmanager
from typing import Optional

from tinydb import TinyDB
from tinydb.storages import MemoryStorage


class DB(TinyDB):
    """
    Ledger state. Each table is point-lookup only:
    - `distributions`: one document per distribution, doc_id is the distribution id
    - `claims`: one document per (distribution_id, claimant)
    - `balances`: one document per (account, token)
    - `events`: append-only audit log

    `lock` serializes every state-changing operation. `atomic` also undoes the
    writes of a block that raises, see `Registry.transaction`.
    Pass no path for an in-memory ledger.
    """

    def __init__(self, path: Optional[str] = None, **kwargs):
        self.path = path
        self.lock = threading.RLock()
        self._depth = 0
        if path is None:
            super().__init__(storage=MemoryStorage)
        else:
            # check if the directory exists
            create_dirs = self.exists(os.path.dirname(path) or ".") == False
            super().__init__(path, indent=4, create_dirs=create_dirs, **kwargs)

    @staticmethod
    def exists(path: str):
        return os.path.exists(path)

    @property
    def distributions(self):
        return self.table("distributions")

    @property
    def claims(self):
        return self.table("claims")

    @property
    def balances(self):
        return self.table("balances")

    @property
    def events(self):
        return self.table("events")

    @contextmanager
    def atomic(self):
        """
        Hold the lock for a block of writes. If the outermost block raises,
        every table is restored to its state on entry.
        """
        with self.lock:
            outermost = self._depth == 0
            saved = copy.deepcopy(self.storage.read()) if outermost else None
            self._depth += 1
            try:
                yield
            except Exception:
                if outermost:
                    self._restore(saved)
                raise
            finally:
                self._depth -= 1

    def _restore(self, data) -> None:
        self.storage.write(data or {})
        # query results are cached per table
        for table in (self.distributions, self.claims, self.balances, self.events):
            table.clear_cache()
