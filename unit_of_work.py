"""
Transactional unit of work over a MongoDB client session.

    with MongoUnitOfWork(db) as uow:
        uow.db["user"].delete_one({...}, session=uow.session)

Leaving the block normally commits; leaving it with an exception aborts.
The session is ended on every exit path. Multi-document transactions need
a replica set or sharded cluster.
"""
import logging

from pymongo.database import Database

logger = logging.getLogger(__name__)


class MongoUnitOfWork:
    def __init__(self, db: Database):
        self.db = db
        self.session = None

    def __enter__(self) -> "MongoUnitOfWork":
        self.session = self.db.client.start_session()
        try:
            self.session.start_transaction()
        except Exception:
            self.session.end_session()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if self.session.in_transaction:
                if exc_type is None:
                    self.commit()
                else:
                    logger.warning("Aborting transaction: %s", exc)
                    self.abort()
        finally:
            self.session.end_session()
        return False

    def commit(self) -> None:
        self.session.commit_transaction()

    def abort(self) -> None:
        self.session.abort_transaction()
