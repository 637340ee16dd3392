"""
Shared pieces of the data-access layer.

Repositories are constructed per request with the caller's Identity; their
public methods are wrapped by ``app.auth.guarded`` so no call site can reach
the data without passing the role check.
"""

from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.errors import Conflict, UpstreamFailure
from app.extensions import db


class Repository:
    def __init__(self, identity):
        self.identity = identity

    @property
    def actor_id(self):
        return self.identity.id


@contextmanager
def transaction(conflict_message=None):
    """
    Commit the session when the block succeeds; roll back otherwise.

    IntegrityError becomes Conflict (when ``conflict_message`` is given) and
    any other database error becomes UpstreamFailure. Errors raised inside
    the block (validation, authorization) are re-raised after the rollback.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if conflict_message:
            raise Conflict(conflict_message)
        current_app.logger.exception("Integrity error during write")
        raise UpstreamFailure()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error during write")
        raise UpstreamFailure()
    except Exception:
        db.session.rollback()
        raise
