"""Device binding: ties a student's check-ins to one device."""
import logging
from enum import Enum
from typing import Dict, Optional

from geoattend.utils.helpers import utcnow
from geoattend.utils.locks import KeyedLock

logger = logging.getLogger(__name__)


class BindingOutcome(Enum):
    BOUND = 'bound'
    MISMATCH = 'mismatch'


class InMemoryDeviceStore:
    """Student id -> device id map kept in process memory."""

    def __init__(self, bindings: Optional[Dict[str, str]] = None):
        self._bindings: Dict[str, str] = dict(bindings or {})

    def get(self, student_id: str) -> Optional[str]:
        return self._bindings.get(student_id)

    def set(self, student_id: str, device_id: Optional[str]) -> None:
        if device_id is None:
            self._bindings.pop(student_id, None)
        else:
            self._bindings[student_id] = device_id

    def bind_if_unbound(self, student_id: str, device_id: str) -> str:
        return self._bindings.setdefault(student_id, device_id)


class UserDeviceStore:
    """Device bindings persisted on ``User.device_id``."""

    def get(self, student_id: str) -> Optional[str]:
        from geoattend.models.user import User

        user = User.get_by_id(int(student_id))
        return user.device_id if user else None

    def set(self, student_id: str, device_id: Optional[str]) -> None:
        from geoattend.models.user import User

        user = User.get_by_id(int(student_id))
        if user is None:
            raise LookupError(f'User {student_id} not found')
        user.update(device_id=device_id)

    def bind_if_unbound(self, student_id: str, device_id: str) -> Optional[str]:
        """
        Set ``device_id`` only where the row has none yet and return the
        device bound afterwards.

        The conditional UPDATE lets the database pick one winner when several
        workers bind the same student at once.
        """
        from geoattend import db
        from geoattend.models.user import User

        try:
            updated = User.query.filter(
                User.id == int(student_id),
                User.device_id.is_(None)
            ).update({'device_id': device_id, 'updated_at': utcnow()}, synchronize_session=False)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        row = db.session.query(User.device_id).filter(User.id == int(student_id)).first()
        if row is None:
            raise LookupError(f'User {student_id} not found')
        if not updated:
            logger.info('Student %s was bound concurrently to %s', student_id, row.device_id)
        return row.device_id


class DeviceBindingPolicy:
    """
    First-use trust device binding.

    A student without a bound device gets bound to the first device they
    check in from. Afterwards any other device is a mismatch, which the
    caller treats as a hard rejection. Changing the bound device is an
    explicit administrative action (``rebind``), never a side effect of
    logging in.
    """

    def __init__(self, store=None):
        self.store = store if store is not None else InMemoryDeviceStore()
        self._locks = KeyedLock()

    def check_and_bind(self, student_id: str, device_id: str) -> BindingOutcome:
        """Bind on first use, otherwise compare against the bound device."""
        if not device_id:
            raise ValueError('device_id is required')

        with self._locks.hold(student_id):
            bound = self.store.get(student_id)
            if bound is None:
                bound = self.store.bind_if_unbound(student_id, device_id)
                if bound == device_id:
                    logger.info('Device %s bound to student %s', device_id, student_id)
                    return BindingOutcome.BOUND
            if bound != device_id:
                logger.warning(
                    'Device ID mismatch for student %s: expected %s, got %s',
                    student_id, bound, device_id
                )
                return BindingOutcome.MISMATCH
            return BindingOutcome.BOUND

    def binding(self, student_id: str) -> Optional[str]:
        with self._locks.hold(student_id):
            return self.store.get(student_id)

    def rebind(self, student_id: str, device_id: str, admin: str) -> Optional[str]:
        """Replace a student's bound device. Returns the previous device."""
        if not device_id:
            raise ValueError('device_id is required')

        with self._locks.hold(student_id):
            previous = self.store.get(student_id)
            self.store.set(student_id, device_id)
        logger.info('Student %s rebound from %s to %s by %s', student_id, previous, device_id, admin)
        return previous

    def unbind(self, student_id: str, admin: str) -> Optional[str]:
        """Clear a binding so the next check-in binds afresh."""
        with self._locks.hold(student_id):
            previous = self.store.get(student_id)
            self.store.set(student_id, None)
        logger.info('Student %s unbound from %s by %s', student_id, previous, admin)
        return previous
