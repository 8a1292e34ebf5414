"""Payment reference id generation."""

import time
import uuid


def generate_reference_id() -> str:
    """
    PAY-<unix millis>-<8 uppercase hex chars>.
    
    The millisecond prefix keeps references roughly sortable; the random
    suffix avoids collisions. Uniqueness is enforced by the database.
    """
    millis = int(time.time() * 1000)
    suffix = uuid.uuid4().hex[:8].upper()
    return f"PAY-{millis}-{suffix}"
