from typing import Optional

from fastapi import Header


def current_actor(x_user_id: Optional[int] = Header(None)) -> Optional[int]:
    """Operator id recorded on scans and history rows.

    Authentication is handled in front of this service; it forwards the
    operator as the ``X-User-Id`` header.
    """
    return x_user_id
