from .auth import CurrentUser, Role, User, get_current_user, resolve_user_from_token, role_required
from .services import (
    DispatcherUser,
    StaffUser,
    get_change_feed,
    get_dispatch_worker,
    get_notification_repository,
    get_ticket_service,
)

__all__ = [
    "CurrentUser",
    "DispatcherUser",
    "Role",
    "StaffUser",
    "User",
    "get_change_feed",
    "get_current_user",
    "get_dispatch_worker",
    "get_notification_repository",
    "get_ticket_service",
    "resolve_user_from_token",
    "role_required",
]
