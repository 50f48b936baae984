from .registry import Spa, Therapist
from .lifecycle import StatusChange
from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .security import SecurityEvent
from .third_party import ThirdPartyCredential, ThirdPartyToken, ThirdPartyUsernameClaim

__all__ = [
    'Spa', 'Therapist',
    'StatusChange',
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'SecurityEvent',
    'ThirdPartyCredential', 'ThirdPartyToken', 'ThirdPartyUsernameClaim',
]
