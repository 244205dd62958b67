"""
User profile model and data access functions.
Handles the profile projection of the current user and Flask-Login integration.
"""

from dataclasses import dataclass, asdict
from typing import Optional

from gateway import Query, Filter


@dataclass(frozen=True)
class UserProfile:
    """
    Current-user projection: the profiles row merged with the auth identity.
    Implements the Flask-Login user interface.
    """

    id: str
    user_id: str
    username: Optional[str]
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    avatar_url: Optional[str] = None
    role: str = 'user'
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    email_confirmed_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict, auth_user=None) -> 'UserProfile':
        """
        Build the projection from a profiles row.

        Args:
            row: profiles row
            auth_user: AuthUser supplying email and email_confirmed_at (optional)
        """
        return cls(
            id=row['id'],
            user_id=row['user_id'],
            username=row.get('username'),
            email=(auth_user.email if auth_user else None) or row.get('email') or '',
            full_name=row.get('full_name'),
            phone=row.get('phone'),
            avatar_url=row.get('avatar_url'),
            role=row.get('role') or 'user',
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
            email_confirmed_at=(auth_user.email_confirmed_at if auth_user
                                else row.get('email_confirmed_at')),
        )

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    @property
    def is_authenticated(self):
        """Required by Flask-Login."""
        return True

    @property
    def is_active(self):
        """Required by Flask-Login."""
        return True

    @property
    def is_anonymous(self):
        """Required by Flask-Login."""
        return False

    def get_id(self):
        """Required by Flask-Login. Returns the auth identity id."""
        return str(self.user_id)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['is_admin'] = self.is_admin
        return data


# =============================================================================
# READ OPERATIONS
# =============================================================================

def get_profile_by_user_id(backend, user_id: str) -> Optional[dict]:
    """
    Get profile row by auth identity id.

    Args:
        backend: Gateway backend
        user_id: Auth user id

    Returns:
        Profile dict or None if not found
    """
    return backend.table('profiles').single(Query().eq('user_id', user_id))


def find_profiles_by_username_or_email(backend, username: str, email: str) -> list:
    """
    Find profiles colliding on username or email, in one lookup.

    Args:
        backend: Gateway backend
        username: Candidate username
        email: Candidate email

    Returns:
        List of matching profile dicts (at most one per field)
    """
    query = Query().select('id', 'username', 'email').or_(
        Filter('username', 'eq', username),
        Filter('email', 'eq', email),
    )
    return backend.table('profiles').select(query)


def count_profiles(backend, role: str = None) -> int:
    query = Query()
    if role:
        query.eq('role', role)
    return backend.table('profiles').count(query)


# =============================================================================
# UPDATE OPERATIONS
# =============================================================================

def update_profile_row(backend, user_id: str, values: dict) -> Optional[dict]:
    """
    Update a profile and return the stored row.

    Args:
        backend: Gateway backend
        user_id: Auth user id owning the profile
        values: Columns to change

    Returns:
        Updated profile dict or None if no profile matched
    """
    rows = backend.table('profiles').update(values, Query().eq('user_id', user_id))
    return rows[0] if rows else None
