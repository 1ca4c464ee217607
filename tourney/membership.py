import logging
from typing import List, Optional

from werkzeug.exceptions import BadRequest, Conflict, NotFound, Unauthorized

from shared.events import organization_joined_event
from shared.pubsub import EventBus
from .auth import Authenticator, Principal
from .models import db, Game, Organization, OrgMembership, Role, User
from .permissions import current_role
from .store import commit_or_raise

logger = logging.getLogger(__name__)


class IdentityService:
    """
    Accounts, organizations and organization membership.
    """

    PROFILE_FIELDS = ('name', 'phone', 'avatar_url')

    def __init__(self, authenticator: Authenticator, events: EventBus):
        self.auth = authenticator
        self.events = events

    # ==================== Accounts ====================

    def register_user(
        self,
        name: str,
        email: str,
        password: str,
        phone: str = None,
        avatar_url: str = None
    ) -> User:
        """Create an account. Emails are unique, compared case-insensitively."""
        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            raise Conflict(f"User with email '{email}' already exists")

        user = User(
            name=name,
            email=email,
            password_hash=self.auth.hash(password),
            phone=phone,
            avatar_url=avatar_url
        )
        db.session.add(user)
        commit_or_raise(Conflict(f"User with email '{email}' already exists"))

        logger.info(f"Registered user {user.id}")
        return user

    def login(self, email: str, password: str) -> dict:
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user or not self.auth.verify(password, user.password_hash):
            raise Unauthorized('Invalid credentials')

        roles = [m.role for m in user.memberships]
        token = self.auth.issue_token(Principal(user_id=user.id, email=user.email, roles=roles))
        return {
            'access_token': token,
            'user': {
                'id': user.id,
                'email': user.email,
                'name': user.name,
                'roles': roles,
            }
        }

    def principal_from_token(self, token: str) -> Principal:
        """Resolve a bearer token. The user must still exist."""
        principal = self.auth.verify_token(token)
        if db.session.get(User, principal.user_id) is None:
            raise Unauthorized('User not found')
        return principal

    def get_profile(self, user_id: int) -> User:
        user = db.session.get(User, user_id)
        if not user:
            raise NotFound('User not found')
        return user

    def update_profile(self, user_id: int, **changes) -> User:
        user = self.get_profile(user_id)
        for key, value in changes.items():
            if key not in self.PROFILE_FIELDS:
                raise BadRequest(f"Field '{key}' cannot be updated")
            if value is not None:
                setattr(user, key, value)
        db.session.commit()
        return user

    # ==================== Organizations ====================

    def create_organization(
        self,
        creator_id: int,
        name: str,
        slug: str,
        default_game_id: int = None,
        branding: dict = None
    ) -> Organization:
        """Create an organization; the creator becomes its super manager."""
        if Organization.query.filter_by(slug=slug).first():
            raise Conflict(f"Organization with slug '{slug}' already exists")

        if default_game_id is not None and db.session.get(Game, default_game_id) is None:
            raise NotFound(f'Game with ID {default_game_id} not found')

        org = Organization(
            name=name,
            slug=slug,
            default_game_id=default_game_id,
            branding=branding
        )
        db.session.add(org)
        db.session.flush()

        db.session.add(OrgMembership(
            org_id=org.id,
            user_id=creator_id,
            role=Role.SUPER_MANAGER.value
        ))
        commit_or_raise(Conflict(f"Organization with slug '{slug}' already exists"))

        logger.info(f"Organization {org.slug} created by user {creator_id}")
        return org

    def join_organization(self, user_id: int, org_id: int, role: Optional[str] = None) -> OrgMembership:
        org = db.session.get(Organization, org_id)
        if not org:
            raise NotFound('Organization not found')

        role = role or Role.FOLLOWER.value
        try:
            role = Role(role).value
        except ValueError:
            raise BadRequest(f"Unknown role '{role}'")

        if OrgMembership.query.filter_by(org_id=org_id, user_id=user_id).first():
            raise Conflict('Already a member of this organization')

        membership = OrgMembership(org_id=org_id, user_id=user_id, role=role)
        db.session.add(membership)
        commit_or_raise(Conflict('Already a member of this organization'))

        logger.info(f"User {user_id} joined organization {org_id} as {role}")
        self.events.publish(organization_joined_event(org.id, org.name, user_id, role))
        return membership

    def role_of(self, org_id: int, user_id: int) -> Optional[str]:
        return current_role(org_id, user_id)

    def get_user_organizations(self, user_id: int) -> List[OrgMembership]:
        return (
            OrgMembership.query
            .filter_by(user_id=user_id)
            .order_by(OrgMembership.created_at.desc(), OrgMembership.id.desc())
            .all()
        )
