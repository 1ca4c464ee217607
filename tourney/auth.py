from dataclasses import dataclass, field
from typing import List, Optional

from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired
from werkzeug.exceptions import Unauthorized
from werkzeug.security import generate_password_hash, check_password_hash


@dataclass
class Principal:
    """Identity carried by a token. ``roles`` is a snapshot taken at login."""
    user_id: int
    email: str
    roles: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {'sub': self.user_id, 'email': self.email, 'roles': list(self.roles)}

    @classmethod
    def from_dict(cls, data: dict) -> 'Principal':
        return cls(user_id=data['sub'], email=data['email'], roles=list(data.get('roles', [])))


class Authenticator:
    """Password hashing and bearer tokens."""

    SALT = 'tourney-auth'

    def __init__(self, secret_key: str, max_age: int = 7 * 24 * 3600, hash_method: str = 'scrypt'):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=self.SALT)
        self.max_age = max_age
        self.hash_method = hash_method

    def hash(self, secret: str) -> str:
        return generate_password_hash(secret, method=self.hash_method)

    def verify(self, secret: str, digest: Optional[str]) -> bool:
        if not digest:
            return False
        return check_password_hash(digest, secret)

    def issue_token(self, principal: Principal) -> str:
        return self._serializer.dumps(principal.to_dict())

    def verify_token(self, token: str) -> Principal:
        try:
            data = self._serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            raise Unauthorized('Token expired')
        except BadSignature:
            raise Unauthorized('Invalid token')
        return Principal.from_dict(data)
