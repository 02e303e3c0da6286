# sharing/credentials.py
"""Password gate for protected uploads.

Only a one-way digest of the access code is ever stored. Any object with
``digest``/``verify`` can stand in for :class:`CredentialCheck`.
"""
import re

from werkzeug.security import check_password_hash, generate_password_hash

from .errors import ValidationError


class CredentialCheck:
    def __init__(self, length: int = 4, method: str = "pbkdf2:sha256"):
        self.length = length
        self.method = method
        self._pattern = re.compile(rf"\d{{{length}}}")

    def validate(self, credential) -> str:
        credential = "" if credential is None else str(credential)
        if not self._pattern.fullmatch(credential):
            raise ValidationError(f"Credential must be exactly {self.length} digits")
        return credential

    def digest(self, credential: str) -> str:
        return generate_password_hash(self.validate(credential), method=self.method)

    def verify(self, credential: str, digest: str) -> bool:
        if not credential or not digest:
            return False
        return check_password_hash(digest, str(credential))
