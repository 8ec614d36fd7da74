"""
Registry errors - one class per failure kind.

Error hierarchy:
    RegistryError (base)
    ├── AlreadyRegistered       (100)
    ├── Unauthorized            (101)
    ├── InvalidFingerprint      (102)
    ├── InvalidMethod           (103)
    ├── InvalidVolume           (104)
    ├── InvalidLocation         (105)
    ├── NotFound                (106)
    ├── MaxVersionsReached      (107)
    ├── InvalidStatus           (108)
    ├── MetadataTooLong         (109)
    ├── TooManyTags             (110)
    ├── InvalidTag              (111)
    ├── InvalidNotes            (112)
    ├── InvalidRole             (113)
    ├── TooManyPermissions      (114)
    └── InvalidPermission       (115)

Codes are stable; external auditors branch on them.
"""

from typing import Any, Dict, Optional


class RegistryError(Exception):
    """Base error for all registry operation failures."""

    code = 0
    kind = "RegistryError"

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "kind": self.kind,
            "message": self.message,
            "details": self.details,
        }


class AlreadyRegistered(RegistryError):
    """Fingerprint already indexed, or collaborator already granted."""
    code = 100
    kind = "AlreadyRegistered"


class Unauthorized(RegistryError):
    code = 101
    kind = "Unauthorized"


class InvalidFingerprint(RegistryError):
    code = 102
    kind = "InvalidFingerprint"


class InvalidMethod(RegistryError):
    code = 103
    kind = "InvalidMethod"


class InvalidVolume(RegistryError):
    code = 104
    kind = "InvalidVolume"


class InvalidLocation(RegistryError):
    code = 105
    kind = "InvalidLocation"


class NotFound(RegistryError):
    code = 106
    kind = "NotFound"


class MaxVersionsReached(RegistryError):
    code = 107
    kind = "MaxVersionsReached"


class InvalidStatus(RegistryError):
    code = 108
    kind = "InvalidStatus"


class MetadataTooLong(RegistryError):
    code = 109
    kind = "MetadataTooLong"


class TooManyTags(RegistryError):
    code = 110
    kind = "TooManyTags"


class InvalidTag(RegistryError):
    code = 111
    kind = "InvalidTag"


class InvalidNotes(RegistryError):
    code = 112
    kind = "InvalidNotes"


class InvalidRole(RegistryError):
    code = 113
    kind = "InvalidRole"


class TooManyPermissions(RegistryError):
    code = 114
    kind = "TooManyPermissions"


class InvalidPermission(RegistryError):
    code = 115
    kind = "InvalidPermission"

