"""
Typed results returned by the capture registry.
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class CaptureRecord:
    id: int
    fingerprint: bytes
    owner: str
    created: int  # sequence number at registration
    volume: int
    method: str
    location: str
    metadata: str

    @property
    def fingerprint_hex(self) -> str:
        return self.fingerprint.hex()


@dataclass
class Revision:
    record_id: int
    revision: int  # 1..MAX_VERSIONS, dense
    fingerprint: bytes
    notes: str
    created: int


@dataclass
class CollaboratorGrant:
    record_id: int
    collaborator: str
    role: str
    permissions: List[str] = field(default_factory=list)
    added: int = 0


@dataclass
class StatusEntry:
    record_id: int
    status: str  # pending, verified, disputed
    visible: bool
    last_update: int


@dataclass
class TagSet:
    record_id: int
    tags: List[str] = field(default_factory=list)


@dataclass
class RegistryEvent:
    id: int
    record_id: int
    actor: str
    action: str
    payload: Dict
    sequence: int
