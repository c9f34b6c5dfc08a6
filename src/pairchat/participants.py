"""
Static participant registry.

The engine never branches on specific identities; it asks the registry who
the other participants are and which avatar belongs to whom.
"""

from typing import Iterable, Optional
from urllib.parse import quote

from pydantic import BaseModel

FALLBACK_AVATAR_URL = "https://ui-avatars.com/api/?name={name}"


class Participant(BaseModel):
    identity: str
    avatar_url: Optional[str] = None


class ParticipantRegistry:
    def __init__(self, participants: Iterable[Participant]):
        self._by_identity: dict[str, Participant] = {}
        for p in participants:
            self._by_identity[p.identity] = p

    @classmethod
    def from_mapping(cls, avatars: dict[str, Optional[str]]) -> "ParticipantRegistry":
        return cls(Participant(identity=k, avatar_url=v) for k, v in avatars.items())

    def __contains__(self, identity: object) -> bool:
        return identity in self._by_identity

    def __len__(self) -> int:
        return len(self._by_identity)

    def get(self, identity: str) -> Optional[Participant]:
        return self._by_identity.get(identity)

    def others(self, local: str) -> list[str]:
        """Every known participant except ``local``, in registration order."""
        return [identity for identity in self._by_identity if identity != local]

    def avatar_for(self, identity: str) -> str:
        p = self._by_identity.get(identity)
        if p and p.avatar_url:
            return p.avatar_url
        return FALLBACK_AVATAR_URL.format(name=quote(identity))
