"""
Value types shared by the matchmaking core.
Gender and filter values are normalized here, at the store-read boundary,
so matching logic never sees raw profile strings.
"""
import enum
import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import List, Optional


GUEST_PREFIX = "guest_"
GUEST_DISPLAY_NAME = "Anonymous Guest"
ANONYMOUS_DISPLAY_NAME = "Anonymous"


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    UNDISCLOSED = "UNDISCLOSED"


class GenderFilter(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"
    ANY = "ANY"


class MatchMode(str, enum.Enum):
    RANDOM = "random"
    INTEREST = "interest"


def normalize_gender(raw: Optional[str]) -> Gender:
    """Map a stored gender value ('male', 'Female', 'MALE_X', None...) to the closed enum."""
    if not raw:
        return Gender.UNDISCLOSED
    upper = str(raw).strip().upper()
    if upper.startswith("MALE"):
        return Gender.MALE
    if upper.startswith("FEMALE"):
        return Gender.FEMALE
    return Gender.UNDISCLOSED


def normalize_filter(raw) -> GenderFilter:
    """Anything other than an exact MALE/FEMALE request means ANY."""
    if isinstance(raw, GenderFilter):
        return raw
    if raw in (GenderFilter.MALE.value, GenderFilter.FEMALE.value):
        return GenderFilter(raw)
    return GenderFilter.ANY


def filter_accepts(gender_filter: GenderFilter, gender: Gender) -> bool:
    """Check whether a party of ``gender`` satisfies ``gender_filter``."""
    if gender_filter == GenderFilter.ANY:
        return True
    return gender.value == gender_filter.value


def is_guest_id(identity_id: str) -> bool:
    return identity_id.startswith(GUEST_PREFIX)


def new_guest_id() -> str:
    """Guest ids look like guest_<epoch ms>_<8 hex>."""
    return f"{GUEST_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def new_room_id(initiator_is_guest: bool = False, partner_is_guest: bool = False) -> str:
    """Short collision-improbable room id, prefixed when guests take part."""
    token = uuid.uuid4().hex[:12]
    if initiator_is_guest and partner_is_guest:
        return f"guest_{token}"
    if initiator_is_guest or partner_is_guest:
        return f"mixed_{token}"
    return token


@dataclass
class UserProjection:
    """The fixed slice of a user profile the matchmaking core reads."""
    user_id: str
    gender: Gender = Gender.UNDISCLOSED
    is_pro: bool = False
    display_name: str = ANONYMOUS_DISPLAY_NAME
    interests: List[str] = field(default_factory=list)

    @property
    def is_guest(self) -> bool:
        return is_guest_id(self.user_id)

    @classmethod
    def for_guest(cls, guest_id: str) -> "UserProjection":
        return cls(user_id=guest_id, display_name=GUEST_DISPLAY_NAME)


@dataclass
class MatchRequest:
    requester_id: str
    mode: MatchMode = MatchMode.RANDOM
    gender_filter: GenderFilter = GenderFilter.ANY


@dataclass
class MatchResult:
    queued: bool
    room_id: Optional[str] = None
    partner_id: Optional[str] = None
    partner_display_name: Optional[str] = None

    @classmethod
    def waiting(cls) -> "MatchResult":
        return cls(queued=True)


@dataclass
class MatchRecord:
    """Persisted pairing, as read back from the persistent store."""
    room_id: str
    initiator_id: str
    joiner_id: str
    mode: str

    def partner_of(self, participant_id: str) -> Optional[str]:
        if participant_id == self.initiator_id:
            return self.joiner_id
        if participant_id == self.joiner_id:
            return self.initiator_id
        return None


@dataclass
class PendingMatch:
    room_id: Optional[str] = None
    partner_id: Optional[str] = None
    partner_display_name: Optional[str] = None
