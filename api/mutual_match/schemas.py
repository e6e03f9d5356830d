from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import MalformedRecord
from .services.state_machine import EntryStatus, MatchStatus, derive_pair_status

Record = TypeVar("Record", bound=BaseModel)

DEFAULT_DISPLAY_NAME = "User"


class ProfileCard(BaseModel):
    """Display fields copied from a profile into pairs and view entries."""

    model_config = ConfigDict(extra="forbid")

    display_name: str
    photo_url: str | None = None
    age: int | None = None
    location: str | None = None
    description: str | None = None
    hobbies: list[str] = Field(default_factory=list)
    email: str | None = None


class ProfileSnapshot(BaseModel):
    # profile documents belong to the profile subsystem and may carry more fields
    model_config = ConfigDict(extra="ignore")

    id: str
    display_name: str | None = None
    photo_url: str | None = None
    age: int | None = None
    location: str | None = None
    description: str | None = None
    hobbies: list[str] = Field(default_factory=list)
    email: str | None = None
    has_matching_consent: bool = False
    matching_enabled: bool = False
    is_public: bool = False

    def card(self) -> ProfileCard:
        name = self.display_name or (self.email.split("@")[0] if self.email else "") or DEFAULT_DISPLAY_NAME
        return ProfileCard(
            display_name=name,
            photo_url=self.photo_url,
            age=self.age,
            location=self.location,
            description=self.description,
            hobbies=list(self.hobbies),
            email=self.email,
        )


class MatchPair(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    week_id: str
    user_id_a: str
    user_id_b: str
    snapshot_a: ProfileCard
    snapshot_b: ProfileCard
    user_a_accepted: bool = False
    user_b_accepted: bool = False
    user_a_accepted_at: datetime | None = None
    user_b_accepted_at: datetime | None = None
    status: MatchStatus
    created_at: datetime
    expires_at: datetime
    mutual_at: datetime | None = None

    @model_validator(mode="after")
    def _status_follows_flags(self) -> "MatchPair":
        if self.user_id_a == self.user_id_b:
            raise ValueError("a match needs two different users")
        expected = derive_pair_status(self.user_a_accepted, self.user_b_accepted)
        if self.status != expected:
            raise ValueError(f"status {self.status.value} does not match acceptance flags ({expected.value})")
        if (self.status == MatchStatus.MUTUAL) != (self.mutual_at is not None):
            raise ValueError("mutual_at is set exactly when the match is mutual")
        return self


class MatchEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    match_id: str
    counterpart_user_id: str
    counterpart_snapshot: ProfileCard
    status: EntryStatus = EntryStatus.PENDING


class UserView(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    week_id: str
    matches: list[MatchEntry] = Field(default_factory=list)
    total_matches: int = 0
    created_at: datetime
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _total_follows_matches(self) -> "UserView":
        if self.total_matches != len(self.matches):
            raise ValueError(f"total_matches={self.total_matches} but {len(self.matches)} entries stored")
        return self

    def entry(self, match_id: str) -> MatchEntry | None:
        for item in self.matches:
            if item.match_id == match_id:
                return item
        return None


def load_record(model: type[Record], collection: str, doc_id: str, data: dict[str, Any]) -> Record:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise MalformedRecord(collection, doc_id, str(exc)) from exc


def dump_record(record: BaseModel) -> dict[str, Any]:
    return record.model_dump(mode="json")
