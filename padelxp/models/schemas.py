"""
Pydantic models for API request/response validation.
"""

from typing import Optional, List
from pydantic import BaseModel, Field, model_validator


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    database: str
    message: str


# Authentication schemas


class SignupRequest(BaseModel):
    """Request to sign up a new user."""

    email: str
    password: str
    first_name: str
    last_name: str
    postal_code: Optional[str] = None


class LoginRequest(BaseModel):
    """Request to login with email and password."""

    email: str
    password: str


class AuthResponse(BaseModel):
    """Authentication response with JWT token."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user_id: int
    email: str


class RefreshTokenRequest(BaseModel):
    """Request to refresh access token."""

    refresh_token: str


class RefreshTokenResponse(BaseModel):
    """Response with new access token."""

    access_token: str
    token_type: str = "bearer"


# Clubs and profiles


class ClubRegisterRequest(BaseModel):
    """Request to register a new club; the caller becomes its owner."""

    name: str
    postal_code: Optional[str] = None
    city: Optional[str] = None


class JoinClubRequest(BaseModel):
    """Request to join a club by its public slug."""

    slug: str


class ProfileUpdate(BaseModel):
    """Request to update the caller's player profile."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    postal_code: Optional[str] = None


# Matches


class SetScore(BaseModel):
    """Games won by each team in one set."""

    team1: int = Field(ge=0)
    team2: int = Field(ge=0)


class MatchPlayer(BaseModel):
    """A match player: a registered profile, or a guest by name."""

    team: int = Field(ge=1, le=2)
    profile_id: Optional[int] = None
    guest_first_name: Optional[str] = None
    guest_last_name: Optional[str] = None

    @model_validator(mode="after")
    def validate_player(self):
        """Ensure either a profile or a guest name is given."""
        if self.profile_id is None and not self.guest_first_name:
            raise ValueError("Either profile_id or guest_first_name must be provided")
        return self


class SubmitMatchRequest(BaseModel):
    """Request to submit a match result for confirmation."""

    players: List[MatchPlayer]
    sets: List[SetScore]
    tie_break: Optional[SetScore] = None
    played_at: Optional[str] = None  # ISO datetime, defaults to now


class MatchTokenRequest(BaseModel):
    """Request carrying a participant's confirmation token."""

    token: str


class CancelMatchRequest(BaseModel):
    """Request to cancel a pending match."""

    match_id: int


# Level


class WinProbabilityRequest(BaseModel):
    """Levels of both teams (1 or 2 players each)."""

    team1_levels: List[float] = Field(min_length=1, max_length=2)
    team2_levels: List[float] = Field(min_length=1, max_length=2)
    matches_played: int = 0


# Challenges


class ChallengeCreate(BaseModel):
    """Request to create a challenge."""

    title: str
    objective: str
    reward_type: str  # 'points' | 'badge'
    reward_label: str
    start_date: str
    end_date: str


class ClaimRewardRequest(BaseModel):
    """Request to claim a completed challenge's reward."""

    challenge_id: int


# Subscriptions and trial


class CreateSubscriptionRequest(BaseModel):
    """Request to pick a plan during the trial."""

    plan: str  # 'monthly' | 'quarterly' | 'annual'


class ManualExtensionRequest(BaseModel):
    """Request to extend a club's trial by hand."""

    club_id: int
    days: int


class ClubIdRequest(BaseModel):
    """Request targeting one of the caller's clubs."""

    club_id: Optional[int] = None


class AdminSubscriptionAction(BaseModel):
    """Admin action on a club subscription."""

    action: str


# Support


class ContactRequest(BaseModel):
    """Message from a club to the support team."""

    message: str
    subject: Optional[str] = None


# Reviews


class ReviewCreate(BaseModel):
    """Player review of the platform."""

    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


# Tournaments


class TournamentCreate(BaseModel):
    """Request to create a tournament."""

    club_id: int
    name: str
    tournament_type: str  # 'official_knockout' | 'tmc' | 'official_pools'
    start_date: Optional[str] = None
    match_duration_minutes: int = 60
    available_courts: Optional[List[int]] = None
    pool_size: int = 4
    max_teams: Optional[int] = None


class TournamentUpdate(BaseModel):
    """Request to update a tournament."""

    name: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[str] = None
    match_duration_minutes: Optional[int] = None
    available_courts: Optional[List[int]] = None
    pool_size: Optional[int] = None
    max_teams: Optional[int] = None


class TournamentRegisterRequest(BaseModel):
    """Request to register a pair."""

    player1_id: int
    player2_id: int


class RegistrationStatusUpdate(BaseModel):
    """Request to change a registration status."""

    status: str  # 'pending' | 'confirmed' | 'waiting_list' | 'rejected' | 'withdrawn'


class TiebreakScore(BaseModel):
    team1: int = Field(ge=0)
    team2: int = Field(ge=0)


class TournamentSetScore(BaseModel):
    team1: int = Field(ge=0)
    team2: int = Field(ge=0)
    tiebreak: Optional[TiebreakScore] = None


class TournamentMatchScore(BaseModel):
    """Score of a tournament match."""

    sets: List[TournamentSetScore] = Field(min_length=1, max_length=3)
    super_tiebreak: Optional[TiebreakScore] = None


# Settings


class SettingUpdate(BaseModel):
    """Request to change a runtime setting."""

    value: str
