"""
SQLAlchemy ORM models for the PadelXP club platform.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    JSON,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from padelxp.database.db import Base


class ClubAdminRole(str, enum.Enum):
    """Club admin role enum."""

    OWNER = "owner"
    ADMIN = "admin"


class MatchStatus(str, enum.Enum):
    """Match confirmation status enum."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class RewardType(str, enum.Enum):
    """Challenge reward type."""

    POINTS = "points"
    BADGE = "badge"


class SubscriptionStatus(str, enum.Enum):
    """Club billing lifecycle."""

    TRIALING = "trialing"
    TRIALING_WITH_PLAN = "trialing_with_plan"
    SCHEDULED_ACTIVATION = "scheduled_activation"
    ACTIVE = "active"
    PAUSED = "paused"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    TRIAL_EXPIRED = "trial_expired"


class PlanCycle(str, enum.Enum):
    """Billing cycle of a paid plan."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


class SupportConversationStatus(str, enum.Enum):
    """Support conversation status enum."""

    OPEN = "open"
    CLOSED = "closed"


class TournamentType(str, enum.Enum):
    """Tournament format."""

    OFFICIAL_KNOCKOUT = "official_knockout"
    TMC = "tmc"
    OFFICIAL_POOLS = "official_pools"


class TournamentStatus(str, enum.Enum):
    """Tournament lifecycle status."""

    DRAFT = "draft"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    DRAWS_PUBLISHED = "draws_published"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TournamentRegistrationStatus(str, enum.Enum):
    """Registration status of a pair."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    WAITING_LIST = "waiting_list"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class TournamentMatchStatus(str, enum.Enum):
    """Tournament match status."""

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class User(Base):
    """User accounts with email/password authentication."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    login_count = Column(Integer, default=0, nullable=False)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    profile = relationship("Profile", back_populates="user", uselist=False)
    refresh_tokens = relationship(
        "RefreshToken", back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_users_email", "email"),)


class RefreshToken(Base):
    """JWT refresh tokens for token rotation."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String, nullable=False, unique=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_user", "user_id"),
        Index("idx_refresh_tokens_token", "token"),
    )


class Club(Base):
    """Padel clubs."""

    __tablename__ = "clubs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    slug = Column(String(120), nullable=False, unique=True)
    postal_code = Column(String(10), nullable=True)
    city = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    admins = relationship("ClubAdmin", back_populates="club", cascade="all, delete-orphan")
    profiles = relationship("Profile", back_populates="club")
    subscription = relationship(
        "Subscription", back_populates="club", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_clubs_slug", "slug"),)


class ClubAdmin(Base):
    """Users allowed to manage a club."""

    __tablename__ = "club_admins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), default=ClubAdminRole.ADMIN.value, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    club = relationship("Club", back_populates="admins")

    __table_args__ = (
        UniqueConstraint("club_id", "user_id", name="uq_club_admins_club_user"),
        Index("idx_club_admins_user", "user_id"),
    )


class Profile(Base):
    """Player profile, optionally attached to a user account (guests have none)."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, unique=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="SET NULL"), nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    postal_code = Column(String(10), nullable=True)
    department_code = Column(String(3), nullable=True)
    region_code = Column(String(3), nullable=True)
    points = Column(Integer, default=0, nullable=False)  # Challenge points
    level = Column(Float, default=5.0, nullable=False)
    level_matches = Column(Integer, default=0, nullable=False)  # Matches counted for level K-factor
    is_guest = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile")
    club = relationship("Club", back_populates="profiles")

    __table_args__ = (
        Index("idx_profiles_club", "club_id"),
        Index("idx_profiles_department", "department_code"),
        Index("idx_profiles_region", "region_code"),
    )


class Match(Base):
    """Padel match submitted by a player, counted once confirmed."""

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=True)
    team1_id = Column(String(64), nullable=False)
    team2_id = Column(String(64), nullable=False)
    winner_team_id = Column(String(64), nullable=True)
    score_team1 = Column(Integer, nullable=False, default=0)  # Sets won
    score_team2 = Column(Integer, nullable=False, default=0)
    sets = Column(JSON, nullable=False)  # [{"team1": 6, "team2": 4}, ...]
    tie_break = Column(JSON, nullable=True)
    decided_by_tiebreak = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default=MatchStatus.PENDING.value, nullable=False)
    played_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    participants = relationship(
        "MatchParticipant", back_populates="match", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_matches_club", "club_id"),
        Index("idx_matches_status", "status"),
        Index("idx_matches_played_at", "played_at"),
    )


class MatchParticipant(Base):
    """Player slot in a match, with its confirmation token."""

    __tablename__ = "match_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    team = Column(Integer, nullable=False)  # 1 or 2
    is_guest = Column(Boolean, default=False, nullable=False)
    confirmed = Column(Boolean, default=False, nullable=False)
    confirmation_token = Column(String(64), nullable=True, unique=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    match = relationship("Match", back_populates="participants")
    profile = relationship("Profile")

    __table_args__ = (
        UniqueConstraint("match_id", "profile_id", name="uq_match_participants_match_profile"),
        Index("idx_match_participants_profile", "profile_id"),
    )


class MatchBoost(Base):
    """Points boost applied by a player to one of their matches."""

    __tablename__ = "match_boosts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    points_after_boost = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("match_id", "profile_id", name="uq_match_boosts_match_profile"),
    )


class Review(Base):
    """Player review of the platform, worth a one-time leaderboard bonus."""

    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_reviews_profile", "profile_id"),)


class Challenge(Base):
    """Time-boxed objective with a points or badge reward. club_id NULL = global."""

    __tablename__ = "challenges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=True)
    title = Column(String, nullable=False)
    objective = Column(Text, nullable=False)
    reward_type = Column(String(20), nullable=False)
    reward_label = Column(String, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_challenges_club", "club_id"),)


class ChallengeReward(Base):
    """Claimed challenge reward (one per player and challenge)."""

    __tablename__ = "challenge_rewards"

    id = Column(Integer, primary_key=True, autoincrement=True)
    challenge_id = Column(Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False)
    profile_id = Column(Integer, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    reward_type = Column(String(20), nullable=False)
    reward_value = Column(String, nullable=False)
    claimed_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("challenge_id", "profile_id", name="uq_challenge_rewards_challenge_profile"),
    )


class Subscription(Base):
    """Club subscription, trial included."""

    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = Column(String(30), default=SubscriptionStatus.TRIALING.value, nullable=False)
    trial_start_at = Column(DateTime(timezone=True), nullable=True)
    trial_end_at = Column(DateTime(timezone=True), nullable=True)
    plan_cycle = Column(String(20), nullable=True)
    selected_plan = Column(String(20), nullable=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    next_renewal_at = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    has_payment_method = Column(Boolean, default=False, nullable=False)
    auto_activate_at_trial_end = Column(Boolean, default=False, nullable=False)
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    auto_extension_used = Column(Boolean, default=False, nullable=False)
    proposed_extension_sent = Column(Boolean, default=False, nullable=False)
    manual_extension_days = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    club = relationship("Club", back_populates="subscription")
    events = relationship(
        "SubscriptionEvent", back_populates="subscription", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_subscriptions_status", "status"),
        Index("idx_subscriptions_stripe_subscription", "stripe_subscription_id"),
    )


class SubscriptionEvent(Base):
    """Audit trail of subscription status changes."""

    __tablename__ = "subscription_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    subscription_id = Column(
        Integer, ForeignKey("subscriptions.id", ondelete="CASCADE"), nullable=False
    )
    event_type = Column(String(60), nullable=False)
    triggered_by = Column(String(20), default="system", nullable=False)  # system, user, webhook
    triggered_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    subscription = relationship("Subscription", back_populates="events")

    __table_args__ = (Index("idx_subscription_events_subscription", "subscription_id"),)


class AdminClubAction(Base):
    """Actions performed by platform admins on a club."""

    __tablename__ = "admin_club_actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    admin_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action_type = Column(String(40), nullable=False)
    action_description = Column(String, nullable=True)
    previous_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_admin_club_actions_club", "club_id"),)


class SupportConversation(Base):
    """Support thread between a club and the platform team."""

    __tablename__ = "support_conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), default=SupportConversationStatus.OPEN.value, nullable=False)
    subject = Column(String, nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    messages = relationship(
        "SupportMessage", back_populates="conversation", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_support_conversations_club_user", "club_id", "user_id"),)


class SupportMessage(Base):
    """Single message of a support conversation."""

    __tablename__ = "support_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(
        Integer, ForeignKey("support_conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_type = Column(String(20), nullable=False)  # club or admin
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    content = Column(Text, nullable=False)
    email_message_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    conversation = relationship("SupportConversation", back_populates="messages")


class Tournament(Base):
    """Club tournament."""

    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    club_id = Column(Integer, ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    tournament_type = Column(String(30), nullable=False)
    status = Column(String(30), default=TournamentStatus.DRAFT.value, nullable=False)
    start_date = Column(DateTime(timezone=True), nullable=True)
    match_duration_minutes = Column(Integer, default=60, nullable=False)
    available_courts = Column(JSON, nullable=True)  # [1, 2, 3]
    pool_size = Column(Integer, default=4, nullable=False)
    max_teams = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    registrations = relationship(
        "TournamentRegistration", back_populates="tournament", cascade="all, delete-orphan"
    )
    matches = relationship(
        "TournamentMatch", back_populates="tournament", cascade="all, delete-orphan"
    )

    __table_args__ = (Index("idx_tournaments_club", "club_id"),)


class TournamentRegistration(Base):
    """Pair registered to a tournament."""

    __tablename__ = "tournament_registrations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    player1_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    player2_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    pair_weight = Column(Integer, default=0, nullable=False)
    seed_number = Column(Integer, nullable=True)
    status = Column(String(20), default=TournamentRegistrationStatus.CONFIRMED.value, nullable=False)
    final_ranking = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    tournament = relationship("Tournament", back_populates="registrations")

    __table_args__ = (Index("idx_tournament_registrations_tournament", "tournament_id"),)


class TournamentMatch(Base):
    """Bracket or pool match of a tournament."""

    __tablename__ = "tournament_matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tournament_id = Column(
        Integer, ForeignKey("tournaments.id", ondelete="CASCADE"), nullable=False
    )
    round_type = Column(String(30), nullable=False)
    round_number = Column(Integer, nullable=False)
    match_order = Column(Integer, nullable=False)
    tableau = Column(String(40), nullable=True)
    pool_number = Column(Integer, nullable=True)
    team1_registration_id = Column(
        Integer, ForeignKey("tournament_registrations.id", ondelete="SET NULL"), nullable=True
    )
    team2_registration_id = Column(
        Integer, ForeignKey("tournament_registrations.id", ondelete="SET NULL"), nullable=True
    )
    winner_registration_id = Column(
        Integer, ForeignKey("tournament_registrations.id", ondelete="SET NULL"), nullable=True
    )
    score = Column(JSON, nullable=True)  # {"sets": [...], "super_tiebreak": {...}, "formatted": "..."}
    is_bye = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default=TournamentMatchStatus.SCHEDULED.value, nullable=False)
    court_number = Column(Integer, nullable=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    tournament = relationship("Tournament", back_populates="matches")

    __table_args__ = (
        Index("idx_tournament_matches_tournament", "tournament_id"),
        Index("idx_tournament_matches_round", "tournament_id", "round_number"),
    )


class Setting(Base):
    """Application configuration."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
