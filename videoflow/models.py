"""
Database models for VideoFlow.

This module contains all SQLAlchemy models defining the database schema
for users, teams and their memberships, videos, and video comments.
"""
from datetime import datetime, timedelta
from enum import Enum

from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import check_password_hash, generate_password_hash

# Initialize SQLAlchemy instance
db = SQLAlchemy()


def _enum_values(enum):
    return [e.value for e in enum]


class Role(Enum):
    """
    Roles shared by users (individual default) and team memberships (team-scoped).

    - CREATOR: Owns the channel; approves, rejects, and publishes videos
    - MANAGER: Manages the team roster
    - EDITOR: Uploads videos and comments
    """

    CREATOR = "creator"
    EDITOR = "editor"
    MANAGER = "manager"


class MemberStatus(Enum):
    ACTIVE = "active"
    PENDING = "pending"
    INACTIVE = "inactive"


class SubscriptionPlan(Enum):
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class VideoStatus(Enum):
    """
    Enumeration for video workflow states.

    - UPLOADING: Client-side only; never persisted by the API
    - PENDING: Uploaded and waiting for a creator's decision
    - APPROVED: Approved, not yet live on YouTube
    - REJECTED: Terminal; carries a rejection reason
    - PUBLISHED: Terminal; live on YouTube
    """

    UPLOADING = "uploading"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"

    @property
    def is_terminal(self) -> bool:
        return self in (VideoStatus.REJECTED, VideoStatus.PUBLISHED)


class Privacy(Enum):
    PRIVATE = "private"
    UNLISTED = "unlisted"
    PUBLIC = "public"


class ReactionType(Enum):
    LIKE = "like"
    DISLIKE = "dislike"
    HEART = "heart"
    LAUGH = "laugh"


DEFAULT_ALLOWED_FILE_TYPES = ["mp4", "mov", "avi", "mkv"]
DEFAULT_MAX_FILE_SIZE = 2 * 1024 * 1024 * 1024  # 2GB


def _iso(value):
    return value.isoformat() if value else None


class User(UserMixin, db.Model):
    """
    User model for authentication and profile data.

    ``role`` is only the user's individual default role. Authorization inside a
    team always goes through the team-scoped role on ``TeamMembership``.
    """

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.Enum(Role, name="role", values_callable=_enum_values),
        default=Role.CREATOR,
        nullable=False,
    )
    avatar = db.Column(db.String(500))
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id", use_alter=True))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # YouTube OAuth connection (stored on the team creator)
    youtube_access_token = db.Column(db.Text)
    youtube_refresh_token = db.Column(db.Text)
    youtube_token_expires_at = db.Column(db.DateTime)
    youtube_channel_id = db.Column(db.String(64))
    youtube_channel_name = db.Column(db.String(255))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    team = db.relationship("Team", foreign_keys=[team_id])

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email}>"

    def set_password(self, password: str) -> None:
        """
        Hash and set the user's password.

        Args:
            password: Plain text password to hash
        """
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        """
        Check if the provided password matches the stored hash.

        Args:
            password: Plain text password to verify

        Returns:
            bool: True if password matches, False otherwise
        """
        return check_password_hash(self.password_hash, password)

    @property
    def youtube_connected(self) -> bool:
        return bool(self.youtube_access_token and self.youtube_refresh_token)

    def set_youtube_tokens(self, tokens) -> None:
        self.youtube_access_token = tokens.access_token
        self.youtube_refresh_token = tokens.refresh_token
        self.youtube_token_expires_at = tokens.expires_at

    def clear_youtube_connection(self) -> None:
        self.youtube_access_token = None
        self.youtube_refresh_token = None
        self.youtube_token_expires_at = None
        self.youtube_channel_id = None
        self.youtube_channel_name = None

    def to_summary(self) -> dict:
        """Small public projection used when users are embedded in other payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar,
        }

    def to_dict(self, team_role=None) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "teamRole": team_role.value if team_role else None,
            "teamId": self.team_id,
            "avatar": self.avatar,
            "youtubeConnected": self.youtube_connected,
        }


class Team(db.Model):
    """
    Team model.

    A team owns videos; users see only their own team's videos. Members and
    their team-scoped roles live in ``TeamMembership``.
    """

    __tablename__ = "teams"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Settings
    auto_approve = db.Column(db.Boolean, default=False, nullable=False)
    require_approval = db.Column(db.Boolean, default=True, nullable=False)
    allowed_file_types = db.Column(
        db.JSON, default=lambda: list(DEFAULT_ALLOWED_FILE_TYPES), nullable=False
    )
    max_file_size = db.Column(
        db.BigInteger, default=DEFAULT_MAX_FILE_SIZE, nullable=False
    )

    # Subscription (tracked, not enforced)
    subscription_plan = db.Column(
        db.Enum(SubscriptionPlan, name="subscriptionplan", values_callable=_enum_values),
        default=SubscriptionPlan.STARTER,
        nullable=False,
    )
    subscription_status = db.Column(
        db.Enum(
            SubscriptionStatus, name="subscriptionstatus", values_callable=_enum_values
        ),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    subscription_expires_at = db.Column(
        db.DateTime, default=lambda: datetime.utcnow() + timedelta(days=30)
    )

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    owner = db.relationship("User", foreign_keys=[owner_id])
    memberships = db.relationship(
        "TeamMembership",
        back_populates="team",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Team {self.id} '{self.name}'>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "ownerId": self.owner_id,
            "settings": {
                "autoApprove": self.auto_approve,
                "requireApproval": self.require_approval,
                "allowedFileTypes": self.allowed_file_types,
                "maxFileSize": self.max_file_size,
            },
            "subscription": {
                "plan": self.subscription_plan.value,
                "status": self.subscription_status.value,
                "expiresAt": _iso(self.subscription_expires_at),
            },
            "createdAt": _iso(self.created_at),
        }


class TeamMembership(db.Model):
    """
    A user's membership in a team, keyed by (team_id, user_id).

    The ``role`` here is the team-scoped role and the source of truth for all
    in-team authorization.
    """

    __tablename__ = "team_memberships"

    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey("teams.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    role = db.Column(
        db.Enum(Role, name="teamrole", values_callable=_enum_values),
        nullable=False,
        default=Role.EDITOR,
    )
    status = db.Column(
        db.Enum(MemberStatus, name="memberstatus", values_callable=_enum_values),
        nullable=False,
        default=MemberStatus.ACTIVE,
    )

    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    team = db.relationship("Team", back_populates="memberships")
    user = db.relationship(
        "User",
        backref=db.backref(
            "team_memberships", lazy="dynamic", cascade="all, delete-orphan"
        ),
    )

    # A user can only be in a team once
    __table_args__ = (
        db.UniqueConstraint("team_id", "user_id", name="unique_team_member"),
    )

    def __repr__(self) -> str:
        return f"<TeamMembership team={self.team_id} user={self.user_id} role={self.role.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.user_id,
            "email": self.user.email,
            "name": self.user.name,
            "avatar": self.user.avatar,
            "role": self.role.value,
            "status": self.status.value,
            "joinedAt": _iso(self.joined_at),
        }


class Video(db.Model):
    """
    Video model: the workflow entity moving through pending, approved,
    published, or rejected.
    """

    __tablename__ = "videos"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text, nullable=False)
    tags = db.Column(db.JSON, default=list, nullable=False)
    thumbnail = db.Column(db.String(1000))

    # Stored media (content-addressed by Cloudinary public id)
    cloudinary_video_id = db.Column(db.String(255), nullable=False)
    cloudinary_video_url = db.Column(db.String(1000), nullable=False)
    cloudinary_thumbnail_id = db.Column(db.String(255))
    cloudinary_thumbnail_url = db.Column(db.String(1000))

    file_size = db.Column(db.BigInteger, nullable=False)
    duration = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(10), default="22", nullable=False)
    privacy = db.Column(
        db.Enum(Privacy, name="privacy", values_callable=_enum_values),
        default=Privacy.PRIVATE,
        nullable=False,
    )

    status = db.Column(
        db.Enum(VideoStatus, name="videostatus", values_callable=_enum_values),
        default=VideoStatus.PENDING,
        nullable=False,
        index=True,
    )

    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    approved_at = db.Column(db.DateTime)
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.id"))
    rejected_at = db.Column(db.DateTime)
    rejection_reason = db.Column(db.String(500))

    # External publish results
    youtube_id = db.Column(db.String(64))
    youtube_url = db.Column(db.String(255))
    published_at = db.Column(db.DateTime)
    publish_error = db.Column(db.Text)

    team_id = db.Column(
        db.Integer, db.ForeignKey("teams.id"), nullable=False, index=True
    )

    created_at = db.Column(
        db.DateTime, default=datetime.utcnow, nullable=False, index=True
    )
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    uploader = db.relationship("User", foreign_keys=[uploaded_by])
    approver = db.relationship("User", foreign_keys=[approved_by])
    rejecter = db.relationship("User", foreign_keys=[rejected_by])
    team = db.relationship(
        "Team", backref=db.backref("videos", lazy="dynamic", cascade="all")
    )
    comments = db.relationship(
        "VideoComment",
        back_populates="video",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def __repr__(self) -> str:
        return f"<Video {self.id} '{self.title}' {self.status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "tags": self.tags or [],
            "thumbnail": self.cloudinary_thumbnail_url or self.thumbnail,
            "status": self.status.value,
            "uploadedBy": self.uploader.to_summary() if self.uploader else None,
            "uploadedAt": _iso(self.uploaded_at),
            "approvedBy": self.approver.to_summary() if self.approver else None,
            "approvedAt": _iso(self.approved_at),
            "rejectedBy": self.rejecter.to_summary() if self.rejecter else None,
            "rejectedAt": _iso(self.rejected_at),
            "rejectionReason": self.rejection_reason,
            "youtubeId": self.youtube_id,
            "youtubeUrl": self.youtube_url,
            "publishedAt": _iso(self.published_at),
            "publishError": self.publish_error,
            "fileSize": self.file_size,
            "duration": self.duration,
            "cloudinaryVideoId": self.cloudinary_video_id,
            "cloudinaryVideoUrl": self.cloudinary_video_url,
            "cloudinaryThumbnailId": self.cloudinary_thumbnail_id,
            "cloudinaryThumbnailUrl": self.cloudinary_thumbnail_url,
            "category": self.category,
            "privacy": self.privacy.value,
            "teamId": self.team_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


comment_mentions = db.Table(
    "comment_mentions",
    db.Column(
        "comment_id", db.Integer, db.ForeignKey("video_comments.id"), primary_key=True
    ),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class VideoComment(db.Model):
    """
    Threaded comment on a video.

    ``parent_id`` marks a reply; replies are only one level deep.
    """

    __tablename__ = "video_comments"

    id = db.Column(db.Integer, primary_key=True)
    video_id = db.Column(db.Integer, db.ForeignKey("videos.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    content = db.Column(db.String(1000), nullable=False)
    timestamp = db.Column(db.Float)
    parent_id = db.Column(db.Integer, db.ForeignKey("video_comments.id"))
    is_edited = db.Column(db.Boolean, default=False, nullable=False)
    edited_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(
        db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    video = db.relationship("Video", back_populates="comments")
    author = db.relationship("User", foreign_keys=[user_id])
    mentions = db.relationship("User", secondary=comment_mentions)
    reactions = db.relationship(
        "CommentReaction",
        back_populates="comment",
        cascade="all, delete-orphan",
        order_by="CommentReaction.id",
    )
    replies = db.relationship(
        "VideoComment",
        backref=db.backref("parent", remote_side=[id]),
        cascade="all, delete-orphan",
        order_by="VideoComment.created_at",
    )

    __table_args__ = (db.Index("idx_comment_video_created", "video_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<VideoComment {self.id} video={self.video_id}>"

    def reactions_to_list(self) -> list:
        return [r.to_dict() for r in self.reactions]

    def to_dict(self, include_replies: bool = False) -> dict:
        data = {
            "id": self.id,
            "videoId": self.video_id,
            "userId": self.author.to_summary() if self.author else None,
            "content": self.content,
            "timestamp": self.timestamp,
            "parentId": self.parent_id,
            "mentions": [
                {"id": u.id, "name": u.name, "email": u.email} for u in self.mentions
            ],
            "reactions": self.reactions_to_list(),
            "isEdited": self.is_edited,
            "editedAt": _iso(self.edited_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if include_replies:
            data["replies"] = [reply.to_dict() for reply in self.replies]
        return data


class CommentReaction(db.Model):
    """One reaction per (comment, user); the type is replaced in place."""

    __tablename__ = "comment_reactions"

    id = db.Column(db.Integer, primary_key=True)
    comment_id = db.Column(
        db.Integer, db.ForeignKey("video_comments.id"), nullable=False
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    type = db.Column(
        db.Enum(ReactionType, name="reactiontype", values_callable=_enum_values),
        nullable=False,
    )
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    comment = db.relationship("VideoComment", back_populates="reactions")

    __table_args__ = (
        db.UniqueConstraint("comment_id", "user_id", name="unique_comment_reaction"),
    )

    def to_dict(self) -> dict:
        return {"userId": self.user_id, "type": self.type.value}
