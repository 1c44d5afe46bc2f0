"""
Team email fan-out for video workflow events.

Recipients are resolved from active team memberships. Delivery goes through
the injected ``Mailer``; a failed email is logged and never fails the request
that triggered it.
"""

import structlog

from videoflow.error_utils import safe_log_error
from videoflow.membership import active_member_users, team_creator_ids

logger = structlog.get_logger(__name__)


class TeamNotifier:
    def __init__(self, mailer, frontend_url: str = "http://localhost:3000"):
        self.mailer = mailer
        self.frontend_url = frontend_url

    def init_app(self, app) -> None:
        self.frontend_url = (app.config.get("FRONTEND_URL") or self.frontend_url).rstrip(
            "/"
        )

    def close(self) -> None:
        pass

    @property
    def login_url(self) -> str:
        return f"{self.frontend_url}/auth/login"

    def video_url(self, video) -> str:
        return f"{self.frontend_url}/dashboard/videos/{video.id}"

    def _deliver(self, event: str, recipients, send) -> int:
        """Call ``send(user)`` for each recipient; returns how many succeeded."""
        sent = 0
        for user in recipients:
            try:
                if send(user):
                    sent += 1
            except Exception as e:
                safe_log_error(
                    logger,
                    "notification_failed",
                    notification=event,
                    user_id=user.id,
                    error=str(e),
                )
        logger.info(
            "notifications_dispatched",
            notification=event,
            recipients=len(recipients),
            sent=sent,
        )
        return sent

    def notify_video_uploaded(self, video) -> int:
        """Every active member except the uploader hears about a new video."""
        recipients = active_member_users(video.team_id, exclude_user_ids=[video.uploaded_by])
        uploader_name = video.uploader.name if video.uploader else "A team member"
        return self._deliver(
            "video_uploaded",
            recipients,
            lambda user: self.mailer.send_upload_notification(
                user.email,
                video_title=video.title,
                uploader_name=uploader_name,
                team_name=video.team.name,
                video_url=self.video_url(video),
            ),
        )

    def notify_video_approved(self, video) -> int:
        """Members other than the team creators hear about an approval."""
        recipients = active_member_users(
            video.team_id, exclude_user_ids=team_creator_ids(video.team_id)
        )
        approver_name = video.approver.name if video.approver else "The creator"
        return self._deliver(
            "video_approved",
            recipients,
            lambda user: self.mailer.send_approval_notification(
                user.email,
                video_title=video.title,
                approver_name=approver_name,
                team_name=video.team.name,
            ),
        )

    def notify_video_published(self, video) -> int:
        recipients = active_member_users(video.team_id, exclude_user_ids=[video.uploaded_by])
        return self._deliver(
            "video_published",
            recipients,
            lambda user: self.mailer.send_published_notification(
                user.email,
                video_title=video.title,
                youtube_url=video.youtube_url,
                team_name=video.team.name,
            ),
        )

    def notify_video_rejected(self, video) -> int:
        if video.uploader is None:
            return 0
        rejecter_name = video.rejecter.name if video.rejecter else "The creator"
        return self._deliver(
            "video_rejected",
            [video.uploader],
            lambda user: self.mailer.send_rejection_notification(
                user.email,
                video_title=video.title,
                rejecter_name=rejecter_name,
                reason=video.rejection_reason or "",
            ),
        )

    def send_invitation(self, user, team, inviter, temp_password: str) -> bool:
        role = user.team_memberships.filter_by(team_id=team.id).first()
        role_name = role.role.value if role else user.role.value
        return bool(
            self._deliver(
                "member_invited",
                [user],
                lambda u: self.mailer.send_invitation(
                    u.email,
                    team_name=team.name,
                    inviter_name=inviter.name,
                    role=role_name,
                    temp_password=temp_password,
                    login_url=self.login_url,
                ),
            )
        )
