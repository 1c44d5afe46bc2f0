"""
SMTP mailer and VideoFlow email templates.

``Mailer`` is an explicit dependency: ``init_app`` snapshots the SMTP settings
from app config, ``close`` marks it shut down. Password is sourced only from
environment (.env) via SMTP_PASSWORD.
"""
from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class SMTPSettings:
    host: str | None = None
    port: int = 0
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    use_ssl: bool = False
    timeout: float = 10.0
    from_address: str = "no-reply@example.com"

    @classmethod
    def from_config(cls, config) -> SMTPSettings:
        return cls(
            host=config.get("SMTP_HOST"),
            port=int(config.get("SMTP_PORT", 0) or 0),
            username=config.get("SMTP_USERNAME"),
            password=config.get("SMTP_PASSWORD"),
            use_tls=bool(config.get("SMTP_USE_TLS", True)),
            use_ssl=bool(config.get("SMTP_USE_SSL", False)),
            timeout=float(config.get("SMTP_TIMEOUT", 10) or 10),
            from_address=config.get("EMAIL_FROM_ADDRESS") or "no-reply@example.com",
        )


class Mailer:
    def __init__(self, settings: SMTPSettings | None = None):
        self.settings = settings or SMTPSettings()
        self._open = settings is not None

    def init_app(self, app) -> None:
        self.settings = SMTPSettings.from_config(app.config)
        self._open = True

    def close(self) -> None:
        self._open = False

    def is_configured(self) -> bool:
        s = self.settings
        return bool(s.host and s.port and s.username and s.password)

    def send_email(
        self,
        to_address: str,
        subject: str,
        html: str | None = None,
        text: str | None = None,
        from_address: str | None = None,
    ) -> bool:
        """Send an email using configured SMTP settings.

        Returns True on success, False on failure. Never raises; logs errors.
        """
        if not self._open:
            logger.warning("email_skipped_mailer_closed", to=to_address)
            return False
        if not self.is_configured():
            logger.warning("email_skipped_smtp_not_configured", to=to_address)
            return False

        s = self.settings
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = from_address or s.from_address
        msg["To"] = to_address
        body_text = (
            text
            or (html and "This email contains HTML content; please view in an HTML client.")
            or ""
        )
        msg.set_content(body_text)
        if html:
            msg.add_alternative(html, subtype="html")

        try:
            if s.use_ssl:
                with smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout) as smtp:
                    smtp.login(s.username, s.password)
                    smtp.send_message(msg)
            else:
                with smtplib.SMTP(s.host, s.port, timeout=s.timeout) as smtp:
                    if s.use_tls:
                        smtp.starttls()
                    smtp.login(s.username, s.password)
                    smtp.send_message(msg)
            logger.info("email_sent", to=to_address, subject=subject)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_send_failed", to=to_address, error=str(e))
            return False

    # Templates

    def send_invitation(
        self,
        to_address: str,
        team_name: str,
        inviter_name: str,
        role: str,
        temp_password: str,
        login_url: str,
    ) -> bool:
        subject = f"You've been invited to join {team_name} on VideoFlow"
        html = f"""
    <h2>Team Invitation</h2>
    <p><strong>{escape(inviter_name)}</strong> has invited you to join
    <strong>{escape(team_name)}</strong> as a <strong>{escape(role)}</strong>.</p>
    <p>Your login details:</p>
    <ul>
        <li>Email: {escape(to_address)}</li>
        <li>Temporary password: <code>{escape(temp_password)}</code></li>
    </ul>
    <p style="margin: 20px 0;">
        <a href="{login_url}" style="background-color: #0d6efd; color: white; padding: 10px 20px; text-decoration: none; border-radius: 5px; display: inline-block;">
            Log in to VideoFlow
        </a>
    </p>
    <p style="color: #666; font-size: 0.9em;">Please change your password after your first login.</p>
    """
        text = f"""
You've been invited to join {team_name} on VideoFlow

{inviter_name} has invited you to join "{team_name}" as a {role}.

Email: {to_address}
Temporary password: {temp_password}

Log in here: {login_url}

Please change your password after your first login.
    """
        return self.send_email(to_address, subject, html=html, text=text)

    def send_upload_notification(
        self,
        to_address: str,
        video_title: str,
        uploader_name: str,
        team_name: str,
        video_url: str | None = None,
    ) -> bool:
        subject = f"New video uploaded: {video_title}"
        link = f'<p><a href="{video_url}">Review the video</a></p>' if video_url else ""
        html = f"""
    <h2>New video awaiting review</h2>
    <p><strong>{escape(uploader_name)}</strong> uploaded
    <strong>{escape(video_title)}</strong> to {escape(team_name)}.</p>
    {link}
    """
        text = f"{uploader_name} uploaded \"{video_title}\" to {team_name}.\n"
        if video_url:
            text += f"\nReview it here: {video_url}\n"
        return self.send_email(to_address, subject, html=html, text=text)

    def send_approval_notification(
        self,
        to_address: str,
        video_title: str,
        approver_name: str,
        team_name: str,
    ) -> bool:
        subject = f'Video "{video_title}" has been approved!'
        html = f"""
    <h2>Video approved</h2>
    <p><strong>{escape(video_title)}</strong> was approved by
    {escape(approver_name)} for {escape(team_name)}.</p>
    """
        text = f'"{video_title}" was approved by {approver_name} for {team_name}.\n'
        return self.send_email(to_address, subject, html=html, text=text)

    def send_rejection_notification(
        self,
        to_address: str,
        video_title: str,
        rejecter_name: str,
        reason: str,
    ) -> bool:
        subject = f'Video "{video_title}" needs revision'
        html = f"""
    <h2>Video needs revision</h2>
    <p>{escape(rejecter_name)} reviewed <strong>{escape(video_title)}</strong>
    and asked for changes:</p>
    <blockquote>{escape(reason)}</blockquote>
    """
        text = (
            f'{rejecter_name} reviewed "{video_title}" and asked for changes:\n\n'
            f"{reason}\n"
        )
        return self.send_email(to_address, subject, html=html, text=text)

    def send_published_notification(
        self,
        to_address: str,
        video_title: str,
        youtube_url: str,
        team_name: str,
    ) -> bool:
        subject = f"Video published to YouTube: {video_title}"
        html = f"""
    <h2>Your video is live</h2>
    <p><strong>{escape(video_title)}</strong> from {escape(team_name)} is now on YouTube.</p>
    <p><a href="{youtube_url}">Watch on YouTube</a></p>
    """
        text = f'"{video_title}" from {team_name} is now on YouTube: {youtube_url}\n'
        return self.send_email(to_address, subject, html=html, text=text)
