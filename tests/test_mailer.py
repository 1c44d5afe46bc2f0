"""Tests for email/mailer functionality."""
import smtplib
from unittest.mock import MagicMock, patch

from structlog.testing import capture_logs

from videoflow.mailer import Mailer, SMTPSettings
from videoflow.notifications import TeamNotifier


def _settings(**overrides):
    values = {
        "host": "smtp.example.com",
        "port": 587,
        "username": "user@example.com",
        "password": "secret",
        "use_tls": True,
        "use_ssl": False,
        "timeout": 5.0,
        "from_address": "noreply@example.com",
    }
    values.update(overrides)
    return SMTPSettings(**values)


class TestMailerConfiguration:
    """Test mailer configuration detection."""

    def test_is_configured_returns_true_when_all_settings_present(self):
        """Should return True when all SMTP settings are configured."""
        assert Mailer(_settings()).is_configured() is True

    def test_is_configured_returns_false_when_host_missing(self):
        """Should return False when the host is not set."""
        assert Mailer(_settings(host=None)).is_configured() is False

    def test_is_configured_returns_false_when_password_missing(self):
        """Should return False when the password is not set."""
        assert Mailer(_settings(password=None)).is_configured() is False

    def test_settings_read_from_app_config(self, app):
        """Should snapshot SMTP settings on init_app."""
        app.config.update(
            SMTP_HOST="mail.test",
            SMTP_PORT=2525,
            SMTP_USERNAME="u",
            SMTP_PASSWORD="p",
            EMAIL_FROM_ADDRESS="team@videoflow.test",
        )
        mailer = Mailer()
        mailer.init_app(app)
        assert mailer.settings.host == "mail.test"
        assert mailer.settings.port == 2525
        assert mailer.settings.from_address == "team@videoflow.test"
        assert mailer.is_configured() is True


class TestSendEmail:
    """Test email sending functionality."""

    @patch("videoflow.mailer.smtplib.SMTP")
    def test_send_email_with_tls_success(self, mock_smtp):
        """Should successfully send email using SMTP with STARTTLS."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        result = Mailer(_settings()).send_email(
            to_address="recipient@example.com",
            subject="Test Subject",
            text="Test body",
        )

        assert result is True
        mock_smtp.assert_called_once_with("smtp.example.com", 587, timeout=5.0)
        mock_smtp_instance.starttls.assert_called_once()
        mock_smtp_instance.login.assert_called_once_with("user@example.com", "secret")
        mock_smtp_instance.send_message.assert_called_once()

    @patch("videoflow.mailer.smtplib.SMTP_SSL")
    def test_send_email_with_ssl_success(self, mock_smtp_ssl):
        """Should successfully send email using SMTP_SSL."""
        mock_smtp_instance = MagicMock()
        mock_smtp_ssl.return_value.__enter__.return_value = mock_smtp_instance

        result = Mailer(_settings(use_tls=False, use_ssl=True, port=465)).send_email(
            to_address="recipient@example.com",
            subject="Test Subject",
            text="Test body",
        )

        assert result is True
        mock_smtp_ssl.assert_called_once_with("smtp.example.com", 465, timeout=5.0)
        mock_smtp_instance.send_message.assert_called_once()

    @patch("videoflow.mailer.smtplib.SMTP")
    def test_send_email_custom_from_address(self, mock_smtp):
        """Should use custom from_address when provided."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        Mailer(_settings()).send_email(
            to_address="recipient@example.com",
            subject="Custom From",
            text="Body",
            from_address="custom@example.com",
        )

        sent_msg = mock_smtp_instance.send_message.call_args[0][0]
        assert sent_msg["From"] == "custom@example.com"

    def test_send_email_returns_false_when_not_configured(self):
        """Should return False when SMTP is not configured."""
        assert Mailer(_settings(host=None)).send_email("a@example.com", "S", text="B") is False

    @patch("videoflow.mailer.smtplib.SMTP")
    def test_send_email_returns_false_after_close(self, mock_smtp):
        """Should not send once the mailer is closed."""
        mailer = Mailer(_settings())
        mailer.close()
        assert mailer.send_email("a@example.com", "S", text="B") is False
        mock_smtp.assert_not_called()

    @patch("videoflow.mailer.smtplib.SMTP")
    def test_send_email_returns_false_on_smtp_exception(self, mock_smtp):
        """Should return False when SMTP raises an exception."""
        mock_smtp.return_value.__enter__.side_effect = smtplib.SMTPException(
            "Connection failed"
        )
        assert Mailer(_settings()).send_email("a@example.com", "S", text="B") is False


class TestTemplates:
    """Test workflow email templates."""

    @patch("videoflow.mailer.smtplib.SMTP")
    def test_invitation_contains_credentials(self, mock_smtp):
        """Should include the temporary password and login link."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        assert Mailer(_settings()).send_invitation(
            "new@example.com",
            team_name="Ada's Team",
            inviter_name="Ada",
            role="editor",
            temp_password="tmp-pass",
            login_url="http://localhost:3000/auth/login",
        )

        msg = mock_smtp_instance.send_message.call_args[0][0]
        assert msg["Subject"] == "You've been invited to join Ada's Team on VideoFlow"
        text = msg.get_body(preferencelist=("plain",)).get_content()
        assert "tmp-pass" in text
        assert "http://localhost:3000/auth/login" in text

    @patch("videoflow.mailer.smtplib.SMTP")
    def test_rejection_escapes_html(self, mock_smtp):
        """Should escape user-provided text in the HTML part."""
        mock_smtp_instance = MagicMock()
        mock_smtp.return_value.__enter__.return_value = mock_smtp_instance

        Mailer(_settings()).send_rejection_notification(
            "ed@example.com",
            video_title="Cut <1>",
            rejecter_name="Ada",
            reason="<script>x</script>",
        )

        msg = mock_smtp_instance.send_message.call_args[0][0]
        assert msg["Subject"] == 'Video "Cut <1>" needs revision'
        html = msg.get_body(preferencelist=("html",)).get_content()
        assert "<script>" not in html
        assert "&lt;script&gt;" in html


class TestTeamNotifier:
    """Test notification fan-out rules."""

    def test_failed_send_is_counted_not_raised(self):
        """Should keep going when one recipient fails."""
        mailer = MagicMock()
        mailer.send_email.side_effect = [RuntimeError("boom"), True]
        notifier = TeamNotifier(mailer)
        recipients = [MagicMock(id=1, email="a@x.test"), MagicMock(id=2, email="b@x.test")]

        sent = notifier._deliver(
            "test_event", recipients, lambda u: mailer.send_email(u.email, "s")
        )
        assert sent == 1
        assert mailer.send_email.call_count == 2

    def test_dispatch_summary_is_logged(self):
        """Should log the workflow event name alongside the delivery counts."""
        mailer = MagicMock()
        mailer.send_email.return_value = True
        notifier = TeamNotifier(mailer)
        recipients = [MagicMock(id=1, email="a@x.test")]

        with capture_logs() as logs:
            sent = notifier._deliver(
                "video_approved", recipients, lambda u: mailer.send_email(u.email, "s")
            )
        assert sent == 1
        summary = next(e for e in logs if e["event"] == "notifications_dispatched")
        assert summary["notification"] == "video_approved"
        assert summary["recipients"] == 1
        assert summary["sent"] == 1

    def test_urls_follow_frontend_config(self, app):
        """Should build links from FRONTEND_URL."""
        app.config["FRONTEND_URL"] = "https://app.videoflow.test/"
        notifier = TeamNotifier(MagicMock())
        notifier.init_app(app)
        assert notifier.login_url == "https://app.videoflow.test/auth/login"
        assert notifier.video_url(MagicMock(id=9)) == (
            "https://app.videoflow.test/dashboard/videos/9"
        )
