"""
SMTP email transport for alert notifications.

Handles:
  - SMTP connection with TLS and a bounded socket timeout
  - MIME multipart construction (HTML + plaintext fallback)
  - Credential management (env vars > config file)

No external dependencies beyond Python stdlib (email, smtplib, ssl).
"""
import os
import ssl
import smtplib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate

from utils.formatters import format_timestamp, format_value, severity_color
from utils.http_client import TransportError

logger = logging.getLogger("pulsewatch.notifications.email_sender")


class EmailSender:
    """
    SMTP email sender.

    Credential resolution order:
      1. Environment variables: PULSEWATCH_SMTP_USER, PULSEWATCH_SMTP_PASS
      2. Config file: config.email.smtp_username, config.email.smtp_password
    """

    def __init__(self, config: dict):
        email_config = config.get("email", {})
        self.enabled = email_config.get("enabled", False)
        self.smtp_host = email_config.get("smtp_host", "smtp.gmail.com")
        self.smtp_port = email_config.get("smtp_port", 587)
        self.use_tls = email_config.get("use_tls", True)
        self.from_address = email_config.get("from_address", "noreply@pulsewatch.local")
        self.from_name = email_config.get("from_name", "Pulsewatch")
        self.timeout = email_config.get("timeout_seconds", 10)

        # Credential resolution: env vars take priority
        self.username = os.environ.get(
            "PULSEWATCH_SMTP_USER",
            email_config.get("smtp_username", ""),
        )
        self.password = os.environ.get(
            "PULSEWATCH_SMTP_PASS",
            email_config.get("smtp_password", ""),
        )

    def is_configured(self) -> bool:
        """Check if all required SMTP fields are present."""
        return bool(self.enabled) and all([self.smtp_host, self.from_address,
                                           self.username, self.password])

    def send_alert(self, context, recipients) -> None:
        """Send one alert email to ``recipients``. Raises TransportError on failure."""
        if not self.is_configured():
            raise TransportError("Email transport is not configured", channel="email")

        msg = self.build_message(context, recipients)
        self._send(msg, recipients)
        logger.info(f"Email notification sent for alert: {context.alert.name} "
                    f"to {len(recipients)} recipients")

    def build_message(self, context, recipients) -> MIMEMultipart:
        alert = context.alert
        sev = alert.severity.value
        color = severity_color(sev)
        condition = alert.condition.describe()
        when = format_timestamp(context.timestamp)
        value = format_value(context.current_value)
        threshold = format_value(context.threshold)

        project_html = f"<p><strong>Project:</strong> {context.project_name}</p>" if context.project_name else ""
        description_html = f"<p><strong>Description:</strong> {alert.description}</p>" if alert.description else ""

        html = f"""
        <div style="font-family: Arial, sans-serif; max-width: 560px; margin: 0 auto;
                    border: 2px solid {color}; border-radius: 8px; padding: 20px;">
            <h2 style="margin-top: 0;">Alert Triggered: {alert.name}</h2>
            <p><span style="color: {color}; font-weight: bold; text-transform: uppercase;">{sev}</span> Alert</p>
            {project_html}
            {description_html}
            <div style="background: #f5f5f5; padding: 10px; border-radius: 4px; margin: 10px 0;">
                <p><strong>Metric Type:</strong> {alert.metric_type}</p>
                <p><strong>Current Value:</strong> {value}</p>
                <p><strong>Threshold:</strong> {threshold}</p>
                <p><strong>Condition:</strong> {condition}</p>
            </div>
            <p><strong>Triggered at:</strong> {when}</p>
            <p style="color: #666; font-size: 12px; margin-top: 24px;">
                This is an automated notification from Pulsewatch.
            </p>
        </div>
        """

        lines = [f"Alert Triggered: {alert.name}", f"Severity: {sev.upper()}"]
        if context.project_name:
            lines.append(f"Project: {context.project_name}")
        if alert.description:
            lines.append(f"Description: {alert.description}")
        lines += [
            "",
            f"Metric Type: {alert.metric_type}",
            f"Current Value: {value}",
            f"Threshold: {threshold}",
            f"Condition: {condition}",
            "",
            f"Triggered at: {when}",
        ]

        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.from_name, self.from_address))
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = f"[Alert] {sev.upper()}: {alert.name}"
        msg["Date"] = formatdate(localtime=True)
        msg.attach(MIMEText("\n".join(lines), "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def test_connection(self) -> dict:
        """Test SMTP connectivity without sending an email."""
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=context)
                    server.ehlo()
                server.login(self.username, self.password)
                return {"status": "ok", "message": "SMTP connection successful",
                        "server_response": str(server.noop())}
        except smtplib.SMTPAuthenticationError as e:
            return {"status": "error", "message": f"Authentication failed: {e}"}
        except smtplib.SMTPConnectError as e:
            return {"status": "error", "message": f"Connection failed: {e}"}
        except Exception as e:
            return {"status": "error", "message": str(e)}

    def _send(self, msg: MIMEMultipart, recipients) -> None:
        """Internal: send a constructed MIME message via SMTP."""
        try:
            context = ssl.create_default_context()
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=context)
                    server.ehlo()
                server.login(self.username, self.password)
                server.send_message(msg, to_addrs=list(recipients))
        except smtplib.SMTPAuthenticationError as e:
            raise TransportError("SMTP authentication failed. Check username/password.",
                                 channel="email") from e
        except smtplib.SMTPRecipientsRefused as e:
            raise TransportError(f"Recipients refused: {', '.join(recipients)}",
                                 channel="email") from e
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Email send failed: {e}", channel="email") from e
