import logging
import os
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from jinja2 import Environment, FileSystemLoader, select_autoescape
from app.core.config import Settings

logger = logging.getLogger(__name__)

template_dir = os.path.join(os.path.dirname(__file__), 'email_templates')
env = Environment(loader=FileSystemLoader(template_dir), autoescape=select_autoescape(['html']))

APP_NAME = "E-commerce Store"


def mask_email(addr: str) -> str:
    try:
        local, domain = addr.split("@", 1)
    except ValueError:
        return addr
    local_mask = local[0] + "***" if len(local) > 1 else "*"
    dot = domain.rfind(".")
    if dot > 0:
        dom_mask = domain[0] + "***" + domain[dot:]
    else:
        dom_mask = domain[:1] + "***"
    return f"{local_mask}@{dom_mask}"


def render_template(template_name: str, context: dict) -> str:
    return env.get_template(template_name).render(context)


class Mailer:
    """SMTP sender for templated HTML mail."""

    def __init__(self, config: Settings, timeout: float = 10):
        self.server = config.SMTP_SERVER
        self.port = config.SMTP_PORT
        self.user = config.SMTP_USER
        self.password = config.SMTP_PASSWORD
        self.sender = config.mail_sender
        self.timeout = timeout

    def deliver(self, to_email: str, subject: str, html_content: str) -> None:
        msg = MIMEMultipart()
        msg['From'] = self.sender
        msg['To'] = to_email
        msg['Subject'] = subject
        msg.attach(MIMEText(html_content, 'html'))

        ctx = ssl.create_default_context()
        with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as server:
            server.starttls(context=ctx)
            server.login(self.user, self.password)
            server.sendmail(self.sender, to_email, msg.as_string())

    def send_email(self, to_email: str, subject: str, template_name: str, context: dict) -> bool:
        try:
            html_content = render_template(template_name, context)
            self.deliver(to_email, subject, html_content)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %r", mask_email(to_email), e)
            return False
        logger.info("Sent '%s' to %s", subject, mask_email(to_email))
        return True

    def send_otp_email(self, to_email: str, otp: str, expires_minutes: int) -> bool:
        return self.send_email(
            to_email=to_email,
            subject=f"Password Reset OTP - {APP_NAME}",
            template_name="password_reset.html",
            context={"otp": otp, "expires_minutes": expires_minutes, "app_name": APP_NAME},
        )
