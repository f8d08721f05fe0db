from __future__ import annotations

from dataclasses import dataclass

import requests
from markupsafe import escape


class MailerError(RuntimeError):
    pass


@dataclass(frozen=True)
class EmailClient:
    """Minimal client for a transactional email HTTP API (Resend-compatible payload)."""

    api_key: str
    sender: str
    url: str = "https://api.resend.com/emails"
    timeout_seconds: int = 15

    def send(self, *, to: str, subject: str, html: str) -> str | None:
        try:
            resp = requests.post(
                self.url,
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise MailerError(f"Email provider unreachable: {e}") from e
        if resp.status_code >= 400:
            raise MailerError(f"HTTP {resp.status_code} from email provider: {resp.text[:300]}")
        try:
            body = resp.json()
        except ValueError:
            return None
        return body.get("id") if isinstance(body, dict) else None


def email_client_from_config(config: dict) -> EmailClient | None:
    api_key = (config.get("EMAIL_PROVIDER_API_KEY") or "").strip()
    if not api_key:
        return None
    return EmailClient(
        api_key=api_key,
        sender=(config.get("EMAIL_FROM") or "").strip(),
        url=(config.get("EMAIL_PROVIDER_URL") or "https://api.resend.com/emails").strip(),
    )


def credentials_email_html(*, full_name: str, email: str, password: str, login_url: str) -> str:
    name = escape(full_name or email)
    email = escape(email)
    password = escape(password)
    return (
        f"<p>Hola {name},</p>"
        "<p>Se ha creado tu cuenta en el sistema de seguimiento de documentos.</p>"
        f"<p><strong>Usuario:</strong> {email}<br><strong>Contraseña temporal:</strong> {password}</p>"
        f'<p>Inicia sesión en <a href="{login_url}">{login_url}</a> y cambia tu contraseña.</p>'
    )
