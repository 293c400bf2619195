from __future__ import annotations

from html import escape as html_escape


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'s' if n != 1 else ''}"


def _expires_text(minutes: int) -> str:
    if minutes % 60 == 0:
        return _plural(minutes // 60, "hour")
    return _plural(minutes, "minute")


def _layout(app_name: str, heading: str, inner_html: str) -> str:
    app = html_escape(app_name)
    return f"""
    <html>
      <body style="font-family: Arial, sans-serif; background: #f5f5f5; padding: 24px; color: #333;">
        <div style="max-width: 600px; margin: 0 auto; background: #ffffff; border-radius: 8px; padding: 32px;">
          <h2 style="margin-top: 0; text-align: center;">{html_escape(heading)}</h2>
          {inner_html}
          <p style="text-align: center; color: #666; font-size: 12px;">&copy; {app}. All rights reserved.</p>
        </div>
      </body>
    </html>
    """.strip()


def render_otp_email(*, app_name: str, first_name: str, code: str, expires_minutes: int) -> tuple[str, str]:
    """
    Returns (subject, html_body) for the email verification code.
    """
    subject = f"{app_name} - Email Verification Code"
    inner = f"""
          <p>Hello {html_escape(first_name)},</p>
          <p>Thank you for registering with {html_escape(app_name)}! Use the following code to verify your email address:</p>
          <div style="background: #007bff; color: #fff; padding: 15px; text-align: center; border-radius: 5px; margin: 20px 0;">
            <h1 style="margin: 0; font-size: 32px; letter-spacing: 5px;">{html_escape(code)}</h1>
          </div>
          <p><strong>This code will expire in {_expires_text(expires_minutes)}.</strong></p>
          <p>If you didn't request this verification, please ignore this email.</p>
    """
    return subject, _layout(app_name, f"{app_name} Email Verification", inner)


def render_password_reset_email(*, app_name: str, first_name: str, reset_url: str, expires_minutes: int) -> tuple[str, str]:
    """
    Returns (subject, html_body) for the password reset link.
    """
    url = html_escape(reset_url, quote=True)
    subject = f"{app_name} - Password Reset Request"
    inner = f"""
          <p>Hello {html_escape(first_name)},</p>
          <p>You requested a password reset for your {html_escape(app_name)} account. Click the button below to choose a new password:</p>
          <div style="text-align: center; margin: 30px 0;">
            <a href="{url}" style="background: #007bff; color: #fff; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block;">Reset Password</a>
          </div>
          <p><strong>This link will expire in {_expires_text(expires_minutes)}.</strong></p>
          <p>If you didn't request a password reset, please ignore this email.</p>
          <p>Or copy this link manually: <a href="{url}">{url}</a></p>
    """
    return subject, _layout(app_name, f"{app_name} Password Reset", inner)
