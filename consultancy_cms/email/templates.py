"""Email templates for comment notifications.

Palette:
- Primary navy: #1E3A5F
- Accent: #2563EB
- Background: #F8FAFC
- Card: #FFFFFF
- Text: #0F172A
- Muted: #64748B
- Border: #E2E8F0

Every value that comes from users (names, comment text, moderator reasons)
is HTML-escaped before it reaches the markup.
"""

from datetime import datetime
from html import escape

from .schemas import RenderedEmail


# ==============================================================================
# Base Template
# ==============================================================================

BASE_TEMPLATE = """
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{title}</title>
  <style>
    @media only screen and (max-width: 620px) {{
      .content-table {{ width: 100% !important; }}
      .content-padding {{ padding: 24px 20px !important; }}
    }}
  </style>
</head>
<body style="margin: 0; padding: 0; background-color: #F8FAFC; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif;">
  <table role="presentation" width="100%" cellpadding="0" cellspacing="0" style="background-color: #F8FAFC;">
    <tr>
      <td align="center" style="padding: 40px 20px;">
        <table role="presentation" width="600" cellpadding="0" cellspacing="0" style="background-color: #FFFFFF; border-radius: 12px; border: 1px solid #E2E8F0; max-width: 600px;" class="content-table">
          <tr>
            <td style="padding: 40px;" class="content-padding">
              {content}
            </td>
          </tr>
          <tr>
            <td style="padding: 20px 40px; background-color: #F1F5F9; border-top: 1px solid #E2E8F0; border-radius: 0 0 12px 12px;">
              <p style="margin: 0; font-size: 12px; color: #64748B; text-align: center; line-height: 1.6;">
                &copy; {year} {site_name}. This is an automated message.
              </p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""

SITE_NAME = "Consultancy CMS"

QUOTE_BLOCK = """
<div style="background-color: #F8FAFC; border-left: 4px solid #2563EB; padding: 16px 20px; border-radius: 0 8px 8px 0; margin: 16px 0 24px;">
  <p style="margin: 0; font-size: 15px; color: #0F172A; line-height: 1.6; white-space: pre-wrap;">{text}</p>
</div>
"""

BUTTON = """
<a href="{url}" style="display: inline-block; background-color: #1E3A5F; color: #FFFFFF; padding: 12px 24px; border-radius: 8px; text-decoration: none; font-weight: 600;">{label}</a>
"""


def _wrap(title: str, content: str) -> str:
    return BASE_TEMPLATE.format(
        title=escape(title),
        content=content,
        year=datetime.now().year,
        site_name=SITE_NAME,
    )


def _heading(text: str) -> str:
    return (
        '<h1 style="margin: 0 0 16px; font-size: 22px; font-weight: 600; '
        f'color: #0F172A;">{text}</h1>'
    )


def _paragraph(text: str) -> str:
    return (
        '<p style="margin: 0 0 12px; font-size: 16px; color: #334155; '
        f'line-height: 1.6;">{text}</p>'
    )


def _plain(*lines: str) -> str:
    footer = f"---\n© {datetime.now().year} {SITE_NAME}. This is an automated message."
    return "\n".join([*lines, "", footer]).strip()


# ==============================================================================
# Template: New comment alert (administrators)
# ==============================================================================


def render_new_comment_admin_alert(
    post_title: str,
    post_url: str,
    author_name: str,
    content: str,
    moderation_url: str,
) -> RenderedEmail:
    """Alert administrators that a comment is waiting for moderation."""
    subject = f'New Comment on "{post_title}"'
    body = "".join(
        [
            _heading("New comment awaiting moderation"),
            _paragraph(
                f"<strong>{escape(author_name)}</strong> commented on "
                f'<a href="{escape(post_url)}" style="color: #2563EB;">'
                f"{escape(post_title)}</a>:"
            ),
            QUOTE_BLOCK.format(text=escape(content)),
            BUTTON.format(url=escape(moderation_url), label="Review comment"),
        ]
    )
    text = _plain(
        f'New comment on "{post_title}"',
        "",
        f"{author_name} wrote:",
        content,
        "",
        f"Post: {post_url}",
        f"Review: {moderation_url}",
    )
    return RenderedEmail(subject, _wrap(subject, body), text)


# ==============================================================================
# Template: Reply notification (parent comment author)
# ==============================================================================


def render_reply_notification(
    post_title: str,
    post_url: str,
    author_name: str,
    content: str,
    reply_content: str,
    comment_url: str,
) -> RenderedEmail:
    """Tell a commenter that someone replied to them.

    ``author_name`` is the replier; ``content`` is the original comment.
    """
    subject = f'{author_name} replied to your comment on "{post_title}"'
    body = "".join(
        [
            _heading("You have a new reply"),
            _paragraph(
                f"<strong>{escape(author_name)}</strong> replied to your comment on "
                f'<a href="{escape(post_url)}" style="color: #2563EB;">'
                f"{escape(post_title)}</a>."
            ),
            _paragraph("Your comment:"),
            QUOTE_BLOCK.format(text=escape(content)),
            _paragraph("Their reply:"),
            QUOTE_BLOCK.format(text=escape(reply_content)),
            BUTTON.format(url=escape(comment_url), label="View conversation"),
        ]
    )
    text = _plain(
        f'{author_name} replied to your comment on "{post_title}"',
        "",
        "Your comment:",
        content,
        "",
        "Their reply:",
        reply_content,
        "",
        f"View conversation: {comment_url}",
    )
    return RenderedEmail(subject, _wrap(subject, body), text)


# ==============================================================================
# Template: Approval notification (comment author)
# ==============================================================================


def render_approval_notification(
    author_name: str,
    post_title: str,
    post_url: str,
    content: str,
) -> RenderedEmail:
    """Tell an author their comment is now public."""
    subject = f'Your comment on "{post_title}" has been approved'
    body = "".join(
        [
            _heading("Your comment is live"),
            _paragraph(f"Hi {escape(author_name)},"),
            _paragraph(
                "Your comment on "
                f'<a href="{escape(post_url)}" style="color: #2563EB;">'
                f"{escape(post_title)}</a> has been approved and is now visible."
            ),
            QUOTE_BLOCK.format(text=escape(content)),
            BUTTON.format(url=escape(post_url), label="View post"),
        ]
    )
    text = _plain(
        f"Hi {author_name},",
        "",
        f'Your comment on "{post_title}" has been approved and is now visible.',
        "",
        content,
        "",
        f"View post: {post_url}",
    )
    return RenderedEmail(subject, _wrap(subject, body), text)


# ==============================================================================
# Template: Rejection notification (comment author)
# ==============================================================================

DEFAULT_REJECTION_REASON = "It did not meet our community guidelines."


def render_rejection_notification(
    post_title: str,
    reason: str | None = None,
) -> RenderedEmail:
    """Tell an author their pending comment was not approved."""
    reason = reason or DEFAULT_REJECTION_REASON
    subject = f'Your comment on "{post_title}" was not approved'
    body = "".join(
        [
            _heading("Your comment was not approved"),
            _paragraph(
                f"Your comment on <strong>{escape(post_title)}</strong> was reviewed "
                "by a moderator and will not be published."
            ),
            _paragraph(f"Reason: {escape(reason)}"),
        ]
    )
    text = _plain(
        f'Your comment on "{post_title}" was reviewed by a moderator and will not '
        "be published.",
        "",
        f"Reason: {reason}",
    )
    return RenderedEmail(subject, _wrap(subject, body), text)
