"""Tests for notification email templates."""

from consultancy_cms.email.templates import (
    DEFAULT_REJECTION_REASON,
    render_approval_notification,
    render_new_comment_admin_alert,
    render_rejection_notification,
    render_reply_notification,
)


class TestNewCommentAdminAlert:
    def test_subject_and_links(self) -> None:
        rendered = render_new_comment_admin_alert(
            post_title="Scaling Consultancies",
            post_url="https://cms.example.com/blog/scaling",
            author_name="Rita Reader",
            content="Great read",
            moderation_url="https://cms.example.com/admin/blog/comments",
        )

        assert rendered.subject == 'New Comment on "Scaling Consultancies"'
        assert "https://cms.example.com/admin/blog/comments" in rendered.html
        assert "Rita Reader wrote:" in rendered.text
        assert "Great read" in rendered.text

    def test_content_is_escaped_in_html(self) -> None:
        rendered = render_new_comment_admin_alert(
            post_title="Post",
            post_url="https://cms.example.com/blog/post",
            author_name="<img src=x>",
            content="<script>alert(1)</script>",
            moderation_url="https://cms.example.com/admin/blog/comments",
        )

        assert "<script>" not in rendered.html
        assert "&lt;script&gt;" in rendered.html
        assert "<img src=x>" not in rendered.html
        # The text part is not HTML and keeps the raw characters
        assert "<script>alert(1)</script>" in rendered.text


class TestReplyNotification:
    def test_quotes_both_comments(self) -> None:
        rendered = render_reply_notification(
            post_title="Pricing Retainers",
            post_url="https://cms.example.com/blog/pricing",
            author_name="Sam Second",
            content="How do you price?",
            reply_content="Per outcome.",
            comment_url="https://cms.example.com/blog/pricing#comment-1",
        )

        assert rendered.subject == (
            'Sam Second replied to your comment on "Pricing Retainers"'
        )
        assert "How do you price?" in rendered.text
        assert "Per outcome." in rendered.text
        assert "#comment-1" in rendered.html


class TestApprovalNotification:
    def test_greets_author(self) -> None:
        rendered = render_approval_notification(
            author_name="Rita",
            post_title="Scaling Consultancies",
            post_url="https://cms.example.com/blog/scaling",
            content="Great read",
        )

        assert rendered.subject == (
            'Your comment on "Scaling Consultancies" has been approved'
        )
        assert rendered.text.startswith("Hi Rita,")
        assert "View post: https://cms.example.com/blog/scaling" in rendered.text


class TestRejectionNotification:
    def test_reason_is_included(self) -> None:
        rendered = render_rejection_notification("Post", reason="Off topic")

        assert rendered.subject == 'Your comment on "Post" was not approved'
        assert "Reason: Off topic" in rendered.text

    def test_default_reason(self) -> None:
        rendered = render_rejection_notification("Post")
        assert DEFAULT_REJECTION_REASON in rendered.text
        assert DEFAULT_REJECTION_REASON in rendered.html
