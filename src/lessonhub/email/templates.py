"""
Email templates for LessonHUB.

All templates use inline CSS for email client compatibility. Each template
function returns (subject, html_body, text_body). User-supplied text is
HTML-escaped in the html body only.
"""

from __future__ import annotations

from html import escape

# Color constants
BG_PAGE = "#F4F6FB"
BG_CARD = "#FFFFFF"
ACCENT = "#4F46E5"
TEXT_PRIMARY = "#111827"
TEXT_SECONDARY = "#4B5563"
BORDER = "#E5E7EB"

APP_NAME = "LessonHUB"
SIGNATURE = "-- The LessonHUB Team"


def _base_layout(content: str) -> str:
    """Wrap content in the base email layout."""
    return f"""\
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{APP_NAME}</title>
</head>
<body style="margin: 0; padding: 0; background-color: {BG_PAGE}; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: {BG_PAGE};">
        <tr>
            <td align="center" style="padding: 40px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width: 600px; width: 100%;">
                    <tr>
                        <td align="center" style="padding-bottom: 24px;">
                            <span style="font-size: 22px; font-weight: 700; color: {ACCENT};">{APP_NAME}</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="background-color: {BG_CARD}; border: 1px solid {BORDER}; border-radius: 12px; padding: 36px 32px;">
                            {content}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="color: {TEXT_SECONDARY}; font-size: 12px; line-height: 1.5; margin: 0;">
                                You receive this email because you are enrolled on {APP_NAME}.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>"""


def _button(url: str, label: str) -> str:
    """Render a CTA button."""
    return f"""\
<table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin: 24px auto;">
    <tr>
        <td align="center" style="background-color: {ACCENT}; border-radius: 8px;">
            <a href="{url}" target="_blank" style="display: inline-block; padding: 12px 28px; color: #FFFFFF; font-size: 16px; font-weight: 600; text-decoration: none; border-radius: 8px;">
                {label}
            </a>
        </td>
    </tr>
</table>"""


def _heading(text: str) -> str:
    return f'<h1 style="color: {TEXT_PRIMARY}; font-size: 22px; font-weight: 700; margin: 0 0 16px 0;">{text}</h1>'


def _paragraph(text: str) -> str:
    return f'<p style="color: {TEXT_SECONDARY}; font-size: 16px; line-height: 1.6; margin: 0 0 12px 0;">{text}</p>'


def new_assignment(
    student_name: str | None,
    lesson_title: str,
    deadline: str,
    assignment_url: str,
) -> tuple[str, str, str]:
    """
    Sent when a lesson is assigned with notification.

    Returns:
        (subject, html_body, text_body)
    """
    name = student_name or "there"
    subject = f"New lesson: {lesson_title}"
    content = "\n".join([
        _heading("You have a new lesson"),
        _paragraph(f"Hi {escape(name)},"),
        _paragraph(
            f"<strong>{escape(lesson_title)}</strong> has been assigned to you. "
            f"Please complete it before <strong>{escape(deadline)}</strong>."
        ),
        _button(assignment_url, "Start lesson"),
    ])
    text_body = (
        f"Hi {name},\n\n"
        f"'{lesson_title}' has been assigned to you. Please complete it before {deadline}.\n\n"
        f"Start here: {assignment_url}\n\n"
        f"{SIGNATURE}"
    )
    return subject, _base_layout(content), text_body


def graded(
    student_name: str | None,
    lesson_title: str,
    score: str,
    teacher_comments: str | None,
    assignment_url: str,
) -> tuple[str, str, str]:
    """
    Sent after a teacher grades a submission.

    Returns:
        (subject, html_body, text_body)
    """
    name = student_name or "there"
    subject = f"Your lesson has been graded: {lesson_title}"
    parts = [
        _heading("Your lesson has been graded"),
        _paragraph(f"Hi {escape(name)},"),
        _paragraph(f"Your submission for <strong>{escape(lesson_title)}</strong> scored <strong>{escape(score)}</strong>."),
    ]
    if teacher_comments:
        parts.append(_paragraph(f"Teacher comments: <em>{escape(teacher_comments)}</em>"))
    parts.append(_button(assignment_url, "View feedback"))
    comments_text = f"Teacher comments: {teacher_comments}\n\n" if teacher_comments else ""
    text_body = (
        f"Hi {name},\n\n"
        f"Your submission for '{lesson_title}' scored {score}.\n\n"
        f"{comments_text}"
        f"View feedback: {assignment_url}\n\n"
        f"{SIGNATURE}"
    )
    return subject, _base_layout("\n".join(parts)), text_body


def deadline_reminder(
    student_name: str | None,
    lesson_title: str,
    deadline: str,
    assignment_url: str,
) -> tuple[str, str, str]:
    """
    Sent by the scheduled notifier when a deadline is close.

    Returns:
        (subject, html_body, text_body)
    """
    name = student_name or "there"
    subject = f"Reminder: {lesson_title} is due soon"
    content = "\n".join([
        _heading("Deadline approaching"),
        _paragraph(f"Hi {escape(name)},"),
        _paragraph(
            f"<strong>{escape(lesson_title)}</strong> is due on <strong>{escape(deadline)}</strong>. "
            "Submit it before then to earn the on-time bonus."
        ),
        _button(assignment_url, "Finish lesson"),
    ])
    text_body = (
        f"Hi {name},\n\n"
        f"'{lesson_title}' is due on {deadline}.\n\n"
        f"Finish it here: {assignment_url}\n\n"
        f"{SIGNATURE}"
    )
    return subject, _base_layout(content), text_body


def manual_reminder(
    student_name: str | None,
    lesson_title: str,
    deadline: str,
    assignment_url: str,
    teacher_name: str | None = None,
) -> tuple[str, str, str]:
    """
    Sent when a teacher nudges a student by hand.

    Returns:
        (subject, html_body, text_body)
    """
    name = student_name or "there"
    sender = teacher_name or "Your teacher"
    subject = f"{sender} sent you a reminder: {lesson_title}"
    content = "\n".join([
        _heading("A reminder from your teacher"),
        _paragraph(f"Hi {escape(name)},"),
        _paragraph(
            f"{escape(sender)} would like to remind you about <strong>{escape(lesson_title)}</strong>, "
            f"due on <strong>{escape(deadline)}</strong>."
        ),
        _button(assignment_url, "Open lesson"),
    ])
    text_body = (
        f"Hi {name},\n\n"
        f"{sender} would like to remind you about '{lesson_title}', due on {deadline}.\n\n"
        f"Open it here: {assignment_url}\n\n"
        f"{SIGNATURE}"
    )
    return subject, _base_layout(content), text_body


def failed(
    student_name: str | None,
    lesson_title: str,
    marketplace_url: str,
) -> tuple[str, str, str]:
    """
    Sent when an assignment passes its deadline without a submission.

    Returns:
        (subject, html_body, text_body)
    """
    name = student_name or "there"
    subject = f"Missed deadline: {lesson_title}"
    content = "\n".join([
        _heading("Deadline missed"),
        _paragraph(f"Hi {escape(name)},"),
        _paragraph(
            f"The deadline for <strong>{escape(lesson_title)}</strong> has passed and the lesson was marked as failed. "
            "You can still buy it back in the marketplace with your savings."
        ),
        _button(marketplace_url, "Visit the marketplace"),
    ])
    text_body = (
        f"Hi {name},\n\n"
        f"The deadline for '{lesson_title}' has passed and the lesson was marked as failed.\n"
        f"You can buy it back in the marketplace: {marketplace_url}\n\n"
        f"{SIGNATURE}"
    )
    return subject, _base_layout(content), text_body
