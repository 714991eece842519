"""
Email notifications for test results.

There is no mail transport; "sending" renders the text and HTML bodies and
writes them to the log. A transport can be plugged in by overriding
``deliver``.
"""
from datetime import datetime
from html import escape
from typing import Any, Dict, List, Optional, Sequence

import structlog

from app.schemas.testing import EmailNotification, NotificationSummary, StepStatus, TestResult, TestStatus

logger = structlog.get_logger()

RULE_WIDTH = 60
HTML_PREVIEW_CHARS = 500


class NotificationError(Exception):
    """Raised for notifications that cannot be sent."""


def summarize(results: Sequence[TestResult]) -> NotificationSummary:
    return NotificationSummary(
        passed=sum(1 for r in results if r.status == TestStatus.PASSED),
        failed=sum(1 for r in results if r.status == TestStatus.FAILED),
        total=len(results),
    )


def build_notification(
    recipients: Sequence[str],
    results: Sequence[TestResult],
    subject: Optional[str] = None,
) -> EmailNotification:
    """Notification for ``results`` addressed to every recipient."""
    summary = summarize(results)
    return EmailNotification(
        to=", ".join(recipients),
        subject=subject or f"Fluid Test Results: {summary.passed}/{summary.total} Passed",
        test_results=list(results),
        summary=summary,
    )


def scheduled_subject(result: TestResult) -> str:
    mark = "✓" if result.status == TestStatus.PASSED else "✗"
    return f"Scheduled Test: {mark} {result.test_type.value}"


def _success_rate(summary: NotificationSummary) -> float:
    if not summary.total:
        return 0.0
    return summary.passed / summary.total * 100


def _seconds(duration: Optional[int]) -> str:
    return f"{(duration or 0) / 1000:.2f}"


def _step_icon(status: StepStatus) -> str:
    return "✓" if status == StepStatus.PASSED else "✗"


def _rate_tone(rate: float) -> str:
    if rate >= 90:
        return "success"
    if rate >= 70:
        return "warning"
    return "danger"


def render_text(notification: EmailNotification, now: Optional[datetime] = None) -> str:
    summary = notification.summary
    lines: List[str] = [
        "Fluid Automated Test Results",
        (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S"),
        "=" * RULE_WIDTH,
        "",
        "SUMMARY",
        "-------",
        f"Passed: {summary.passed}",
        f"Failed: {summary.failed}",
        f"Total: {summary.total}",
        f"Success Rate: {_success_rate(summary):.1f}%",
        "",
        "TEST RESULTS",
        "------------",
        "",
    ]

    for result in notification.test_results:
        lines.append(result.test_type.display_name)
        lines.append(f"Status: {result.status.value.upper()}")
        lines.append(f"Duration: {_seconds(result.duration)}s")
        if result.error:
            lines.append(f"Error: {result.error}")
        lines.append("")
        lines.append("Steps:")
        for step in result.steps:
            lines.append(f"  {_step_icon(step.status)} {step.name} ({_seconds(step.duration)}s)")
            if step.error:
                lines.append(f"    → {step.error}")
        lines.append("")
        lines.append("-" * RULE_WIDTH)
        lines.append("")

    lines.append("This is an automated notification from Fluid Automated Testing.")
    return "\n".join(lines) + "\n"


def _render_result_html(result: TestResult) -> str:
    status = result.status.value
    parts = [
        f'<div class="test-result {status}">',
        f"<h3>{escape(result.test_type.display_name)}</h3>",
        f'<span class="status {status}">{status.upper()}</span>',
        f'<p class="duration">Duration: {_seconds(result.duration)}s</p>',
    ]
    if result.error:
        parts.append(f'<div class="error"><strong>Error:</strong> {escape(result.error)}</div>')
    parts.append('<div class="test-steps"><strong>Test Steps:</strong>')
    for step in result.steps:
        error = f'<br/><span class="step-error">→ {escape(step.error)}</span>' if step.error else ""
        parts.append(
            f'<div class="test-step {step.status.value}">'
            f"<strong>{_step_icon(step.status)}</strong> {escape(step.name)} "
            f'<span class="step-duration">({_seconds(step.duration)}s)</span>{error}</div>'
        )
    parts.append("</div></div>")
    return "\n".join(parts)


_HTML_STYLE = """
body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; }
.header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 30px; border-radius: 8px; text-align: center; }
.summary-card { display: inline-block; padding: 20px; border-radius: 8px; text-align: center; }
.summary-card.passed { background-color: #d1fae5; }
.summary-card.failed { background-color: #fee2e2; }
.summary-card.total { background-color: #e0e7ff; }
.rate.success { color: #10b981; }
.rate.warning { color: #f59e0b; }
.rate.danger { color: #ef4444; }
.test-result { border: 2px solid #e5e7eb; border-radius: 8px; padding: 20px; margin-bottom: 20px; }
.test-result.passed { border-color: #10b981; background-color: #f0fdf4; }
.test-result.failed { border-color: #ef4444; background-color: #fef2f2; }
.test-step.passed { color: #059669; }
.test-step.failed { color: #dc2626; }
.error { background-color: #fee2e2; border-left: 4px solid #ef4444; padding: 12px; color: #991b1b; }
.footer { margin-top: 40px; text-align: center; font-size: 14px; color: #6b7280; }
""".strip()


def render_html(notification: EmailNotification, now: Optional[datetime] = None) -> str:
    summary = notification.summary
    rate = _success_rate(summary)
    timestamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    cards = "\n".join(
        f'<div class="summary-card {kind}"><p class="number">{count}</p><p class="label">{label}</p></div>'
        for kind, count, label in (
            ("passed", summary.passed, "Passed"),
            ("failed", summary.failed, "Failed"),
            ("total", summary.total, "Total"),
        )
    )
    results = "\n".join(_render_result_html(result) for result in notification.test_results)
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        f"<style>\n{_HTML_STYLE}\n</style>\n"
        "</head>\n<body>\n"
        f'<div class="header"><h1>Fluid Automated Test Results</h1><p>{timestamp}</p></div>\n'
        f'<div class="summary">\n{cards}\n</div>\n'
        f'<div class="success-rate"><p>Success Rate</p><p class="rate {_rate_tone(rate)}">{rate:.1f}%</p></div>\n'
        f"{results}\n"
        '<div class="footer"><p>This is an automated notification from Fluid Automated Testing.<br/>'
        "Tests run automatically based on your configured schedule.</p></div>\n"
        "</body>\n</html>"
    )


class EmailNotifier:
    """Renders notifications and hands them to ``deliver``."""

    def validate(self, notification: EmailNotification) -> None:
        if not notification.to or not notification.test_results:
            raise NotificationError("Invalid notification data")

    async def send(self, notification: EmailNotification) -> Dict[str, Any]:
        """Send ``notification`` and return a preview of what went out."""
        self.validate(notification)
        text = render_text(notification)
        html = render_html(notification)
        await self.deliver(notification, text, html)
        return {
            "success": True,
            "message": "Email notification sent",
            "preview": {"to": notification.to, "subject": notification.subject},
        }

    async def deliver(self, notification: EmailNotification, text: str, html: str) -> None:
        logger.info(
            "Email notification",
            to=notification.to,
            subject=notification.subject,
            passed=notification.summary.passed,
            failed=notification.summary.failed,
            total=notification.summary.total,
        )
        logger.debug("Email notification body", text=text, html_preview=html[:HTML_PREVIEW_CHARS])

    async def notify_results(
        self,
        recipients: Sequence[str],
        results: Sequence[TestResult],
        subject: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await self.send(build_notification(recipients, results, subject=subject))
