"""
Invitation email rendering.

Both renderings list the collab request's details in a fixed order, skip
`additionalInfo` when it is empty, and end with a link to the posting on the
web client. Values are HTML-escaped in the HTML body.
"""

from __future__ import annotations

from dataclasses import dataclass

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from gradcollab.db import CollabRequestRecord

INVITE_SUBJECT_TEMPLATE = "You've been invited to collaborate: {subject}"

_INVITE_HTML = """\
<html>
  <body style="font-family: Arial, Helvetica, sans-serif; color: #222;">
    <h2>You've been invited to a research collaboration</h2>
    <table cellpadding="6" cellspacing="0">
{%- for label, value in details %}
      <tr>
        <td style="font-weight: bold; vertical-align: top;">{{ label }}</td>
        <td>{{ value }}</td>
      </tr>
{%- endfor %}
    </table>
    <p>
      <a href="{{ link }}" style="display: inline-block; padding: 10px 16px; background: #1a73e8; color: #fff; text-decoration: none;">View the collaboration request</a>
    </p>
  </body>
</html>
"""

_INVITE_TEXT = """\
You've been invited to a research collaboration.
{% for label, value in details %}
{{ label }}: {{ value }}
{%- endfor %}

View the collaboration request: {{ link }}
"""

_env = Environment(
    loader=DictLoader({"invite.html": _INVITE_HTML, "invite.txt": _INVITE_TEXT}),
    autoescape=select_autoescape(enabled_extensions=("html",), default=False),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


@dataclass
class HtmlAndText:
    html: str
    text: str


def collab_request_link(web_client_origin: str, collab_request_id: str) -> str:
    return f"{web_client_origin.rstrip('/')}/grad-collab/#/browse/{collab_request_id}"


def invite_details(record: CollabRequestRecord) -> list[tuple[str, str]]:
    details = [
        ("Field", record.field),
        ("Subject", record.subject),
        ("Project impact summary", record.project_impact_summary),
        ("Expected tasks", record.expected_tasks),
        ("Expected time", record.expected_time),
        ("Offer", record.offer),
    ]
    if record.additional_info:
        details.append(("Additional info", record.additional_info))
    return details


def render_collab_invite(
    record: CollabRequestRecord, web_client_origin: str
) -> HtmlAndText:
    """Render the HTML and plain-text bodies of a collab invitation."""
    context = {
        "details": invite_details(record),
        "link": collab_request_link(web_client_origin, record.id),
    }
    return HtmlAndText(
        html=_env.get_template("invite.html").render(**context),
        text=_env.get_template("invite.txt").render(**context),
    )


def invite_subject(record: CollabRequestRecord) -> str:
    return INVITE_SUBJECT_TEMPLATE.format(subject=record.subject)
