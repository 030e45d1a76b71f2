"""
Email templates for bulk import notifications.

Usage:
    from integrations.mail_messages import render_message

    subject, text, html = render_message(
        "bulk_import_invitation",
        recipient_name="Ana",
        amount=250,
        signin_url="https://rewards.example.com/login",
    )
"""

from html import escape

MESSAGES = {
    "bulk_import_invitation": {
        "subject": "You have {amount_display} Guincoins waiting for you",
        "text": """Hi {recipient_name},

{amount_display} Guincoins have been imported into Guincoin for you.

Sign in with your work account to claim them:
{signin_url}

The balance is credited automatically the first time you sign in.""",
        "html": """<p>Hi {recipient_name},</p>
<p><strong>{amount_display} Guincoins</strong> have been imported into Guincoin for you.</p>
<p><a href="{signin_url}">Sign in with your work account</a> to claim them.</p>
<p>The balance is credited automatically the first time you sign in.</p>""",
    },
}


def format_amount(amount: float) -> str:
    """1250.0 → "1,250", 12.5 → "12.5"."""
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.2f}".rstrip("0").rstrip(".")


def render_message(key: str, **kwargs) -> tuple[str, str, str]:
    """
    Render a template into (subject, text, html).

    Values are HTML-escaped for the html part only.

    Raises:
        KeyError: If the template key is unknown
    """
    template = MESSAGES[key]
    if "amount" in kwargs:
        kwargs.setdefault("amount_display", format_amount(kwargs["amount"]))

    html_kwargs = {k: escape(str(v)) for k, v in kwargs.items()}

    return (
        template["subject"].format(**kwargs),
        template["text"].format(**kwargs),
        template["html"].format(**html_kwargs),
    )
