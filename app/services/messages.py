"""Text of the expiry notifications."""

from __future__ import annotations

from datetime import date

from app.types.reminder_contract import DueDocument


def fmt_date(d: date) -> str:
    return d.strftime("%d %b %Y")


def _doc_label(doc: DueDocument) -> str:
    return f"{doc.doc_type} ({doc.number})" if doc.number else doc.doc_type


def email_subject(doc: DueDocument) -> str:
    return f"Reminder: {doc.doc_type} expires {fmt_date(doc.expiry_date)}"


def email_body(doc: DueDocument, dashboard_url: str | None = None) -> str:
    lines = [
        f"Hi {doc.owner.name or 'there'},",
        "",
        f"Your {_doc_label(doc)} for {doc.vehicle_label} expires on {fmt_date(doc.expiry_date)}.",
        "",
        "Please renew in time.",
    ]
    if dashboard_url:
        lines += ["", f"Manage your documents: {dashboard_url}"]
    return "\n".join(lines)


def whatsapp_body(doc: DueDocument) -> str:
    return (
        f"Reminder: {_doc_label(doc)} for {doc.vehicle_label} "
        f"expires on {fmt_date(doc.expiry_date)}."
    )
