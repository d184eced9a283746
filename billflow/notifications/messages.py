# billflow/notifications/messages.py
"""LINE flex message layouts for bill notifications."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from billflow.common.reminders import ReminderKind

BILL_TYPE_ICONS = {
    "ELECTRIC": "⚡",
    "WATER": "💧",
    "INTERNET": "🌐",
    "CAR": "🚗",
    "HOME": "🏠",
    "OTHER": "📄",
}

REMINDER_STYLES = {
    ReminderKind.DUE_TODAY: ("⚠️ Bill Due Today!", "#FF6B6B", "Bill due today"),
    ReminderKind.DUE_SOON: ("⏰ Bill Due Soon", "#FFA500", "Bill due soon"),
}


def get_bill_type_icon(bill_type: str) -> str:
    return BILL_TYPE_ICONS.get(getattr(bill_type, "value", bill_type), "📄")


def format_amount(amount: Decimal | float) -> str:
    return f"฿{Decimal(str(amount)):,.2f}"


def format_due_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def task_deep_link(liff_id: str, task_id: str) -> str:
    return f"https://liff.line.me/{liff_id}?path=/tasks/{task_id}"


def reminder_summary(kind: ReminderKind, vendor: str) -> str:
    """One-line text stored on the notification row."""
    return f"{REMINDER_STYLES[kind][2]}: {vendor}"


def _detail_row(label: str, value: str, **value_style: Any) -> Dict[str, Any]:
    return {
        "type": "box",
        "layout": "baseline",
        "spacing": "sm",
        "contents": [
            {"type": "text", "text": label, "color": "#aaaaaa", "size": "sm", "flex": 1},
            {"type": "text", "text": value, "flex": 2, "align": "end", **value_style},
        ],
    }


def _bubble(
    title: str,
    title_color: str,
    icon: str,
    vendor: str,
    amount_row: Dict[str, Any],
    due_date: datetime,
    button: Dict[str, Any],
) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = [
        {
            "type": "box",
            "layout": "baseline",
            "spacing": "sm",
            "contents": [
                {"type": "text", "text": icon, "size": "xl", "flex": 0},
                {"type": "text", "text": vendor, "weight": "bold", "size": "lg", "flex": 1},
            ],
        },
        amount_row,
        _detail_row("Due Date:", format_due_date(due_date), size="sm"),
    ]
    return {
        "type": "bubble",
        "body": {
            "type": "box",
            "layout": "vertical",
            "contents": [
                {"type": "text", "text": title, "weight": "bold", "size": "xl", "color": title_color},
                {"type": "box", "layout": "vertical", "margin": "lg", "spacing": "sm", "contents": rows},
            ],
        },
        "footer": {"type": "box", "layout": "vertical", "spacing": "sm", "contents": [button]},
    }


def build_due_reminder_message(
    kind: ReminderKind,
    task_id: str,
    vendor: str,
    amount: Decimal | float,
    bill_type: str,
    due_date: datetime,
    liff_id: str,
) -> Dict[str, Any]:
    title, color, _ = REMINDER_STYLES[kind]
    return {
        "type": "flex",
        "altText": f"{title}: {vendor}",
        "contents": _bubble(
            title,
            color,
            get_bill_type_icon(bill_type),
            vendor,
            _detail_row(
                "Amount:", format_amount(amount), weight="bold", size="md", color="#FF6B6B"
            ),
            due_date,
            {
                "type": "button",
                "style": "primary",
                "color": "#FF6B6B",
                "action": {"type": "uri", "label": "Pay Now", "uri": task_deep_link(liff_id, task_id)},
            },
        ),
    }


def build_bill_created_message(
    task_id: str,
    vendor: str,
    amount: Decimal | float,
    bill_type: str,
    due_date: datetime,
    liff_id: str,
) -> Dict[str, Any]:
    return {
        "type": "flex",
        "altText": f"Bill added: {vendor}",
        "contents": _bubble(
            "✅ Bill Added",
            "#1DB446",
            get_bill_type_icon(bill_type),
            vendor,
            _detail_row("Amount:", format_amount(amount), weight="bold", size="md"),
            due_date,
            {
                "type": "button",
                "style": "primary",
                "action": {"type": "uri", "label": "View Task", "uri": task_deep_link(liff_id, task_id)},
            },
        ),
    }
