from dataclasses import dataclass
from html import escape


@dataclass(frozen=True)
class Receipt:
    filename: str
    content_type: str
    content: bytes


def _slots_text(slots) -> str:
    return ", ".join(f"{s['start_time']}-{s['end_time']}" for s in slots or [])


def render_receipt(snapshot: dict) -> Receipt:
    """Printable HTML receipt for a paid reservation snapshot."""
    payment = snapshot.get("payment") or {}
    rows = [
        ("Receipt", snapshot["id"]),
        ("Turf", snapshot.get("turf_name") or snapshot.get("turf_ref")),
        ("Date", snapshot.get("date")),
        ("Slots", _slots_text(snapshot.get("slots"))),
        ("Booked by", snapshot.get("holder_name") or snapshot.get("holder_email") or snapshot.get("holder_id")),
        ("Amount", f"{float(payment.get('amount', snapshot.get('price', 0))):.2f}"),
        ("Payment method", payment.get("method")),
        ("Transaction", payment.get("transaction_id")),
        ("Order", payment.get("provider_order_id")),
        ("Paid at", payment.get("date")),
    ]
    body = "\n".join(
        f"<tr><th>{escape(label)}</th><td>{escape(str(value or '-'))}</td></tr>" for label, value in rows
    )
    html = (
        "<!doctype html><html><head><meta charset=\"utf-8\"><title>Booking receipt</title></head>"
        f"<body><h1>Booking receipt</h1><table>\n{body}\n</table></body></html>"
    )
    return Receipt(
        filename=f"receipt-{snapshot['id']}.html",
        content_type="text/html",
        content=html.encode("utf-8"),
    )
