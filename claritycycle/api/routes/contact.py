from __future__ import annotations

from fastapi import APIRouter, Depends

from ...mailer import ContactMessage, MailDeliveryError, Mailer
from ..deps import get_mailer, rate_limited
from ..errors import ApiError
from ..schemas import ContactOut, ContactRequest

router = APIRouter(prefix="/api/contact", tags=["contact"])


@router.post("/send", response_model=ContactOut, dependencies=[Depends(rate_limited("contact"))])
def send_contact(payload: ContactRequest, mailer: Mailer = Depends(get_mailer)) -> ContactOut:
    contact = ContactMessage(
        name=payload.name,
        email=payload.email,
        subject=payload.subject,
        message=payload.message,
        phone=payload.phone or None,
    )
    try:
        delivered = mailer.send_contact(contact)
    except MailDeliveryError as exc:
        raise ApiError(502, "Email delivery failed", str(exc)) from exc

    message = "Message sent successfully" if delivered else "Message received"
    return ContactOut(success=True, message=message)
