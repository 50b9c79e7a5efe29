import smtplib

from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_mailer
from logger import practice_logger
from mailer import Mailer
from models import ContactMessage

router = APIRouter(prefix="/api/contact", tags=["contact"])

MAX_MESSAGE_LENGTH = 5000


@router.post("")
def send_contact_message(payload: ContactMessage, mailer: Mailer = Depends(get_mailer)):
    if len(payload.message) > MAX_MESSAGE_LENGTH:
        raise HTTPException(status_code=413, detail=f"Message too long (max {MAX_MESSAGE_LENGTH} chars).")
    try:
        result = mailer.send_contact_email(
            name=payload.name.strip(),
            from_email=payload.email,
            subject=payload.subject.strip(),
            message_text=payload.message.strip(),
        )
    except (smtplib.SMTPException, OSError) as e:
        practice_logger.error(f"Failed to deliver contact message: {e}")
        raise HTTPException(status_code=500, detail="Failed to send message.")
    return {"ok": True, "delivered": not result["skipped"], "skipped": result["skipped"]}
