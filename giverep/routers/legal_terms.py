from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func
from sqlalchemy.orm import Session

from giverep.core.logging import get_logger
from giverep.database import get_db
from giverep.models.legal_terms import LegalTermsAgreement
from giverep.schemas.legal_terms_schema import AgreeRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/legal-terms", tags=["Legal Terms"])


def _find_agreement(db: Session, user_handle: str, wallet_address: str):
    return (
        db.query(LegalTermsAgreement)
        .filter(
            func.lower(LegalTermsAgreement.user_handle) == user_handle.lower(),
            func.lower(LegalTermsAgreement.wallet_address) == wallet_address.lower(),
        )
        .first()
    )


def _client_ip(request: Request):
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.get("/check/{user_handle}/{wallet_address}")
def check_agreement(user_handle: str, wallet_address: str, db: Session = Depends(get_db)):
    agreement = _find_agreement(db, user_handle, wallet_address)
    return {
        "hasAgreed": agreement is not None,
        "agreedAt": agreement.agreed_at.isoformat() if agreement else None,
        "termsVersion": agreement.terms_version if agreement else None,
    }


@router.post("/agree")
def agree(payload: AgreeRequest, request: Request, db: Session = Depends(get_db)):
    if not payload.user_handle or not payload.wallet_address:
        raise HTTPException(status_code=400, detail="userHandle and walletAddress are required")

    user_handle = payload.user_handle.strip().lower()
    wallet_address = payload.wallet_address.strip().lower()

    if _find_agreement(db, user_handle, wallet_address):
        return {"success": True, "message": "Agreement already recorded"}

    db.add(LegalTermsAgreement(
        user_handle=user_handle,
        wallet_address=wallet_address,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    ))
    db.commit()
    logger.info("Recorded legal terms agreement", extra={"user_handle": user_handle})
    return {"success": True, "message": "Agreement recorded successfully"}
