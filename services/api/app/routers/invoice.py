from __future__ import annotations

from fastapi import APIRouter, Depends
from services.api.app.db.deps import get_db
from services.api.app.models.invoice import InvoiceIssueRequest, InvoiceOut, NumberingConfig
from services.api.app.routers.common import iso, raise_payments_http_error
from services.api.app.services import invoicing
from sqlalchemy.orm import Session

router = APIRouter()


@router.post("/v1/invoices/issue", response_model=InvoiceOut)
def issue_invoice(payload: InvoiceIssueRequest, db: Session = Depends(get_db)) -> InvoiceOut:
    try:
        issued = invoicing.issue_invoice(db, payload.order_id)
    except Exception as e:
        raise_payments_http_error(e)

    return InvoiceOut(
        order_id=issued.order_id,
        invoice_number=issued.invoice_number,
        series=issued.series,
        issued_at=iso(issued.issued_at),
    )


@router.get("/v1/invoices/numbering-config", response_model=NumberingConfig)
def get_numbering_config(db: Session = Depends(get_db)) -> NumberingConfig:
    return invoicing.load_numbering_config(db)


@router.put("/v1/invoices/numbering-config", response_model=NumberingConfig)
def put_numbering_config(payload: NumberingConfig, db: Session = Depends(get_db)) -> NumberingConfig:
    try:
        return invoicing.save_numbering_config(db, payload)
    except Exception as e:
        raise_payments_http_error(e)
