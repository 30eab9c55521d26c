"""Voucher API Routes"""
from typing import Optional
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import get_org_context_dep
from ...domain.models import OrgContext
from ...services.voucher_service import VoucherService

router = APIRouter()


class CreateVoucherRequest(BaseModel):
    """Voucher details the creator adds to the expense snapshot"""
    credit_person: Optional[str] = Field(None, max_length=200)
    signature_url: Optional[str] = Field(None, max_length=2000)
    purpose: Optional[str] = Field(None, max_length=4000)


@router.post("/organizations/{slug}/expenses/{expense_id}/voucher", status_code=status.HTTP_201_CREATED)
async def create_voucher(
    expense_id: str,
    request: CreateVoucherRequest,
    ctx: OrgContext = Depends(get_org_context_dep)
):
    """Create the voucher for an expense (creator only, one per expense)"""
    voucher = VoucherService().create_voucher(
        ctx, expense_id,
        credit_person=request.credit_person,
        signature_url=request.signature_url,
        purpose=request.purpose,
    )
    return {"voucher": voucher}


@router.get("/organizations/{slug}/vouchers/{voucher_id}")
async def get_voucher(voucher_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    return {"voucher": VoucherService().get_voucher(ctx, voucher_id)}


@router.post("/organizations/{slug}/vouchers/{voucher_id}/pdf")
async def generate_voucher_pdf(voucher_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    """
    Render and store the voucher PDF

    Idempotent: the same storage key is overwritten on every call.
    """
    service = VoucherService()
    service.get_voucher(ctx, voucher_id)
    return service.generate_pdf(voucher_id)


@router.get("/organizations/{slug}/vouchers/{voucher_id}/download")
async def get_voucher_download(voucher_id: str, ctx: OrgContext = Depends(get_org_context_dep)):
    """Signed, expiring URL for the voucher PDF"""
    return VoucherService().get_download_url(ctx, voucher_id)
