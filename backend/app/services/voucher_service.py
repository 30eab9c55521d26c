"""Voucher Service - Voucher creation and PDF generation

PDF generation is idempotent: every run refreshes the voucher from its
expense, renders it, and overwrites the same storage key.
"""
import io
from typing import Callable, Optional
from xml.sax.saxutils import escape
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from ..domain.models import OrgContext, Voucher, VoucherPdf, SideEffectReport
from ..domain.errors import (
    DocumentGenerationError, ExpenseNotFoundError, ForbiddenError, OrganizationNotFoundError,
    VoucherNotFoundError
)
from ..repositories.expense_repo import ExpenseRepository
from ..repositories.organization_repo import OrganizationRepository
from ..repositories.profile_repo import ProfileRepository
from ..repositories.voucher_repo import VoucherRepository
from ..templates import build_voucher_document, VoucherDocument
from .storage_service import StorageService
from ..utils.idgen import generate_voucher_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

PdfRenderer = Callable[[VoucherDocument], bytes]


def render_pdf_with_reportlab(document: VoucherDocument) -> bytes:
    """Lay the voucher out on an A4 page and return the PDF bytes"""
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, topMargin=24 * mm, bottomMargin=24 * mm,
                            leftMargin=18 * mm, rightMargin=18 * mm, title=document.reference)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("VoucherTitle", parent=styles["Title"], fontSize=20, alignment=TA_CENTER)
    org_style = ParagraphStyle("VoucherOrg", parent=styles["Normal"], alignment=TA_CENTER,
                               textColor=colors.HexColor("#4B5563"))
    cell_style = styles["Normal"]

    content = [
        Paragraph(escape(document.title), title_style),
        Paragraph(escape(document.organization_line), org_style),
        Spacer(1, 10 * mm),
    ]

    table = Table(
        [[Paragraph(f"<b>{escape(label)}</b>", cell_style), Paragraph(escape(value), cell_style)]
         for label, value in document.rows],
        colWidths=[55 * mm, None],
    )
    table.setStyle(TableStyle([
        ("LINEBELOW", (0, 0), (-1, -1), 0.5, colors.HexColor("#D1D5DB")),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("TOPPADDING", (0, 0), (-1, -1), 8),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 8),
    ]))
    content.extend([table, Spacer(1, 20 * mm)])

    if document.signature_url:
        content.append(Paragraph(
            f'<link href="{escape(document.signature_url)}">Signature on file</link>', cell_style
        ))
    content.append(Paragraph("______________________________", cell_style))
    content.append(Paragraph("Signature", cell_style))

    doc.build(content)
    return buffer.getvalue()


def voucher_storage_key(org_id: str, voucher_id: str) -> str:
    return f"vouchers/{org_id}/{voucher_id}.pdf"


class VoucherService:
    """Service for voucher operations"""

    def __init__(
        self,
        renderer: Optional[PdfRenderer] = None,
        storage: Optional[StorageService] = None
    ):
        self.repo = VoucherRepository()
        self.expense_repo = ExpenseRepository()
        self.org_repo = OrganizationRepository()
        self.profile_repo = ProfileRepository()
        self.storage = storage or StorageService()
        self.renderer = renderer or render_pdf_with_reportlab

    def create_voucher(
        self,
        ctx: OrgContext,
        expense_id: str,
        credit_person: Optional[str] = None,
        signature_url: Optional[str] = None,
        purpose: Optional[str] = None
    ) -> Voucher:
        """Create the voucher for an expense (creator only, one per expense)"""
        expense = self.expense_repo.get_expense(expense_id)
        if not expense or expense.org_id != ctx.org_id:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        if expense.user_id != ctx.user_id:
            raise ForbiddenError("Only the creator can create a voucher for this expense")

        profile = self.profile_repo.get_profile(expense.user_id)
        voucher = Voucher(
            voucher_id=generate_voucher_id(),
            expense_id=expense.expense_id,
            org_id=expense.org_id,
            your_name=profile.label if profile else ctx.actor.display_name,
            amount=expense.approved_amount if expense.approved_amount is not None else expense.amount,
            purpose=purpose or expense.description,
            credit_person=credit_person,
            signature_url=signature_url,
            created_by=ctx.user_id,
            created_at=utc_now(),
        )
        return self.repo.create_voucher(voucher)

    def get_voucher(self, ctx: OrgContext, voucher_id: str) -> Voucher:
        voucher = self.repo.get_voucher_or_raise(voucher_id)
        if voucher.org_id != ctx.org_id:
            raise VoucherNotFoundError(f"Voucher {voucher_id} not found")
        return voucher

    def generate_pdf(self, voucher_id: str) -> VoucherPdf:
        """
        Render the voucher to PDF and store it at vouchers/<org_id>/<voucher_id>.pdf

        Returns:
            VoucherPdf with the storage path and a signed download URL

        Raises:
            VoucherNotFoundError: Unknown voucher
            DocumentGenerationError: Rendering or storage failed
        """
        voucher = self.repo.get_voucher_or_raise(voucher_id)
        expense = self.expense_repo.get_expense_or_raise(voucher.expense_id)
        organization = self.org_repo.get_organization(voucher.org_id)
        if organization is None:
            raise OrganizationNotFoundError(f"Organization {voucher.org_id} not found")

        profiles = self.profile_repo.get_profiles([expense.user_id, expense.approver_id])
        creator = profiles.get(expense.user_id)
        approver = profiles.get(expense.approver_id) if expense.approver_id else None

        # Refresh the projection from the expense
        refreshed = voucher.model_copy(update={
            "your_name": creator.label if creator else voucher.your_name,
            "amount": expense.approved_amount if expense.approved_amount is not None else expense.amount,
            "purpose": voucher.purpose or expense.description,
        })

        document = build_voucher_document(
            refreshed, expense, organization, approver.label if approver else None
        )

        key = voucher_storage_key(voucher.org_id, voucher.voucher_id)
        try:
            pdf_bytes = self.renderer(document)
            self.storage.save(key, pdf_bytes)
        except Exception as e:
            logger.error(
                f"Voucher PDF generation failed: {e}",
                extra={"voucher_id": voucher_id, "expense_id": voucher.expense_id}
            )
            raise DocumentGenerationError(
                f"Failed to generate voucher PDF: {e}",
                details={"voucher_id": voucher_id}
            )

        self.repo.update_voucher(voucher_id, {
            "your_name": refreshed.your_name,
            "amount": refreshed.amount,
            "purpose": refreshed.purpose,
            "pdf_path": key,
        })

        logger.info(f"Generated voucher PDF: {key}", extra={"voucher_id": voucher_id, "expense_id": voucher.expense_id})
        return VoucherPdf(voucher_id=voucher_id, path=key, signed_url=self.storage.signed_url(key))

    def generate_pdf_best_effort(self, voucher_id: str) -> SideEffectReport:
        """Background variant: failures are logged and reported, not raised"""
        report = SideEffectReport()
        try:
            self.generate_pdf(voucher_id)
        except Exception as e:
            logger.warning(f"Background voucher generation failed: {e}", extra={"voucher_id": voucher_id})
            report.failures.append(f"voucher {voucher_id}: {e}")
        return report

    def get_download_url(self, ctx: OrgContext, voucher_id: str) -> VoucherPdf:
        """Signed URL for an existing PDF, generating it first when missing"""
        voucher = self.get_voucher(ctx, voucher_id)
        if voucher.pdf_path and self.storage.exists(voucher.pdf_path):
            return VoucherPdf(
                voucher_id=voucher_id,
                path=voucher.pdf_path,
                signed_url=self.storage.signed_url(voucher.pdf_path),
            )
        return self.generate_pdf(voucher_id)
