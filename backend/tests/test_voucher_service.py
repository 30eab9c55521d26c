from datetime import date

import pytest

from app.domain.enums import ExpenseAction
from app.domain.errors import (
    AuthenticationError, DocumentGenerationError, ExpenseNotFoundError, ForbiddenError, VoucherNotFoundError
)
from app.engine import ExpenseWorkflowEngine
from app.repositories.voucher_repo import VoucherRepository
from app.services.expense_service import ExpenseService
from app.services.storage_service import StorageService
from app.services.voucher_service import VoucherService, render_pdf_with_reportlab, voucher_storage_key
from app.templates import build_voucher_document


class RecordingRenderer:
    def __init__(self):
        self.documents = []

    def __call__(self, document):
        self.documents.append(document)
        return f"%PDF-fake {len(self.documents)}".encode()


def failing_renderer(document):
    raise RuntimeError("font missing")


@pytest.fixture
def expense(member_ctx, manager):
    return ExpenseService().create_expense(member_ctx, {
        "amount": 2400.0,
        "expense_type": "Day Stay",
        "expense_date": date(2024, 3, 9),
        "description": "Hotel near client site",
        "approver_id": manager.user_id,
    })["expense"]


@pytest.fixture
def storage(storage_dir):
    return StorageService(str(storage_dir))


@pytest.fixture
def voucher(member_ctx, expense):
    return VoucherService().create_voucher(member_ctx, expense.expense_id, credit_person="Accounts Payable")


def test_create_voucher_snapshots_expense(voucher, expense):
    assert voucher.expense_id == expense.expense_id
    assert voucher.your_name == "Milo Member"
    assert voucher.amount == 2400.0
    assert voucher.purpose == "Hotel near client site"
    assert voucher.pdf_path is None


def test_only_creator_creates_voucher(manager_ctx, expense):
    with pytest.raises(ForbiddenError):
        VoucherService().create_voucher(manager_ctx, expense.expense_id)


def test_voucher_for_unknown_expense(member_ctx):
    with pytest.raises(ExpenseNotFoundError):
        VoucherService().create_voucher(member_ctx, "missing")


def test_generate_pdf_is_idempotent(voucher, storage, org_ctx):
    renderer = RecordingRenderer()
    service = VoucherService(renderer=renderer, storage=storage)

    first = service.generate_pdf(voucher.voucher_id)
    second = service.generate_pdf(voucher.voucher_id)

    key = f"vouchers/{org_ctx.org_id}/{voucher.voucher_id}.pdf"
    assert first.path == second.path == key
    assert storage.read(key) == b"%PDF-fake 2"
    assert len(list(storage_files(storage))) == 1
    assert VoucherRepository().get_voucher(voucher.voucher_id).pdf_path == key


def storage_files(storage):
    return (p for p in storage.base_path.rglob("*") if p.is_file())


def test_storage_key_format():
    assert voucher_storage_key("org-1", "vch-9") == "vouchers/org-1/vch-9.pdf"


def test_pdf_reflects_manager_approved_amount(voucher, storage, member_ctx, manager_ctx, expense):
    engine = ExpenseWorkflowEngine()
    engine.transition(member_ctx, expense.expense_id, ExpenseAction.SUBMIT)
    engine.transition(manager_ctx, expense.expense_id, ExpenseAction.MANAGER_APPROVE, approved_amount=2000)

    renderer = RecordingRenderer()
    VoucherService(renderer=renderer, storage=storage).generate_pdf(voucher.voucher_id)

    rows = dict(renderer.documents[-1].rows)
    assert rows["Amount"] == "INR 2,000.00"
    assert rows["Approver"] == "Maya Manager"
    assert rows["Date"] == "09 Mar 2024"
    assert VoucherRepository().get_voucher(voucher.voucher_id).amount == 2000


def test_signed_url_resolves_back_to_the_key(voucher, storage):
    pdf = VoucherService(renderer=RecordingRenderer(), storage=storage).generate_pdf(voucher.voucher_id)

    assert pdf.signed_url.startswith("/api/v1/files/")
    token = pdf.signed_url.rsplit("/", 1)[-1]
    assert storage.key_from_token(token) == pdf.path


def test_expired_signed_url(storage):
    url = storage.signed_url("vouchers/org/v.pdf", ttl_seconds=-1)
    with pytest.raises(AuthenticationError, match="expired"):
        storage.key_from_token(url.rsplit("/", 1)[-1])


def test_render_failure_raises_document_generation_error(voucher, storage):
    service = VoucherService(renderer=failing_renderer, storage=storage)
    with pytest.raises(DocumentGenerationError) as exc:
        service.generate_pdf(voucher.voucher_id)
    assert exc.value.http_status == 502
    assert VoucherRepository().get_voucher(voucher.voucher_id).pdf_path is None


def test_best_effort_generation_reports_instead_of_raising(voucher, storage):
    report = VoucherService(renderer=failing_renderer, storage=storage).generate_pdf_best_effort(voucher.voucher_id)
    assert not report.ok
    assert "font missing" in report.failures[0]


def test_download_url_generates_missing_pdf(voucher, storage, member_ctx):
    renderer = RecordingRenderer()
    service = VoucherService(renderer=renderer, storage=storage)

    service.get_download_url(member_ctx, voucher.voucher_id)
    service.get_download_url(member_ctx, voucher.voucher_id)

    assert len(renderer.documents) == 1


def test_voucher_from_another_org(voucher, outsider):
    from app.services.organization_service import OrganizationService

    other_ctx = OrganizationService().create_organization(outsider, "Globex")
    with pytest.raises(VoucherNotFoundError):
        VoucherService().get_voucher(other_ctx, voucher.voucher_id)


def test_missing_values_print_as_dash(voucher, expense, org_ctx):
    document = build_voucher_document(voucher.model_copy(update={"credit_person": None}), expense, org_ctx.organization)
    rows = dict(document.rows)
    assert rows["Credit Person"] == "-"
    assert rows["Approver"] == "-"
    assert document.title == "EXPENSE VOUCHER"
    assert document.organization_line == "Organization: Acme Corp"


def test_reportlab_renders_a_pdf(voucher, expense, org_ctx):
    document = build_voucher_document(
        voucher.model_copy(update={"signature_url": "https://files.acme-corp.com/sig.png"}),
        expense, org_ctx.organization, "Maya Manager"
    )
    pdf = render_pdf_with_reportlab(document)
    assert pdf.startswith(b"%PDF")
