"""Server-side quote PDF generation using WeasyPrint.

The printable quote carries the header, customer and vehicle, the priced
items, the totals, the mechanic's notes and, once the customer has signed,
the signature.
"""

import logging
from datetime import datetime
from html import escape
from typing import Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.customer import Customer, Vehicle
from app.models.elevator import Elevator
from app.models.quote import Quote, money
from app.security.rbac import Caller, Permission, ensure_permission
from app.services import directory, quote_store
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


def _brl(value) -> str:
    return f"R$ {money(value)}"


def _date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y") if value else ""


def _text(value) -> str:
    return escape(str(value)) if value not in (None, "") else ""


def _signature_html(signature: str) -> str:
    if signature.startswith("data:image/"):
        mark = f'<img class="signature-image" src="{escape(signature, quote=True)}" alt="Assinatura">'
    else:
        mark = f'<p class="signature-text">{escape(signature)}</p>'
    return f"""
        <div class="signature" id="customer-signature">
            {mark}
            <div class="signature-line"></div>
            <p>Assinatura do Cliente</p>
        </div>
    """


def render_quote_html(
    quote: Quote,
    customer: Optional[Customer],
    vehicle: Optional[Vehicle],
    elevator: Optional[Elevator] = None,
    generated_at: Optional[datetime] = None,
) -> str:
    """Build the HTML document that WeasyPrint turns into the quote PDF."""
    generated_at = generated_at or utcnow()

    if customer is not None:
        customer_html = f"<p>Nome: {_text(customer.name)}</p>"
        if customer.phone:
            customer_html += f"<p>Telefone: {_text(customer.phone)}</p>"
        if customer.email:
            customer_html += f"<p>Email: {_text(customer.email)}</p>"
    else:
        customer_html = "<p>Cliente não informado</p>"

    vehicle_html = ""
    if vehicle is not None:
        if vehicle.placa:
            vehicle_html += f"<p>Placa: {_text(vehicle.placa)}</p>"
        make_model = " ".join(part for part in (vehicle.make, vehicle.model) if part)
        if make_model:
            year = f" ({vehicle.year})" if vehicle.year else ""
            vehicle_html += f"<p>Veículo: {_text(make_model)}{year}</p>"
    if elevator is not None:
        vehicle_html += f"<p>Elevador: {_text(elevator.name)} ({_text(elevator.number)})</p>"

    rows = ""
    for item in quote.items:
        details = ""
        if item.description:
            details += f"<div class='item-detail'>{_text(item.description)}</div>"
        if item.hours:
            details += f"<div class='item-detail'>({item.hours}h)</div>"
        rows += f"""
            <tr>
                <td>{_text(item.name)}{details}</td>
                <td class="num">{item.quantity}</td>
                <td class="num">{_brl(item.unit_cost)}</td>
                <td class="num">{_brl(item.total_cost)}</td>
            </tr>
        """
    if not rows:
        rows = "<tr><td colspan='4'>Nenhum item</td></tr>"

    subtotal = money(quote.items_total + money(quote.labor_cost) + money(quote.parts_cost))
    totals_html = ""
    if money(quote.labor_cost):
        totals_html += f"<tr><td>Mão de Obra:</td><td class='num'>{_brl(quote.labor_cost)}</td></tr>"
    if money(quote.parts_cost):
        totals_html += f"<tr><td>Peças:</td><td class='num'>{_brl(quote.parts_cost)}</td></tr>"
    totals_html += f"<tr><td>Subtotal:</td><td class='num'>{_brl(subtotal)}</td></tr>"
    if money(quote.discount):
        totals_html += f"<tr><td>Desconto:</td><td class='num'>- {_brl(quote.discount)}</td></tr>"
    if money(quote.tax_amount):
        totals_html += f"<tr><td>Impostos:</td><td class='num'>{_brl(quote.tax_amount)}</td></tr>"
    totals_html += f"<tr class='grand'><td>TOTAL:</td><td class='num'>{_brl(quote.total_cost)}</td></tr>"

    notes_html = ""
    if quote.diagnostic_notes:
        notes_html += f"<p><strong>Diagnóstico:</strong></p><p class='indent'>{_text(quote.diagnostic_notes)}</p>"
    if quote.inspection_notes:
        notes_html += f"<p><strong>Inspeção:</strong></p><p class='indent'>{_text(quote.inspection_notes)}</p>"
    if notes_html:
        notes_html = f"<h3>Observações</h3>{notes_html}"

    validity_html = f"<p class='validity'>Validade: {_date(quote.valid_until)}</p>" if quote.valid_until else ""
    signature_html = _signature_html(quote.customer_signature) if quote.customer_signature else ""

    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>
            @page {{ margin: 0.75in; size: A4; }}
            body {{ font-family: Arial, Helvetica, sans-serif; color: #1f2937; font-size: 10pt; line-height: 1.4; }}
            .header {{ text-align: center; margin-bottom: 20px; }}
            .header h1 {{ margin: 0; font-size: 20pt; letter-spacing: 1px; }}
            .header .number {{ font-size: 14pt; margin: 4px 0; }}
            .header .date {{ color: #6b7280; }}
            h3 {{ font-size: 12pt; margin: 18px 0 8px; border-bottom: 2px solid #e5e7eb; padding-bottom: 4px; }}
            table {{ width: 100%; border-collapse: collapse; }}
            .items th {{ text-align: left; font-size: 9pt; border-bottom: 1px solid #d1d5db; padding: 4px; }}
            .items td {{ padding: 4px; border-bottom: 1px solid #f3f4f6; vertical-align: top; }}
            .item-detail {{ font-size: 8pt; color: #6b7280; }}
            .num {{ text-align: right; white-space: nowrap; }}
            .totals {{ width: 45%; margin: 12px 0 0 auto; }}
            .totals td {{ padding: 2px 4px; }}
            .totals .grand td {{ font-size: 14pt; font-weight: bold; border-top: 1px solid #1f2937; }}
            .indent {{ margin-left: 20px; }}
            .validity {{ font-size: 9pt; color: #6b7280; }}
            .signature {{ margin-top: 40px; width: 260px; }}
            .signature-image {{ max-width: 250px; max-height: 80px; }}
            .signature-line {{ border-top: 1px solid #1f2937; margin-top: 4px; }}
            .footer {{ margin-top: 30px; text-align: center; font-size: 8pt; color: #6b7280; }}
        </style>
    </head>
    <body>
        <div class="header">
            <h1>ORÇAMENTO</h1>
            <p class="number">Número: {_text(quote.number)}</p>
            <p class="date">Data: {_date(quote.created_at)}</p>
        </div>

        <h3>Dados do Cliente</h3>
        {customer_html}

        {f'<h3>Dados do Veículo</h3>{vehicle_html}' if vehicle_html else ''}

        <h3>Itens do Orçamento</h3>
        <table class="items">
            <tr><th>Descrição</th><th class="num">Qtd</th><th class="num">Unit.</th><th class="num">Total</th></tr>
            {rows}
        </table>

        <table class="totals">
            {totals_html}
        </table>

        {notes_html}
        {validity_html}
        {signature_html}

        <div class="footer">
            <p>Orçamento {_text(quote.number)} - Gerado em {generated_at.strftime("%d/%m/%Y %H:%M")} UTC</p>
        </div>
    </body>
    </html>
    """


def generate_quote_pdf(
    quote: Quote,
    customer: Optional[Customer],
    vehicle: Optional[Vehicle],
    elevator: Optional[Elevator] = None,
) -> bytes:
    """Render the quote and return the PDF bytes."""
    from weasyprint import HTML

    html = render_quote_html(quote, customer, vehicle, elevator)
    pdf_bytes = HTML(string=html).write_pdf()
    logger.info(f"[QUOTE-PDF] Generated {quote.number}: {len(pdf_bytes)} bytes via WeasyPrint")
    return pdf_bytes


async def build_quote_pdf(db: AsyncSession, caller: Caller, quote_id: str) -> Tuple[str, bytes]:
    """Load a quote the caller may see and return (filename, pdf bytes).

    Mechanics only get PDFs of unassigned quotes and their own.
    """
    ensure_permission(caller, Permission.VIEW_QUOTES)
    quote = await quote_store.get_visible_quote(db, caller, quote_id)

    customer = await directory.get_customer(db, caller.tenant_id, quote.customer_id)
    vehicle = await directory.get_vehicle(db, caller.tenant_id, quote.vehicle_id)
    elevator = None
    if quote.elevator_id:
        elevator = await directory.get_elevator(db, caller.tenant_id, quote.elevator_id)

    return f"orcamento-{quote.number}.pdf", generate_quote_pdf(quote, customer, vehicle, elevator)
