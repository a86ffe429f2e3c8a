# tax_lot_engine/reporting/pdf_generator.py
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT, TA_JUSTIFY
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak

import tax_lot_engine.config as app_config
from tax_lot_engine.domain.results import DividendMetrics, HoldingWithValue
from tax_lot_engine.pipeline_runner import ProcessingOutput
from tax_lot_engine.reporting.reporting_utils import _q, _q_price, _q_qty

logger = logging.getLogger(__name__)


class PdfReportGenerator:
    def __init__(self,
                 output: ProcessingOutput,
                 holdings_with_value: Optional[List[HoldingWithValue]] = None,
                 metrics: Optional[DividendMetrics] = None,
                 report_version: str = "v1.0"):
        self.output = output
        self.holdings_with_value = holdings_with_value
        self.metrics = metrics
        self.report_version = report_version

        self.styles = self._generate_styles()
        self.story: List[Any] = []

    def _generate_styles(self):
        styles = getSampleStyleSheet()

        styles.add(ParagraphStyle(name='H1', fontSize=16, leading=20, spaceAfter=10, alignment=TA_CENTER, fontName='Helvetica-Bold'))
        styles.add(ParagraphStyle(name='H2', fontSize=14, leading=18, spaceAfter=8, spaceBefore=12, fontName='Helvetica-Bold'))
        styles.add(ParagraphStyle(name='H3', fontSize=12, leading=16, spaceAfter=6, spaceBefore=10, fontName='Helvetica-Bold'))

        body_text_style = styles['BodyText']
        body_text_style.fontSize = 10
        body_text_style.leading = 12
        body_text_style.spaceAfter = 6

        styles.add(ParagraphStyle(name='Disclaimer', fontSize=8, leading=10, spaceAfter=12, alignment=TA_JUSTIFY, fontName='Helvetica'))
        styles.add(ParagraphStyle(name='TableHeader', alignment=TA_CENTER, fontSize=8, fontName='Helvetica-Bold', textColor=colors.black))
        styles.add(ParagraphStyle(name='TableCell', alignment=TA_LEFT, fontSize=8, fontName='Helvetica', textColor=colors.black))
        styles.add(ParagraphStyle(name='TableCellRight', alignment=TA_RIGHT, fontSize=8, fontName='Helvetica', textColor=colors.black))
        return styles

    def _format_decimal(self, value: Optional[Decimal], precision_type: str = "total") -> str:
        if value is None:
            return ""
        if precision_type == "price":
            return str(_q_price(value))
        if precision_type == "quantity":
            if value == value.to_integral_value():
                return str(int(value))
            return str(_q_qty(value))
        return str(_q(value))

    def _create_styled_table(self, data: List[List[Any]], col_widths: Optional[List[float]] = None,
                             extra_styles: Optional[List[Any]] = None, repeatRows: int = 1) -> Table:
        styled_data = []
        for i, row_content in enumerate(data):
            styled_row = []
            for cell_content in row_content:
                if i < repeatRows:
                    styled_row.append(Paragraph(str(cell_content), self.styles['TableHeader']))
                elif isinstance(cell_content, Decimal):
                    styled_row.append(Paragraph(self._format_decimal(cell_content), self.styles['TableCellRight']))
                else:
                    styled_row.append(Paragraph(str(cell_content), self.styles['TableCell']))
            styled_data.append(styled_row)

        tbl = Table(styled_data, colWidths=col_widths, repeatRows=repeatRows)
        base_ts_cmds = [
            ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), 3),
            ('RIGHTPADDING', (0, 0), (-1, -1), 3),
            ('TOPPADDING', (0, 0), (-1, -1), 2),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
        ]
        if repeatRows > 0:
            base_ts_cmds.append(('BACKGROUND', (0, 0), (-1, repeatRows - 1), colors.lightgrey))
        if extra_styles:
            base_ts_cmds.extend(extra_styles)
        tbl.setStyle(TableStyle(base_ts_cmds))
        return tbl

    def _add_title_page(self):
        self.story.append(Paragraph(app_config.REPORT_TITLE, self.styles['H1']))
        self.story.append(Spacer(1, 1 * cm))
        self.story.append(Paragraph(f"Taxpayer: {app_config.TAXPAYER_NAME}", self.styles['BodyText']))
        self.story.append(Paragraph(f"Report date: {datetime.now().strftime('%d-%m-%Y')}", self.styles['BodyText']))
        self.story.append(Paragraph(f"Tool version: {self.report_version}", self.styles['BodyText']))
        self.story.append(Spacer(1, 0.5 * cm))
        disclaimer_text = ("This report was generated automatically from the uploaded broker exports. Amounts are in EUR, "
                           "converted with ECB reference rates; rows whose rate could not be found were converted at 1.0. "
                           "It supports, but does not replace, a tax declaration.")
        self.story.append(Paragraph(disclaimer_text, self.styles['Disclaimer']))

    def _add_stock_sales(self):
        self.story.append(Paragraph("Realized Stock Sales (FIFO)", self.styles['H2']))
        sales = self.output.stock_sale_details
        if not sales:
            self.story.append(Paragraph("No stock sales.", self.styles['BodyText']))
            return
        data = [["Sale date", "Buy date", "Product", "ISIN", "Qty", "Buy EUR", "Sale EUR", "Commission", "P/L EUR", "Country"]]
        for s in sales:
            data.append([s.sale_date, s.buy_date, s.product_name, s.isin, self._format_decimal(s.quantity, "quantity"),
                         s.buy_amount_eur, s.sale_amount_eur, s.commission, s.delta, s.country_code])
        total = sum((s.delta for s in sales), Decimal(0))
        data.append(["Total", "", "", "", "", "", "", "", total, ""])
        self.story.append(self._create_styled_table(data, extra_styles=[('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold')]))

    def _add_holdings(self):
        self.story.append(Paragraph("Current Stock Holdings", self.styles['H2']))
        if self.holdings_with_value is not None:
            data = [["Product", "ISIN", "Qty", "Cost basis EUR", "Price EUR", "Market value EUR", "Status"]]
            for h in self.holdings_with_value:
                data.append([h.product_name, h.isin, self._format_decimal(h.quantity, "quantity"), h.total_cost_basis_eur,
                             self._format_decimal(h.current_price_eur, "price"), h.market_value_eur, h.status.value])
        else:
            data = [["Buy date", "Product", "ISIN", "Qty", "Buy price", "Currency", "Cost EUR"]]
            for lot in self.output.latest_holdings:
                data.append([lot.buy_date, lot.product_name, lot.isin, self._format_decimal(lot.quantity, "quantity"),
                             self._format_decimal(lot.buy_price, "price"), lot.buy_currency, lot.buy_amount_eur])
        if len(data) == 1:
            self.story.append(Paragraph("No open stock positions.", self.styles['BodyText']))
            return
        self.story.append(self._create_styled_table(data))

    def _add_options(self):
        self.story.append(Paragraph("Options", self.styles['H2']))
        self.story.append(Paragraph("Closed positions", self.styles['H3']))
        if self.output.option_sale_details:
            data = [["Opened", "Closed", "Contract", "Qty", "Open EUR", "Close EUR", "Commission", "P/L EUR"]]
            for s in self.output.option_sale_details:
                data.append([s.open_date, s.close_date, s.product_name, self._format_decimal(s.quantity, "quantity"),
                             s.open_amount_eur, s.close_amount_eur, s.commission, s.delta])
            self.story.append(self._create_styled_table(data))
        else:
            self.story.append(Paragraph("No closed option positions.", self.styles['BodyText']))

        self.story.append(Paragraph("Open positions", self.styles['H3']))
        if self.output.option_holdings:
            data = [["Opened", "Contract", "Qty", "Open price", "Open EUR"]]
            for h in self.output.option_holdings:
                data.append([h.open_date, h.product_name, self._format_decimal(h.quantity, "quantity"),
                             self._format_decimal(h.open_price, "price"), h.open_amount_eur])
            self.story.append(self._create_styled_table(data))
        else:
            self.story.append(Paragraph("No open option positions.", self.styles['BodyText']))

    def _add_dividends(self):
        self.story.append(Paragraph("Dividends by Year and Country", self.styles['H2']))
        summary = self.output.dividend_tax_summary
        if not summary:
            self.story.append(Paragraph("No dividends.", self.styles['BodyText']))
        else:
            data = [["Year", "Country", "Gross EUR", "Withheld tax EUR"]]
            for year in sorted(summary):
                for country, totals in sorted(summary[year].items()):
                    data.append([str(year), country, totals.gross_amount, totals.taxed_amount])
            self.story.append(self._create_styled_table(data))
        if self.metrics is not None and self.metrics.has_data:
            self.story.append(Spacer(1, 0.3 * cm))
            self.story.append(Paragraph(
                f"Trailing twelve months: {_q(self.metrics.total_dividends_ttm)} EUR, portfolio yield "
                f"{_q(self.metrics.portfolio_yield)} %, yield on cost {_q(self.metrics.yield_on_cost)} %.",
                self.styles['BodyText']))

    def _add_fees_and_cash(self):
        self.story.append(Paragraph("Fees", self.styles['H2']))
        if self.output.fee_details:
            data = [["Date", "Description", "Category", "Source", "Amount EUR"]]
            for fee in self.output.fee_details:
                data.append([fee.date, fee.description, fee.category.value, fee.source, fee.amount_eur])
            self.story.append(self._create_styled_table(data))
        else:
            self.story.append(Paragraph("No fees.", self.styles['BodyText']))

        self.story.append(Paragraph("Cash Movements", self.styles['H2']))
        if self.output.cash_movements:
            totals: Dict[tuple, Decimal] = defaultdict(Decimal)
            for movement in self.output.cash_movements:
                totals[(movement.type.value, movement.currency)] += movement.amount
            data = [["Type", "Currency", "Total"]]
            for (movement_type, currency), total in sorted(totals.items()):
                data.append([movement_type, currency, total])
            self.story.append(self._create_styled_table(data))
        else:
            self.story.append(Paragraph("No cash movements.", self.styles['BodyText']))

    def generate_report(self, output_file_path: str):
        logger.info(f"Generating PDF report: {output_file_path}")
        doc = SimpleDocTemplate(output_file_path, pagesize=landscape(A4))

        self.story = []
        self._add_title_page()
        self.story.append(PageBreak())
        self._add_stock_sales()
        self._add_holdings()
        self._add_options()
        self._add_dividends()
        self._add_fees_and_cash()

        doc.build(self.story)
        logger.info(f"PDF report written: {output_file_path}")
