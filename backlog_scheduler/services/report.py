from typing import Dict, List, Optional, Sequence
from pathlib import Path
from xml.sax.saxutils import escape
from loguru import logger
import markdown
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, TableStyle, LongTable
from reportlab.lib.enums import TA_LEFT, TA_CENTER
from reportlab.platypus.flowables import KeepTogether
import openpyxl
from openpyxl.styles import PatternFill, Alignment, Font
from openpyxl.utils import get_column_letter

from ..models.config import SchedulingConfig
from ..models.entities import ScheduleResult, WorkItem


class ScheduleReportGenerator:
    """Serviço responsável pela geração dos relatórios de agendamento"""

    def __init__(
        self,
        result: ScheduleResult,
        items: Sequence[WorkItem],
        config: SchedulingConfig,
        output_dir: str,
        titles: Optional[Dict[str, str]] = None,
        name: str = "backlog",
    ):
        """
        Inicializa o gerador de relatórios

        Args:
            result: Resultado do agendamento
            items: Itens agendados (com os story points normalizados)
            config: Configuração de agendamento
            output_dir: Diretório de saída dos relatórios
            titles: Títulos dos itens, por id
            name: Nome usado nos arquivos gerados
        """
        self.result = result
        self.items = {item.id: item for item in items}
        self.config = config
        self.output_dir = Path(output_dir)
        self.titles = titles or {}
        self.name = name.replace(' ', '_')

        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.styles = getSampleStyleSheet()
        self._setup_styles()

        self.excel_colors = {
            'header': PatternFill(start_color='FF6B00', end_color='FF6B00', fill_type='solid'),   # Laranja
            'ok': PatternFill(start_color='B3FFB3', end_color='B3FFB3', fill_type='solid'),       # Verde claro
            'over': PatternFill(start_color='FFB3B3', end_color='FFB3B3', fill_type='solid'),     # Vermelho claro
            'empty': PatternFill(start_color='FFFFB3', end_color='FFFFB3', fill_type='solid')     # Amarelo claro
        }

    def _setup_styles(self):
        """Configura estilos personalizados para o relatório"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Title'],
            fontSize=16,
            spaceAfter=30,
            textColor=colors.HexColor('#FF6B00'),
            alignment=TA_CENTER
        ))
        self.styles.add(ParagraphStyle(
            name='CustomHeading1',
            parent=self.styles['Heading1'],
            fontSize=14,
            spaceAfter=12,
            textColor=colors.HexColor('#FF6B00'),
            alignment=TA_LEFT
        ))
        self.styles.add(ParagraphStyle(
            name='TableCell',
            parent=self.styles['Normal'],
            fontSize=9,
            leading=11,
            alignment=TA_LEFT
        ))
        self.styles.add(ParagraphStyle(
            name='TableHeader',
            parent=self.styles['Normal'],
            fontSize=10,
            leading=12,
            alignment=TA_LEFT,
            fontName='Helvetica-Bold',
            textColor=colors.white
        ))

    def _create_table_style(self, header_bg_color=colors.HexColor('#FF6B00')):
        """Cria um estilo padrão para as tabelas"""
        return TableStyle([
            ('BACKGROUND', (0, 0), (-1, 0), header_bg_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('GRID', (0, 0), (-1, -1), 1, colors.black),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LEFTPADDING', (0, 0), (-1, -1), 6),
            ('RIGHTPADDING', (0, 0), (-1, -1), 6),
            ('TOPPADDING', (0, 0), (-1, -1), 6),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#FFF5EB')]),
        ])

    def iteration_loads(self) -> List[Dict]:
        """
        Calcula a carga de cada sprint

        Returns:
            List[Dict]: Por sprint: nome, itens, pontos alocados, capacidade e se há excesso
        """
        loads = []
        for iteration in self.result.iterations:
            item_ids = self.result.items_for_iteration(iteration.id)
            points = sum(self.items[i].points for i in item_ids if i in self.items)
            loads.append({
                "id": iteration.id,
                "name": iteration.name,
                "items": item_ids,
                "points": points,
                "capacity": self.config.velocity,
                "overcommitted": points > self.config.velocity,
            })
        return loads

    def _generate_markdown(self) -> str:
        """Gera o conteúdo do relatório em Markdown"""
        report = []
        loads = self.iteration_loads()
        total_points = sum(item.points for item in self.items.values())

        report.append(f"# Relatório de Agendamento - {self.name}")
        report.append("")

        report.append("## 1. Resumo")
        report.append("")
        report.append(f"- **Itens agendados:** {len(self.result.assignments)}")
        report.append(f"- **Total de story points:** {total_points}")
        report.append(f"- **Velocidade por sprint:** {self.config.velocity}")
        report.append(f"- **Sprints utilizadas:** {len([l for l in loads if l['items']])}")
        report.append("")

        report.append("## 2. Carga por Sprint")
        report.append("")
        report.append("| Sprint | Itens | Story Points | Capacidade | Situação |")
        report.append("|--------|-------|--------------|------------|----------|")
        for load in loads:
            status = "acima da capacidade" if load['overcommitted'] else "ok"
            report.append(
                f"| {_md_cell(load['name'])} | {len(load['items'])} | {load['points']} | {load['capacity']} | {status} |"
            )
        report.append("")

        report.append("## 3. Ordem de Agendamento")
        report.append("")
        report.append("| # | Item | Título | Story Points | Sprint |")
        report.append("|---|------|--------|--------------|--------|")
        names = {iteration.id: iteration.name for iteration in self.result.iterations}
        for position, assignment in enumerate(self.result.assignments, start=1):
            item = self.items.get(assignment.item_id)
            points = item.points if item else '-'
            report.append(
                f"| {position} | {_md_cell(assignment.item_id)} | {_md_cell(self.titles.get(assignment.item_id, '-'))} | "
                f"{points} | {_md_cell(names.get(assignment.iteration_id, assignment.iteration_id))} |"
            )
        report.append("")

        return "\n".join(report)

    def generate(self) -> Dict[str, Path]:
        """Gera o relatório do agendamento em Markdown, HTML, PDF e Excel"""
        markdown_content = self._generate_markdown()
        markdown_path = self.output_dir / f"relatorio_agendamento_{self.name}.md"
        markdown_path.write_text(markdown_content, encoding='utf-8')
        logger.info(f"Relatório Markdown gerado em {markdown_path}")

        html_path = self.output_dir / f"relatorio_agendamento_{self.name}.html"
        html_path.write_text(markdown.markdown(markdown_content, extensions=['tables']), encoding='utf-8')
        logger.info(f"Relatório HTML gerado em {html_path}")

        pdf_path = self._generate_pdf()
        excel_path = self._generate_excel()

        return {"markdown": markdown_path, "html": html_path, "pdf": pdf_path, "excel": excel_path}

    def _generate_pdf(self) -> Path:
        """Gera o relatório do agendamento em PDF"""
        pdf_path = self.output_dir / f"relatorio_agendamento_{self.name}.pdf"
        doc = SimpleDocTemplate(
            str(pdf_path),
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm
        )
        available_width = doc.width
        elements = []

        elements.append(Paragraph(f"Relatório de Agendamento: {escape(self.name)}", self.styles['CustomTitle']))
        elements.append(Spacer(1, 12))

        elements.append(Paragraph("1. Carga por Sprint", self.styles['CustomHeading1']))
        load_data = [[
            Paragraph('Sprint', self.styles['TableHeader']),
            Paragraph('Itens', self.styles['TableHeader']),
            Paragraph('Story Points', self.styles['TableHeader']),
            Paragraph('Capacidade', self.styles['TableHeader']),
        ]]
        for load in self.iteration_loads():
            load_data.append([
                Paragraph(escape(load['name']), self.styles['TableCell']),
                str(len(load['items'])),
                str(load['points']),
                str(load['capacity']),
            ])
        load_table = LongTable(
            load_data,
            colWidths=[
                available_width * 0.4,  # Sprint
                available_width * 0.2,  # Itens
                available_width * 0.2,  # Story Points
                available_width * 0.2   # Capacidade
            ]
        )
        load_table.setStyle(self._create_table_style())
        elements.append(KeepTogether(load_table))
        elements.append(Spacer(1, 12))

        elements.append(Paragraph("2. Ordem de Agendamento", self.styles['CustomHeading1']))
        names = {iteration.id: iteration.name for iteration in self.result.iterations}
        order_data = [[
            Paragraph('Item', self.styles['TableHeader']),
            Paragraph('Título', self.styles['TableHeader']),
            Paragraph('Story Points', self.styles['TableHeader']),
            Paragraph('Sprint', self.styles['TableHeader']),
        ]]
        for assignment in self.result.assignments:
            item = self.items.get(assignment.item_id)
            order_data.append([
                Paragraph(escape(assignment.item_id), self.styles['TableCell']),
                Paragraph(escape(self.titles.get(assignment.item_id, '-')), self.styles['TableCell']),
                str(item.points if item else '-'),
                Paragraph(escape(names.get(assignment.iteration_id, assignment.iteration_id)), self.styles['TableCell']),
            ])
        order_table = LongTable(
            order_data,
            colWidths=[
                available_width * 0.2,  # Item
                available_width * 0.45, # Título
                available_width * 0.15, # Story Points
                available_width * 0.2   # Sprint
            ]
        )
        order_table.setStyle(self._create_table_style())
        elements.append(order_table)

        doc.build(elements)
        logger.info(f"Relatório PDF gerado em {pdf_path}")
        return pdf_path

    def _generate_excel(self) -> Path:
        """Gera o quadro de sprints em Excel, uma coluna por sprint"""
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Sprints"

        loads = self.iteration_loads()
        for col, load in enumerate(loads, start=1):
            ws.column_dimensions[get_column_letter(col)].width = 30

            header = ws.cell(row=1, column=col, value=load['name'])
            header.font = Font(bold=True, color='FFFFFF')
            header.fill = self.excel_colors['header']
            header.alignment = Alignment(horizontal='center')

            summary = ws.cell(row=2, column=col, value=f"{load['points']} / {load['capacity']} pts")
            summary.alignment = Alignment(horizontal='center')
            if not load['items']:
                summary.fill = self.excel_colors['empty']
            elif load['overcommitted']:
                summary.fill = self.excel_colors['over']
            else:
                summary.fill = self.excel_colors['ok']

            for row, item_id in enumerate(load['items'], start=3):
                item = self.items.get(item_id)
                label = self.titles.get(item_id, item_id)
                points = item.points if item else '-'
                ws.cell(row=row, column=col, value=f"{label} ({points} pts)")

        excel_path = self.output_dir / f"relatorio_agendamento_{self.name}.xlsx"
        wb.save(str(excel_path))
        logger.info(f"Relatório Excel gerado em {excel_path}")
        return excel_path


def _md_cell(value: str) -> str:
    """Escapa o conteúdo de uma célula de tabela Markdown"""
    return str(value).replace("|", "\\|").replace("\n", " ")
