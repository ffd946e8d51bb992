import base64
import binascii
import io
from decimal import Decimal
from xml.sax.saxutils import escape

from flask import current_app
from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import (
    Image,
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)


def logo_desde_data_url(logo):
    """Imagen de reportlab a partir del logo guardado como data URL"""
    if not logo or not logo.startswith('data:image'):
        return None
    try:
        contenido = base64.b64decode(logo.split(',', 1)[1])
        return Image(io.BytesIO(contenido), width=60, height=60)
    except (IndexError, binascii.Error, OSError, ValueError):
        current_app.logger.warning('No se pudo leer el logo de la empresa.')
        return None


def color_empresa(empresa):
    try:
        return colors.HexColor(empresa.color_principal or '#1a5f7a')
    except ValueError:
        return colors.HexColor('#1a5f7a')


def texto(valor, defecto=''):
    return escape(str(valor)) if valor else defecto


def formato_bs(valor):
    return f"Bs. {Decimal(str(valor or 0)):,.2f}"


def create_cotizacion_pdf(empresa, cotizacion):
    """Generar el PDF imprimible de una cotización y devolverlo en memoria"""
    output = io.BytesIO()
    styles = getSampleStyleSheet()
    doc = SimpleDocTemplate(
        output,
        pagesize=letter,
        leftMargin=28,
        rightMargin=28,
        topMargin=28,
        bottomMargin=28,
        title=f"Cotización {cotizacion.numero}",
    )
    principal = color_empresa(empresa)
    story = []

    telefonos = ' / '.join(
        t for t in (
            empresa.telefono_principal,
            empresa.telefono_secundario,
            empresa.telefono_adicional,
        ) if t
    )
    header_center = (
        f"<b>{texto(empresa.nombre)}</b><br/>"
        f"{texto(empresa.direccion)} {texto(empresa.ciudad)}<br/>"
        f"NIT: {texto(empresa.nit, '-')} &nbsp;&nbsp; TEL: {texto(telefonos, '-')}<br/>"
        f"{texto(empresa.email)}"
    )
    header_right = (
        f"<b>COTIZACIÓN</b><br/>{cotizacion.numero}<br/>"
        f"FECHA: {cotizacion.fecha.strftime('%d/%m/%Y') if cotizacion.fecha else '-'}<br/>"
        f"VÁLIDA HASTA: "
        f"{cotizacion.fecha_vencimiento.strftime('%d/%m/%Y') if cotizacion.fecha_vencimiento else '-'}"
    )
    header_table = Table(
        [[
            logo_desde_data_url(empresa.logo) or '',
            Paragraph(header_center, styles['Normal']),
            Paragraph(header_right, styles['Normal']),
        ]],
        colWidths=[80, 320, 150],
    )
    header_table.setStyle(
        TableStyle(
            [
                ('VALIGN', (0, 0), (-1, -1), 'TOP'),
                ('ALIGN', (2, 0), (2, 0), 'RIGHT'),
                ('LINEBELOW', (0, 0), (-1, 0), 1, principal),
            ]
        )
    )
    story.append(header_table)
    story.append(Spacer(1, 8))

    cliente_line = (
        f"<b>CLIENTE:</b> {texto(cotizacion.cliente_nombre, '-')} &nbsp;&nbsp; "
        f"<b>TEL:</b> {texto(cotizacion.cliente_telefono, '-')}<br/>"
        f"<b>EMAIL:</b> {texto(cotizacion.cliente_email, '-')} &nbsp;&nbsp; "
        f"<b>DIRECCIÓN:</b> {texto(cotizacion.cliente_direccion, '-')}"
    )
    story.append(Paragraph(cliente_line, styles['Normal']))
    story.append(Spacer(1, 8))

    data = [['#', 'MARCA', 'AMPERAJE', 'CANTIDAD', 'PRECIO UNIT.', 'TOTAL']]
    for idx, producto in enumerate(cotizacion.productos or [], start=1):
        data.append(
            [
                str(idx),
                producto.get('marca', ''),
                producto.get('amperaje', ''),
                str(producto.get('cantidad', 0)),
                formato_bs(producto.get('precio')),
                formato_bs(producto.get('total')),
            ]
        )
    product_table = Table(data, colWidths=[25, 170, 90, 65, 100, 100], repeatRows=1)
    product_table.setStyle(
        TableStyle(
            [
                ('BOX', (0, 0), (-1, -1), 0.75, colors.black),
                ('LINEBELOW', (0, 0), (-1, 0), 0.6, colors.black),
                ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
                ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
                ('BACKGROUND', (0, 0), (-1, 0), principal),
                ('FONTSIZE', (0, 0), (-1, -1), 9),
                ('ALIGN', (3, 1), (-1, -1), 'RIGHT'),
                ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.whitesmoke]),
                ('LEFTPADDING', (0, 0), (-1, -1), 4),
                ('RIGHTPADDING', (0, 0), (-1, -1), 4),
            ]
        )
    )
    story.append(product_table)
    story.append(Spacer(1, 8))

    totals_data = [
        ['TOTAL UNIDADES', str(cotizacion.total_unidades or 0)],
        ['SUBTOTAL', formato_bs(cotizacion.subtotal)],
        ['DESCUENTO', formato_bs(cotizacion.descuento)],
        ['TOTAL A PAGAR', formato_bs(cotizacion.total)],
    ]
    totals_table = Table(totals_data, colWidths=[130, 100], hAlign='RIGHT')
    totals_table.setStyle(
        TableStyle(
            [
                ('BOX', (0, 0), (-1, -1), 0.75, colors.black),
                ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
                ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
                ('BACKGROUND', (0, -1), (-1, -1), colors.whitesmoke),
            ]
        )
    )
    story.append(KeepTogether([totals_table]))
    story.append(Spacer(1, 12))

    footer_blocks = []
    if cotizacion.terminos:
        footer_blocks.append(
            Paragraph(f"<b>TÉRMINOS:</b> {texto(cotizacion.terminos)}", styles['Normal'])
        )
    for pie in (empresa.pie_agradecimiento, empresa.pie_empresa, empresa.pie_contacto):
        if pie:
            footer_blocks.append(Paragraph(texto(pie), styles['Italic']))
    if footer_blocks:
        story.append(KeepTogether(footer_blocks))

    doc.build(story)
    output.seek(0)
    return output
