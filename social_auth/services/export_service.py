"""Admin user-list formatting and Excel/PDF exports."""

from datetime import datetime, timezone
from io import BytesIO
from typing import Any, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from social_auth.models.user import AuthProvider, User

EXCEL_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_CONTENT_TYPE = "application/pdf"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

EXPORT_COLUMNS = (
    ("ID", "id", 8),
    ("Full Name", "full_name", 28),
    ("Email", "email", 34),
    ("Login Type", "login_type", 14),
    ("Provider ID", "provider_id", 26),
    ("Role", "role", 10),
    ("Last Login", "last_login", 22),
    ("Registered At", "registered_at", 22),
)


def format_user_row(user: User) -> dict[str, Any]:
    """Flatten a user for the admin table and exports."""
    return {
        "id": user.id,
        "full_name": user.full_name or "N/A",
        "email": user.email or "N/A",
        "login_type": "Google Auth" if user.provider == AuthProvider.GOOGLE else "Normal",
        "provider_id": user.provider_id or "N/A",
        "avatar_url": user.avatar_url,
        "role": user.role.value,
        "last_login": user.updated_at.strftime(TIMESTAMP_FORMAT) if user.updated_at else "N/A",
        "registered_at": user.created_at.strftime(TIMESTAMP_FORMAT) if user.created_at else "N/A",
    }


def build_users_workbook(users: Sequence[User]) -> bytes:
    """Render users into an xlsx workbook and return its bytes."""
    workbook = Workbook()
    worksheet = workbook.active
    worksheet.title = "Users"

    worksheet.append([title for title, _, _ in EXPORT_COLUMNS])
    header_fill = PatternFill(fill_type="solid", fgColor="4F46E5")
    header_font = Font(color="FFFFFFFF", bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center")
    for cell in worksheet[1]:
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = header_alignment
    worksheet.freeze_panes = "A2"

    for index, (_, _, width) in enumerate(EXPORT_COLUMNS, start=1):
        worksheet.column_dimensions[worksheet.cell(row=1, column=index).column_letter].width = width

    for user in users:
        row = format_user_row(user)
        worksheet.append([row[key] for _, key, _ in EXPORT_COLUMNS])

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


PDF_COLUMNS = (
    ("ID", "id", 12),
    ("Full Name", "full_name", 45),
    ("Email", "email", 65),
    ("Login Type", "login_type", 25),
    ("Provider ID", "provider_id", 45),
    ("Last Login", "last_login", 30),
    ("Registered", "registered_at", 30),
)


def _truncate(value: Any, max_length: int) -> str:
    text = str(value)
    return text if len(text) <= max_length else text[: max_length - 2] + ".."


def build_users_pdf(users: Sequence[User]) -> bytes:
    """Render users into a landscape A4 table report and return the PDF bytes."""
    buffer = BytesIO()
    document = SimpleDocTemplate(
        buffer,
        pagesize=landscape(A4),
        leftMargin=10 * mm,
        rightMargin=10 * mm,
        topMargin=10 * mm,
        bottomMargin=12 * mm,
        title="User Data Export Report",
    )
    styles = getSampleStyleSheet()

    rows = [[title for title, _, _ in PDF_COLUMNS]]
    for user in users:
        row = format_user_row(user)
        rows.append(
            [
                str(row["id"]),
                _truncate(row["full_name"], 28),
                _truncate(row["email"], 40),
                row["login_type"],
                _truncate(row["provider_id"], 28),
                row["last_login"].split(" ")[0],
                row["registered_at"].split(" ")[0],
            ]
        )

    table = Table(rows, colWidths=[width * mm for _, _, width in PDF_COLUMNS], repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#4472C4")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#F2F2F2")]),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#CCCCCC")),
                ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ]
        )
    )

    generated = datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)
    story = [
        Paragraph("User Data Export Report", styles["Title"]),
        Paragraph(f"Generated: {generated} UTC", styles["Normal"]),
        Paragraph(f"Total Users: {len(users)}", styles["Normal"]),
        Spacer(1, 6 * mm),
        table,
    ]
    document.build(story)
    return buffer.getvalue()
