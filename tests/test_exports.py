import io
from datetime import date

from openpyxl import load_workbook

from educonnect.utils.exports import bar_chart, build_pdf, build_xlsx, export_filename


def test_export_filename():
    assert export_filename("attendance", "3 A", "pdf", on=date(2024, 5, 1)) == "attendance_3_A_2024-05-01.pdf"
    assert export_filename("grades", None, "xlsx", on=date(2024, 5, 1)) == "grades_all_2024-05-01.xlsx"


def test_build_pdf_with_chart():
    chart = bar_chart(["Ana", "Bruno"], [8.0, 4.5], "Averages", ylim=10)
    assert chart.startswith(b"\x89PNG")

    rows = [["Ana <3A>", 8.0, None], ["Bruno & co", 4.5, "Needs work"]] * 40
    content = build_pdf("Grades - Math", ["Group: 3A"], ["Student", "Average", "Comment"], rows, charts=[chart])

    assert content.startswith(b"%PDF")


def test_build_xlsx():
    content = build_xlsx("Attendance for the whole month of May", ["Student", "Status", "Note"],
                         [["Ana Lopez", "present", None], ["Bruno Diaz", "late", "Bus"]])

    sheet = load_workbook(io.BytesIO(content)).active
    assert sheet.title.startswith("Attendance for the whole month")
    assert len(sheet.title) <= 31
    assert [c.value for c in sheet[1]] == ["Student", "Status", "Note"]
    assert sheet["B3"].value == "late"


async def test_export_endpoints_record_history(client, teacher_headers, school_id, students):
    ana = students["ana"]
    await client.post("/grades", json={
        "school_id": school_id, "subject": "Math", "period": "P1",
        "entries": [{"student_id": ana["id"], "evaluation_type": "examenes", "score": 9}],
    }, headers=teacher_headers)

    pdf = await client.get("/reports/export/grades", params={
        "school_id": school_id, "subject": "Math", "period": "P1", "group": "3A", "format": "pdf"
    }, headers=teacher_headers)
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")

    xlsx = await client.get("/reports/export/attendance", params={
        "school_id": school_id, "date": "2024-05-01", "filter": "month", "format": "xlsx"
    }, headers=teacher_headers)
    assert xlsx.status_code == 200
    assert "attachment" in xlsx.headers["content-disposition"]
    load_workbook(io.BytesIO(xlsx.content))

    card = await client.get(f"/reports/export/report-card/{ana['id']}", headers=teacher_headers)
    assert card.content.startswith(b"%PDF")

    history = await client.get("/reports/history", headers=teacher_headers)
    assert [entry["kind"] for entry in history.json()] == ["report_card", "attendance", "grades"]

    cleared = await client.delete("/reports/history", headers=teacher_headers)
    assert cleared.status_code == 200
    assert (await client.get("/reports/history", headers=teacher_headers)).json() == []


async def test_unknown_export_format_is_rejected(client, teacher_headers, school_id, students):
    response = await client.get("/reports/export/behavior", params={
        "school_id": school_id, "date": "2024-05-01", "format": "docx"
    }, headers=teacher_headers)

    assert response.status_code == 422
