#!/usr/bin/env python3
"""
Generates sample-data/ledger_sample.xlsx, a receivables export shaped like the
Turkish ERP balance report ledger-doctor imports.

Run from the repo root:
    python sample-data/generate_ledger_xlsx.py

Quirks baked in:
  Sheet "Bakiye"
    - Amounts as locale text ("16.612,48"), plain floats and English text ("1,250.00")
    - Dates as real date cells, "31.12.2024" text, ISO text and an Excel serial
    - A row with a blank customer code
    - Customer code C003 appears twice (the second row is dropped on import)
    - A negative total (supplier balance)
    - An unreadable amount ("bilinmiyor") that imports as 0
  Sheet "Notlar"
    - Extra sheet the importer ignores
"""

from datetime import date
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "ledger_sample.xlsx"

HEADERS = [
    "Cari Hesap Kodu",
    "Cari Hesap Adı",
    "Sektör Kodu",
    "Grup Kodu",
    "Bölge Kodu",
    "Cari Ödeme Vadesi",
    "Vadesi Geçen Bakiye",
    "Vadesi Geçen Bakiye Vadesi",
    "Valör",
    "Vadesi Geçmemiş Bakiye",
    "Vadesi Geçmemiş Bakiye Vadesi",
    "Toplam Bakiye",
    "Bakiyeye Konu İlk Evrak Tarihi",
]

wb = openpyxl.Workbook()

# ── Sheet 1: Bakiye ──────────────────────────────────────────────────────────
ws = wb.active
ws.title = "Bakiye"
ws.append(HEADERS)

data = [
    # code   name                  sector  group  region  term  past          past date          valor  not due      not due date       total          first document
    ["C001", "Anadolu Tekstil A.Ş.", "TKS", "G1", "IST", "30", "16.612,48",   date(2024, 11, 30), 12,   "1.000,00",  "15.01.2025",      None,          date(2024, 9, 1)],
    ["C002", "Ege Gıda Ltd.",        "GID", "G1", "IZM", "45", 0,             None,               0,    2500.5,      date(2025, 1, 20), 2500.5,        "2024-10-05"],
    ["C003", "Marmara Lojistik",     "LOJ", "G2", "IST", "60", "1,250.00",    "31.12.2024",       30,   None,        None,              "1.250,00",    45600],
    [None,   "Kodsuz Satır",         "TKS", "G2", "ANK", "30", "500,00",      None,               0,    None,        None,              None,          None],
    ["C004", "Karadeniz Metal",      "MET", "G3", "TRB", "90", "bilinmiyor",  None,               0,    "7.800,00",  "2025-02-28",      None,          None],
    ["C005", "Başkent Kırtasiye",    "KRT", "G3", "ANK", "30", 0,             None,               0,    0,           None,              "-3.400,00",   date(2024, 12, 2)],
    ["C003", "Marmara Lojistik (2)", "LOJ", "G2", "IST", "60", "99.999,00",   None,               0,    None,        None,              None,          None],
]

for row in data:
    ws.append(row)

# ── Sheet 2: Notlar (ignored) ─────────────────────────────────────────────────
ws_notes = wb.create_sheet("Notlar")
ws_notes.append(["Cari Hesap Kodu", "Not", "Tarih"])
ws_notes.append(["C001", "Ödeme sözü alındı", "2025-01-05"])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
