# utils/helpers.py
import uuid
import datetime
import os
import pandas as pd
import html

def read_data(file_path):
    """
    Reads a CSV or Excel file into a pandas DataFrame,
    skipping any initial blank rows before the header.

    Args:
        file_path (str): Path to the input file (CSV or XLSX).

    Returns:
        pd.DataFrame: Loaded data.

    Raises:
        ValueError: If file type is unsupported.
    """
    full_path = os.fspath(file_path)

    def find_header_row_xlsx(path):
        # Scan first 20 rows to find first non-empty row with header columns
        temp_df = pd.read_excel(path, nrows=20, header=None, engine='openpyxl')
        for idx, row in temp_df.iterrows():
            if row.dropna().shape[0] > 1:  # heuristic: more than 1 non-empty cell = header
                return idx
        return 0

    def find_header_row_csv(path):
        # For CSV, read lines until first line with >1 non-empty column
        with open(path, 'r', encoding='utf-8') as f:
            for idx, line in enumerate(f):
                if len([c for c in line.strip().split(',') if c]) > 1:
                    return idx
        return 0

    lowered = full_path.lower()
    if lowered.endswith(".csv"):
        header_row = find_header_row_csv(full_path)
        df = pd.read_csv(full_path, header=header_row)
    elif lowered.endswith(".xlsx"):
        header_row = find_header_row_xlsx(full_path)
        df = pd.read_excel(full_path, header=header_row, engine='openpyxl')
    else:
        raise ValueError("Unsupported file type. Use .csv or .xlsx")

    return df

def generate_id():
    return str(uuid.uuid4())

def now():
    return datetime.datetime.now()

def now_iso():
    return now().isoformat(timespec='milliseconds')

def generate_transaction_id(moment=None):
    """Date-prefixed stock transaction id, e.g. STX-20261019-143005-9f1c2ab4."""
    moment = moment or now()
    return f"STX-{moment:%Y%m%d-%H%M%S}-{uuid.uuid4().hex[:8]}"

def clean_item_name(name):
    if not name:
        return ''
    # Decode HTML entities like &amp; to &
    return html.unescape(str(name).strip())

def party_key(name, phone_number):
    """Grouping key for a party: lower-cased name, phone compared verbatim."""
    return f"{(name or '').lower()}-{phone_number or ''}"
