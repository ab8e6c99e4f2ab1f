from abc import ABC, abstractmethod
import math
from typing import Dict, List, Any, Optional
import pandas as pd
from pathlib import Path
from tqdm.auto import tqdm
from stockledger.utils.logger import get_logger
from stockledger.utils.helpers import read_data
from stockledger.core.data_processor import DataProcessor, ImportStats, FieldMergeMode
from stockledger.core.exceptions import DataValidationError, FileProcessingError

class BaseImporter(ABC):
    """
    Spreadsheet importer skeleton.

    A run reads the sheet, turns each row into a record (rows raising
    ``DataValidationError`` are counted and dropped), merges records that
    repeat a conflict key, then hands them to ``insert_batch`` in chunks.
    """

    def __init__(self, config: Dict[str, Any] = None):
        self.config = config or {}
        self.logger = get_logger(self.__class__.__name__)
        self.processor = DataProcessor()
        self.stats = ImportStats()

        self.chunk_size = self.config.get('chunk_size', 200)
        self.enable_validation = self.config.get('enable_validation', True)

    @abstractmethod
    def get_conflict_columns(self) -> List[str]:
        """Record keys that identify the same entity within one sheet."""

    @abstractmethod
    def process_row(self, row: pd.Series) -> Optional[Dict[str, Any]]:
        """Build a record from one row; None skips the row."""

    @abstractmethod
    def insert_batch(self, batch_data: List[Dict[str, Any]]) -> int:
        """Persist records and return how many were written."""

    def get_required_columns(self) -> List[str]:
        return []

    def get_merge_rules(self) -> Dict[str, FieldMergeMode]:
        return {}

    def preprocess_dataframe(self, df: pd.DataFrame) -> pd.DataFrame:
        """Hook applied right after reading, before column checks."""
        return df

    def validate_input_data(self, df: pd.DataFrame) -> bool:
        missing = [col for col in self.get_required_columns() if col not in df.columns]
        if missing:
            self.logger.error(f"Missing required columns: {missing}")
            return False
        if df.empty:
            self.logger.error("Sheet has no data rows")
            return False
        return True

    def load_and_validate_file(self, file_path: str) -> pd.DataFrame:
        path = Path(file_path)
        if not path.exists():
            raise FileProcessingError(f"File not found: {file_path}")

        try:
            df = read_data(path)
        except (ValueError, OSError) as e:
            self.logger.error(f"Could not read {path.name}: {e}")
            raise FileProcessingError(f"Failed to load {file_path}: {e}") from e

        df = self.preprocess_dataframe(df)
        self.stats.rows_read = len(df)
        self.logger.info(f"Read {len(df):,} rows from {path.name}")

        if self.enable_validation and not self.validate_input_data(df):
            raise DataValidationError(f"{path.name} is missing required data")
        return df

    def process_batch(self, batch_df: pd.DataFrame) -> List[Dict[str, Any]]:
        records = []
        for idx, row in batch_df.iterrows():
            try:
                record = self.process_row(row)
            except DataValidationError as e:
                self.logger.warning(f"Row {idx} rejected: {e}")
                self.stats.rows_rejected += 1
                continue

            if record:
                records.append(record)
                self.stats.rows_accepted += 1
            else:
                self.stats.rows_skipped += 1
        return records

    def run_import(self, file_path: str, chunk_size: Optional[int] = None) -> ImportStats:
        chunk_size = chunk_size or self.chunk_size
        df = self.load_and_validate_file(file_path)

        records = []
        batches = max(1, math.ceil(len(df) / chunk_size))
        for start in tqdm(range(0, len(df), chunk_size), total=batches, desc="Reading rows", unit="batch"):
            records.extend(self.process_batch(df.iloc[start:start + chunk_size]))

        records, repeated = self.processor.deduplicate_records(
            records, self.get_conflict_columns(), merge_rules=self.get_merge_rules()
        )
        self.stats.duplicate_groups += len(repeated)

        for start in range(0, len(records), chunk_size):
            self.stats.records_written += self.insert_batch(records[start:start + chunk_size])

        self.stats.finish()
        self.stats.log_summary()
        return self.stats
