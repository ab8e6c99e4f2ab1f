from typing import Dict, List, Any, Optional
import pandas as pd
from stockledger.core.base_importer import BaseImporter
from stockledger.core.data_processor import FieldMergeMode
from stockledger.core.exceptions import DataValidationError, DuplicateItemError
from stockledger.core.stock_engine import StockReconciliationEngine
from stockledger.models.records import ItemCategory
from stockledger.utils.field_normalizer import FieldNormalizer
from stockledger.utils.helpers import clean_item_name

class ItemImporter(BaseImporter):
    """
    Opening-stock importer for the item catalogue.

    Quantities in the sheet are kilograms; each new item is created
    through the stock engine so it gets its opening_stock transaction.
    Names already in the catalogue (case-insensitive) are left alone.
    """

    COLUMN_ALIASES = {
        'Product Name': 'Item Name',
        'Opening Stock': 'Opening Stock (kg)',
        'Low Stock Alert': 'Low Stock (kg)',
    }

    def __init__(self, engine: StockReconciliationEngine, config: Dict[str, Any] = None):
        super().__init__(config)
        self.engine = engine

    def get_conflict_columns(self) -> List[str]:
        return ['product_name']

    def get_required_columns(self) -> List[str]:
        return ['Item Name', 'Opening Stock (kg)']

    def get_merge_rules(self) -> Dict[str, FieldMergeMode]:
        # Repeated rows of one item add up their stock
        return {
            'opening_stock_kg': FieldMergeMode.SUM,
            'low_stock_kg': FieldMergeMode.MAX,
            'purchase_price': FieldMergeMode.LAST,
            'sale_price': FieldMergeMode.LAST,
        }

    def preprocess_dataframe(self, df: pd.DataFrame) -> pd.DataFrame:
        return df.rename(columns=self.COLUMN_ALIASES)

    def parse_category(self, raw: Any) -> ItemCategory:
        value = FieldNormalizer.normalize_string(raw).lower()
        for category in ItemCategory:
            if category.value.lower() == value:
                return category
        if value:
            self.logger.warning(f"Unknown category '{raw}', using {ItemCategory.PRIMARY.value}")
        return ItemCategory.PRIMARY

    def process_row(self, row: pd.Series) -> Optional[Dict[str, Any]]:
        name = clean_item_name(FieldNormalizer.normalize_string(row.get('Item Name')))
        if not name:
            return None

        opening_kg = FieldNormalizer.parse_numeric(row.get('Opening Stock (kg)'))
        low_kg = FieldNormalizer.parse_numeric(row.get('Low Stock (kg)'))
        purchase_price = FieldNormalizer.parse_numeric(row.get('Purchase Price'))
        sale_price = FieldNormalizer.parse_numeric(row.get('Sale Price'))
        for label, value in (('opening stock', opening_kg), ('low stock', low_kg),
                             ('purchase price', purchase_price), ('sale price', sale_price)):
            if value < 0:
                raise DataValidationError(f"'{name}' has negative {label}")

        as_of = FieldNormalizer.parse_date(row.get('As Of Date'))
        return {
            'product_name': name,
            'category': self.parse_category(row.get('Category')),
            'purchase_price': purchase_price,
            'sale_price': sale_price,
            'opening_stock_kg': opening_kg,
            'low_stock_kg': low_kg,
            'as_of_date': as_of.isoformat() if as_of else None,
        }

    def insert_batch(self, batch_data: List[Dict[str, Any]]) -> int:
        inserted = 0
        for record in batch_data:
            try:
                self.engine.create_item(**record)
                inserted += 1
            except DuplicateItemError:
                self.stats.already_present += 1
                self.logger.info(f"'{record['product_name']}' already exists, skipped")
        return inserted
