"""
Data Processor - Spreadsheet Reading and Export

Reads the extraction exports and the contact registry (CSV or Excel) and
writes the final registry. Only I/O lives here; the pipeline itself works
on in-memory DataFrames.
"""

import logging
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Union

import chardet
import pandas as pd

logger = logging.getLogger(__name__)


class DataProcessor:
    """
    File processor for extraction exports

    Supports:
    - Excel files (.xlsx, .xls)
    - CSV files with automatic encoding detection
    """

    def __init__(self):
        self.supported_extensions = {
            '.xlsx': 'excel',
            '.xls': 'excel_legacy',
            '.csv': 'csv',
        }

    def detect_file_type(self, file_path: Union[str, Path]) -> str:
        """
        Detect file type based on extension

        Args:
            file_path: Path to file

        Returns:
            File type: 'excel', 'excel_legacy' or 'csv'

        Raises:
            ValueError: If file type is not supported
        """
        extension = Path(file_path).suffix.lower()

        if extension not in self.supported_extensions:
            raise ValueError(
                f"Unsupported file type: {extension}. "
                f"Supported types: {', '.join(self.supported_extensions.keys())}"
            )

        return self.supported_extensions[extension]

    def parse_file(
        self,
        file_path: Union[str, Path, BytesIO],
        file_type: Optional[str] = None,
        sheet_name: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Parse any supported file type into DataFrame

        Args:
            file_path: Path to file or BytesIO object
            file_type: Optional file type override
            sheet_name: For Excel files, which sheet to parse

        Returns:
            DataFrame with parsed data

        Raises:
            ValueError: Unsupported or empty file
        """
        if file_type is None:
            if isinstance(file_path, (str, Path)):
                file_type = self.detect_file_type(file_path)
            else:
                raise ValueError("file_type must be specified for BytesIO objects")

        logger.info(f"Parsing {file_type} file: {file_path}")

        if file_type in ['excel', 'excel_legacy']:
            df = self.parse_excel(file_path, sheet_name)
        elif file_type == 'csv':
            df = self.parse_csv(file_path)
        else:
            raise ValueError(f"Unknown file type: {file_type}")

        if df.empty:
            raise ValueError(f"File contains no records: {file_path}")
        return df

    def parse_excel(
        self,
        file_path: Union[str, Path, BytesIO],
        sheet_name: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Parse Excel file (first sheet unless sheet_name is given)

        Cells are read as text so that answers such as "NA" survive.
        """
        try:
            df = pd.read_excel(
                file_path,
                sheet_name=sheet_name if sheet_name is not None else 0,
                dtype=str,
                keep_default_na=False
            )
            df = self._clean_dataframe(df)

            logger.info(f"Parsed Excel: {len(df)} rows, {len(df.columns)} columns")
            return df

        except Exception as e:
            logger.error(f"Failed to parse Excel file: {e}")
            raise

    def parse_csv(
        self,
        file_path: Union[str, Path, BytesIO],
        encoding: Optional[str] = None
    ) -> pd.DataFrame:
        """
        Parse CSV file with automatic encoding detection

        Args:
            file_path: Path to CSV file or BytesIO object
            encoding: Optional encoding override

        Returns:
            DataFrame with parsed data
        """
        if encoding is None and isinstance(file_path, (str, Path)):
            encoding = self._detect_encoding(file_path)
            logger.info(f"Detected encoding: {encoding}")
        elif encoding is None:
            encoding = 'utf-8'

        try:
            df = pd.read_csv(file_path, encoding=encoding, dtype=str, keep_default_na=False)
        except UnicodeDecodeError as e:
            logger.warning(f"Decoding with {encoding} failed: {e}")
            df = None
            for fallback_encoding in ['utf-8', 'latin-1', 'cp1252']:
                if fallback_encoding == encoding:
                    continue
                if isinstance(file_path, BytesIO):
                    file_path.seek(0)
                try:
                    logger.info(f"Trying fallback encoding: {fallback_encoding}")
                    df = pd.read_csv(file_path, encoding=fallback_encoding, dtype=str, keep_default_na=False)
                    break
                except UnicodeDecodeError:
                    continue
            if df is None:
                raise
        except Exception as e:
            logger.error(f"Failed to parse CSV file: {e}")
            raise

        df = self._clean_dataframe(df)
        logger.info(f"Parsed CSV: {len(df)} rows, {len(df.columns)} columns")
        return df

    def _detect_encoding(self, file_path: Union[str, Path]) -> str:
        """
        Detect file encoding using chardet

        Args:
            file_path: Path to file

        Returns:
            Detected encoding (e.g., 'utf-8', 'latin-1')
        """
        with open(file_path, 'rb') as f:
            raw_data = f.read(10000)  # Read first 10KB
        result = chardet.detect(raw_data)
        encoding = result['encoding'] or 'utf-8'
        # Only the first 10KB is sampled; ASCII there does not rule out utf-8 later
        return 'utf-8' if encoding.lower() == 'ascii' else encoding

    def _clean_dataframe(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Basic DataFrame cleaning

        - Strip whitespace from column names
        - Remove completely empty rows
        - Strip whitespace from string values
        """
        df.columns = [str(col).strip() for col in df.columns]

        for col in df.select_dtypes(include=['object', 'string']).columns:
            df[col] = df[col].apply(lambda x: x.strip() if isinstance(x, str) else x)

        if len(df):
            empty = df.apply(lambda row: all(v == '' or pd.isna(v) for v in row), axis=1)
            df = df[~empty]

        return df.reset_index(drop=True)

    def validate_export(self, df: pd.DataFrame) -> List[str]:
        """
        Check a raw extraction export before normalization

        Returns:
            List of warning messages
        """
        warnings = []

        if len(df) == 0:
            warnings.append("Export is empty")
            return warnings

        if not any('database' in str(col).lower() for col in df.columns):
            warnings.append("No database questions detected in the export headers")

        if not any('title' in str(col).lower() for col in df.columns):
            warnings.append("No publication title column detected")

        duplicated_cols = df.columns[df.columns.duplicated()].tolist()
        if duplicated_cols:
            warnings.append(f"Duplicated columns: {duplicated_cols}")

        for warning in warnings:
            logger.warning(warning)

        return warnings

    def export_dataframe(self, df: pd.DataFrame, file_path: Union[str, Path]) -> Path:
        """
        Write a DataFrame as CSV (utf-8-sig) or Excel, chosen by extension

        Returns:
            Path written
        """
        path = Path(file_path)
        file_type = self.detect_file_type(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        if file_type == 'excel_legacy':
            raise ValueError("Export to .xls is not supported, use .xlsx or .csv")

        if file_type == 'csv':
            df.to_csv(path, index=False, encoding='utf-8-sig')
        else:
            df.to_excel(path, index=False, engine='openpyxl')

        logger.info(f"Exported {len(df)} rows to {path}")
        return path
